"""Tour domain exports."""
from .entity import Tour, TicketPurchase, TicketPurchaseStatus, TicketType
from .repository import TourRepository, TicketPurchaseRepository

__all__ = [
    "Tour",
    "TicketPurchase",
    "TicketPurchaseStatus",
    "TicketType",
    "TourRepository",
    "TicketPurchaseRepository",
]

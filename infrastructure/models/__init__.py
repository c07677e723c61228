"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .tour import TourModel, TicketPurchaseModel
from .processed_event import ProcessedEventModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "TourModel",
    "TicketPurchaseModel",
    "ProcessedEventModel",
]

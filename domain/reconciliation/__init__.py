"""Reconciliation domain exports."""
from .entity import (
    ClaimResult,
    MembershipPurchase,
    OutcomeStatus,
    PaymentEvent,
    ProcessedEvent,
    ReconciliationOutcome,
    RejectionReason,
    TicketPurchaseIntent,
)
from .repository import ProcessedEventRepository

__all__ = [
    "ClaimResult",
    "MembershipPurchase",
    "OutcomeStatus",
    "PaymentEvent",
    "ProcessedEvent",
    "ReconciliationOutcome",
    "RejectionReason",
    "TicketPurchaseIntent",
    "ProcessedEventRepository",
]

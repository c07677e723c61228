"""
Reconciliation value objects.

A `PaymentEvent` is the normalized, already-verified form of a provider
notification. Its `intent` is a closed variant: either a membership purchase
or a ticket purchase. `ProcessedEvent` is the claim row keyed by `event_id`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from domain.user.entity import MembershipTier


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"  # logical purchase already recorded under another event


class RejectionReason(str, Enum):
    CAPACITY_EXCEEDED = "CapacityExceeded"
    TOUR_NOT_FOUND = "TourNotFound"
    USER_NOT_FOUND = "UserNotFound"
    PAYMENT_ALREADY_RECORDED = "PaymentAlreadyRecorded"


@dataclass(frozen=True)
class MembershipPurchase:
    user_id: int
    tier: MembershipTier
    paid_amount: Decimal
    provider_customer_ref: Optional[str] = None

    kind = "membership"


@dataclass(frozen=True)
class TicketPurchaseIntent:
    user_id: int
    tour_id: int
    ticket_type: str
    quantity: int
    paid_amount: Decimal
    provider_payment_ref: str

    kind = "ticket"


PurchaseIntent = Union[MembershipPurchase, TicketPurchaseIntent]


@dataclass(frozen=True)
class PaymentEvent:
    event_id: str
    intent: PurchaseIntent
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ReconciliationOutcome:
    """What happened to one event. `replayed` marks an outcome read back from an earlier delivery."""

    event_id: str
    status: OutcomeStatus
    reason: Optional[str] = None
    replayed: bool = False

    def as_replay(self) -> "ReconciliationOutcome":
        return ReconciliationOutcome(
            event_id=self.event_id,
            status=self.status,
            reason=self.reason,
            replayed=True,
        )


@dataclass
class ProcessedEvent:
    """Claim row. `status` stays None between claim and outcome recording."""

    event_id: str
    intent_kind: str
    status: Optional[OutcomeStatus] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def in_progress(self) -> bool:
        return self.status is None

    def to_outcome(self) -> ReconciliationOutcome:
        if self.status is None:
            raise ValueError(f"event {self.event_id} has no recorded outcome")
        return ReconciliationOutcome(
            event_id=self.event_id,
            status=self.status,
            reason=self.reason,
        )


@dataclass(frozen=True)
class ClaimResult:
    """Result of `claim_event`: either inserted, or the existing row."""

    inserted: bool
    existing: Optional[ProcessedEvent] = None

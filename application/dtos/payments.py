"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Literal
from pydantic import BaseModel, Field, ConfigDict, field_validator

from domain.reconciliation.entity import OutcomeStatus, PaymentEvent, ReconciliationOutcome
from domain.tour.entity import TicketType
from domain.user.entity import MembershipTier


# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "SEK", "NOK", "DKK",
}


class CreateCheckout(BaseModel):
    """Provider-neutral request for a hosted checkout page."""

    mode: Literal["payment", "subscription"]
    product_name: str
    description: Optional[str] = None
    unit_amount: Decimal = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    currency: str = Field(default="USD")
    metadata: dict[str, str]
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    customer_email: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        if u not in ISO_4217:
            raise ValueError("unsupported currency")
        return u


class CheckoutSession(BaseModel):
    session_id: str
    url: Optional[str] = None
    provider: str
    amount_total: Decimal
    currency: str


class MembershipCheckoutRequest(BaseModel):
    user_id: int = Field(gt=0)
    tier: MembershipTier

    @field_validator("tier")
    @classmethod
    def _paid_tier_only(cls, v: MembershipTier) -> MembershipTier:
        if v is MembershipTier.FREE:
            raise ValueError("free tier cannot be purchased")
        return v


class TicketCheckoutRequest(BaseModel):
    user_id: int = Field(gt=0)
    tour_id: int = Field(gt=0)
    ticket_type: TicketType = TicketType.GENERAL
    quantity: int = Field(default=1, ge=1, le=10)


class WebhookEvent(BaseModel):
    """A verified provider notification.

    `payment_event` is set only for confirmations that carry a purchase to
    reconcile; every other verified event is acknowledged and ignored.
    """

    id: str
    type: str
    provider: str
    data: dict[str, Any]
    payment_event: Optional[PaymentEvent] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def actionable(self) -> bool:
        return self.payment_event is not None


class ReconciliationResult(BaseModel):
    event_id: str
    status: OutcomeStatus
    reason: Optional[str] = None
    replayed: bool = False

    @classmethod
    def from_outcome(cls, outcome: ReconciliationOutcome) -> "ReconciliationResult":
        return cls(
            event_id=outcome.event_id,
            status=outcome.status,
            reason=outcome.reason,
            replayed=outcome.replayed,
        )

"""
Tour aggregate: fixed ticket inventory and the purchases recorded against it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class TicketType(str, Enum):
    GENERAL = "general"
    VIP = "vip"


class TicketPurchaseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


@dataclass
class Tour:
    """
    A show with fixed capacity.

    Invariant: 0 <= tickets_sold <= tickets_available. The counter is only
    moved through the repository's guarded increment, never by assigning
    `tickets_sold` on a loaded entity.
    """

    id: Optional[int]
    city: str
    venue: str
    date: Optional[datetime] = None
    tickets_available: int = 0
    tickets_sold: int = 0
    ticket_price: Optional[Decimal] = None
    vip_price: Optional[Decimal] = None
    status: str = "active"

    def __post_init__(self):
        if self.tickets_available < 0:
            raise DomainValidationException(
                f"tickets_available must be >= 0: {self.tickets_available}",
                field="tickets_available",
            )
        if not 0 <= self.tickets_sold <= self.tickets_available:
            raise DomainValidationException(
                f"tickets_sold out of range: {self.tickets_sold}/{self.tickets_available}",
                field="tickets_sold",
            )

    @property
    def remaining(self) -> int:
        return self.tickets_available - self.tickets_sold

    def can_sell(self, quantity: int) -> bool:
        return quantity > 0 and self.tickets_sold + quantity <= self.tickets_available

    def price_for(self, ticket_type: TicketType) -> Decimal:
        price = self.vip_price if TicketType(ticket_type) is TicketType.VIP else self.ticket_price
        if price is None:
            raise DomainValidationException(
                f"No {ticket_type} price configured for tour {self.id}",
                field="ticket_type",
            )
        return Decimal(price)


@dataclass
class TicketPurchase:
    """A completed (or later refunded) ticket purchase, unique per provider payment."""

    id: Optional[int]
    user_id: int
    tour_id: int
    ticket_type: str
    quantity: int
    total_amount: Decimal
    provider_payment_ref: str
    status: TicketPurchaseStatus = TicketPurchaseStatus.PENDING
    purchased_at: Optional[datetime] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise DomainValidationException(
                f"quantity must be > 0: {self.quantity}",
                field="quantity",
            )
        if not self.provider_payment_ref:
            raise DomainValidationException(
                "provider_payment_ref is required",
                field="provider_payment_ref",
            )
        self.status = TicketPurchaseStatus(self.status)
        if self.purchased_at is not None and self.purchased_at.tzinfo is None:
            self.purchased_at = self.purchased_at.replace(tzinfo=timezone.utc)

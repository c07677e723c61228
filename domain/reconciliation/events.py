"""
Reconciliation domain events.

Collected by the domain service while applying an effect and published by the
application layer only after the transaction commits.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class ReconciliationEvent:
    source_event_id: str
    user_id: int
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class MembershipGranted(ReconciliationEvent):
    tier: str = ""
    tier_name: str = ""
    expires_at: Optional[datetime] = None


@dataclass
class TicketsConfirmed(ReconciliationEvent):
    tour_id: int = 0
    ticket_type: str = "general"
    quantity: int = 1


@dataclass
class PurchaseRejected(ReconciliationEvent):
    """Payment was taken but the purchase cannot be honored."""
    reason: str = ""
    intent_kind: str = ""

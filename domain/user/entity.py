"""
Fan (user) entity and membership rules.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


class MembershipTier(str, Enum):
    """Membership tiers. No ordering is enforced between them."""
    FREE = "free"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


@dataclass(frozen=True)
class TierInfo:
    name: str
    monthly_price: Decimal
    discount: Decimal


TIER_CATALOG: dict[MembershipTier, TierInfo] = {
    MembershipTier.FREE: TierInfo("Free Fan", Decimal("0"), Decimal("0")),
    MembershipTier.SILVER: TierInfo("Silver Member", Decimal("9.99"), Decimal("0.05")),
    MembershipTier.GOLD: TierInfo("Gold Member", Decimal("29.99"), Decimal("0.10")),
    MembershipTier.PLATINUM: TierInfo("Platinum VIP", Decimal("99.99"), Decimal("0.20")),
}


def add_one_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the last day of a shorter month."""
    year = moment.year + moment.month // 12
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class User:
    """A fan known to the bot, keyed internally by `id` and externally by `telegram_id`."""

    id: Optional[int]
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    email: Optional[str] = None
    membership_tier: MembershipTier = MembershipTier.FREE
    membership_expires: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.membership_tier = MembershipTier(self.membership_tier)
        self.membership_expires = _ensure_utc(self.membership_expires)
        self.created_at = _ensure_utc(self.created_at)

    @property
    def tier_info(self) -> TierInfo:
        return TIER_CATALOG[self.membership_tier]

    def grant_membership(
        self,
        tier: MembershipTier,
        *,
        now: datetime,
        customer_ref: Optional[str] = None,
    ) -> None:
        """
        Apply a paid membership.

        Business rules:
        1. Last write wins: downgrades are accepted as-is
        2. Expiry is now + 1 month, never stacked onto a previous expiry
        """
        self.membership_tier = MembershipTier(tier)
        self.membership_expires = add_one_month(_ensure_utc(now))
        if customer_ref:
            self.stripe_customer_id = customer_ref

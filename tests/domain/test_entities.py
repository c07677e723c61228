from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.reconciliation.entity import OutcomeStatus, ProcessedEvent
from domain.tour.entity import TicketPurchase, TicketType, Tour
from domain.user.entity import MembershipTier, User, add_one_month


UTC = timezone.utc


@pytest.mark.parametrize(
    "moment, expected",
    [
        (datetime(2025, 3, 15, 8, 30, tzinfo=UTC), datetime(2025, 4, 15, 8, 30, tzinfo=UTC)),
        (datetime(2025, 1, 31, tzinfo=UTC), datetime(2025, 2, 28, tzinfo=UTC)),
        (datetime(2024, 1, 31, tzinfo=UTC), datetime(2024, 2, 29, tzinfo=UTC)),
        (datetime(2025, 12, 20, tzinfo=UTC), datetime(2026, 1, 20, tzinfo=UTC)),
        (datetime(2025, 8, 31, tzinfo=UTC), datetime(2025, 9, 30, tzinfo=UTC)),
    ],
)
def test_add_one_month(moment, expected):
    assert add_one_month(moment) == expected


def test_grant_membership_overwrites_tier_and_expiry():
    user = User(
        id=1,
        telegram_id=42,
        membership_tier=MembershipTier.PLATINUM,
        membership_expires=datetime(2030, 1, 1, tzinfo=UTC),
    )

    user.grant_membership(MembershipTier.SILVER, now=datetime(2025, 6, 1, tzinfo=UTC), customer_ref="cus_7")

    assert user.membership_tier is MembershipTier.SILVER
    assert user.membership_expires == datetime(2025, 7, 1, tzinfo=UTC)
    assert user.stripe_customer_id == "cus_7"
    assert user.tier_info.discount == Decimal("0.05")


def test_grant_membership_keeps_customer_without_ref():
    user = User(id=1, telegram_id=42, stripe_customer_id="cus_old")

    user.grant_membership(MembershipTier.GOLD, now=datetime(2025, 6, 1, tzinfo=UTC))

    assert user.stripe_customer_id == "cus_old"


def test_naive_datetimes_are_treated_as_utc():
    user = User(id=1, telegram_id=42, membership_expires=datetime(2025, 6, 1))
    assert user.membership_expires.tzinfo is UTC


def test_tour_capacity():
    tour = Tour(id=1, city="Porto", venue="Arena", tickets_available=10, tickets_sold=8)

    assert tour.remaining == 2
    assert tour.can_sell(2)
    assert not tour.can_sell(3)
    assert not tour.can_sell(0)


@pytest.mark.parametrize(
    "available, sold",
    [(-1, 0), (5, 6), (5, -1)],
)
def test_tour_rejects_inconsistent_counters(available, sold):
    with pytest.raises(DomainValidationException):
        Tour(id=1, city="Porto", venue="Arena", tickets_available=available, tickets_sold=sold)


def test_tour_price_for():
    tour = Tour(id=1, city="Porto", venue="Arena", ticket_price=Decimal("40"), vip_price=None)

    assert tour.price_for(TicketType.GENERAL) == Decimal("40")
    with pytest.raises(DomainValidationException) as exc_info:
        tour.price_for(TicketType.VIP)
    assert exc_info.value.field == "ticket_type"


def test_ticket_purchase_requires_positive_quantity():
    with pytest.raises(DomainValidationException):
        TicketPurchase(
            id=None,
            user_id=1,
            tour_id=1,
            ticket_type="general",
            quantity=0,
            total_amount=Decimal("0"),
            provider_payment_ref="pi_1",
        )


def test_processed_event_outcome():
    claim = ProcessedEvent(event_id="evt_1", intent_kind="ticket")
    assert claim.in_progress
    with pytest.raises(ValueError):
        claim.to_outcome()

    claim.status = OutcomeStatus.REJECTED
    claim.reason = "CapacityExceeded"
    outcome = claim.to_outcome()
    assert not claim.in_progress
    assert outcome.reason == "CapacityExceeded"
    assert outcome.as_replay().replayed is True

from decimal import Decimal

import pytest
from pydantic import ValidationError

from conftest import FakeGateway
from application.dtos.payments import CreateCheckout, MembershipCheckoutRequest, TicketCheckoutRequest
from application.services.payment_service import PaymentService, discounted_price
from domain.common.exceptions import (
    DomainValidationException,
    TicketsUnavailableException,
    TourNotFoundException,
    UserNotFoundException,
)
from domain.tour.entity import TicketType
from domain.user.entity import MembershipTier


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def service(gateway, uow_factory):
    return PaymentService(gateway=gateway, uow_factory=uow_factory)


@pytest.mark.parametrize(
    "price, discount, expected",
    [
        (Decimal("50.00"), Decimal("0"), Decimal("50.00")),
        (Decimal("150.00"), Decimal("0.20"), Decimal("120.00")),
        (Decimal("49.99"), Decimal("0.05"), Decimal("47.49")),
        (Decimal("33.33"), Decimal("0.10"), Decimal("30.00")),
    ],
)
def test_discounted_price(price, discount, expected):
    assert discounted_price(price, discount) == expected


@pytest.mark.asyncio
async def test_ticket_checkout_applies_member_discount(service, gateway, make_user, make_tour):
    user = await make_user(tier=MembershipTier.GOLD, email="fan@example.com")
    tour = await make_tour(vip_price=Decimal("150.00"))

    session = await service.create_ticket_checkout(
        TicketCheckoutRequest(user_id=user.id, tour_id=tour.id, ticket_type=TicketType.VIP, quantity=2)
    )

    req = gateway.requests[0]
    assert req.mode == "payment"
    assert req.unit_amount == Decimal("135.00")
    assert req.quantity == 2
    assert req.customer_email == "fan@example.com"
    assert req.metadata == {
        "user_id": str(user.id),
        "tour_id": str(tour.id),
        "ticket_type": "vip",
        "quantity": "2",
    }
    assert session.amount_total == Decimal("270.00")


@pytest.mark.asyncio
async def test_ticket_checkout_sold_out(service, gateway, make_user, make_tour):
    user = await make_user()
    tour = await make_tour(tickets_available=10, tickets_sold=9)

    with pytest.raises(TicketsUnavailableException):
        await service.create_ticket_checkout(TicketCheckoutRequest(user_id=user.id, tour_id=tour.id, quantity=2))
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_ticket_checkout_unknown_tour(service, make_user):
    user = await make_user()

    with pytest.raises(TourNotFoundException):
        await service.create_ticket_checkout(TicketCheckoutRequest(user_id=user.id, tour_id=77))


@pytest.mark.asyncio
async def test_ticket_checkout_without_vip_price(service, make_user, make_tour):
    user = await make_user()
    tour = await make_tour(vip_price=None)

    with pytest.raises(DomainValidationException):
        await service.create_ticket_checkout(
            TicketCheckoutRequest(user_id=user.id, tour_id=tour.id, ticket_type=TicketType.VIP)
        )


@pytest.mark.asyncio
async def test_membership_checkout(service, gateway, make_user):
    user = await make_user()

    await service.create_membership_checkout(MembershipCheckoutRequest(user_id=user.id, tier=MembershipTier.PLATINUM))
    await service.create_membership_checkout(MembershipCheckoutRequest(user_id=user.id, tier=MembershipTier.PLATINUM))

    first, second = gateway.requests
    assert first.mode == "subscription"
    assert first.unit_amount == Decimal("99.99")
    assert first.metadata == {"user_id": str(user.id), "tier": "platinum"}
    # Same fan, same tier, same day: Stripe sees one idempotent request
    assert first.idempotency_key == second.idempotency_key


@pytest.mark.asyncio
async def test_membership_checkout_unknown_user(service):
    with pytest.raises(UserNotFoundException):
        await service.create_membership_checkout(MembershipCheckoutRequest(user_id=5, tier=MembershipTier.GOLD))


def test_free_tier_cannot_be_bought():
    with pytest.raises(ValidationError):
        MembershipCheckoutRequest(user_id=1, tier=MembershipTier.FREE)


def test_checkout_currency_validation():
    ok = CreateCheckout(mode="payment", product_name="x", unit_amount=Decimal("1.00"), currency="usd", metadata={})
    assert ok.currency == "USD"
    with pytest.raises(ValidationError):
        CreateCheckout(mode="payment", product_name="x", unit_amount=Decimal("1.00"), currency="XXX", metadata={})

"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port, DTOs and the
unit of work. Gateway implementations are provided by infrastructure and must
be injected from the composition root (API/tasks), keeping dependencies one-way.
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Mapping, Optional

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckout,
    MembershipCheckoutRequest,
    TicketCheckoutRequest,
    WebhookEvent,
)
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import (
    TicketsUnavailableException,
    TourNotFoundException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import TIER_CATALOG


logger = get_logger(__name__)

CENT = Decimal("0.01")


def _idempotency_key(*parts: Any) -> str:
    # Stripe remembers keys for 24h; the day bucket lets a fan repeat a purchase tomorrow.
    day = datetime.now(timezone.utc).strftime("%Y%m%d")
    base = "|".join(str(p) for p in (*parts, day))
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def discounted_price(price: Decimal, discount: Decimal) -> Decimal:
    """Unit price after a membership discount, rounded half-up to cents."""
    return (Decimal(price) * (Decimal(1) - Decimal(discount))).quantize(CENT, rounding=ROUND_HALF_UP)


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory

    def handle_webhook(self, headers: Mapping[str, Any], body: bytes) -> WebhookEvent:
        event = self.gateway.parse_webhook(headers, body)
        logger.info(
            "payment_webhook_parsed",
            provider=self.gateway.provider,
            event_type=event.type,
            event_id=event.id,
            actionable=event.actionable,
        )
        return event

    async def create_membership_checkout(self, req: MembershipCheckoutRequest) -> CheckoutSession:
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(req.user_id)
        if user is None:
            raise UserNotFoundException(req.user_id)

        info = TIER_CATALOG[req.tier]
        checkout = CreateCheckout(
            mode="subscription",
            product_name=info.name,
            description=f"Monthly {info.name} membership",
            unit_amount=info.monthly_price,
            currency=payment_settings.stripe.currency,
            metadata={"user_id": str(user.id), "tier": req.tier.value},
            customer_email=user.email,
            idempotency_key=_idempotency_key("membership", user.id, req.tier.value),
        )
        logger.info("membership_checkout_request", user_id=user.id, tier=req.tier.value)
        return await self.gateway.create_checkout_session(checkout)

    async def create_ticket_checkout(self, req: TicketCheckoutRequest) -> CheckoutSession:
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(req.user_id)
            tour = await uow.tour_repository.get_by_id(req.tour_id)
        if user is None:
            raise UserNotFoundException(req.user_id)
        if tour is None:
            raise TourNotFoundException(req.tour_id)
        # Early check only: the webhook's guarded increment is authoritative.
        if not tour.can_sell(req.quantity):
            raise TicketsUnavailableException(tour.id, req.quantity, tour.remaining)

        unit_price = discounted_price(tour.price_for(req.ticket_type), user.tier_info.discount)
        checkout = CreateCheckout(
            mode="payment",
            product_name=f"{tour.city} - {tour.venue}",
            description=f"{req.ticket_type.value.upper()} ticket",
            unit_amount=unit_price,
            quantity=req.quantity,
            currency=payment_settings.stripe.currency,
            metadata={
                "user_id": str(user.id),
                "tour_id": str(tour.id),
                "ticket_type": req.ticket_type.value,
                "quantity": str(req.quantity),
            },
            customer_email=user.email,
            idempotency_key=_idempotency_key("tickets", user.id, tour.id, req.ticket_type.value, req.quantity),
        )
        logger.info(
            "ticket_checkout_request",
            user_id=user.id,
            tour_id=tour.id,
            ticket_type=req.ticket_type.value,
            quantity=req.quantity,
            unit_price=str(unit_price),
        )
        return await self.gateway.create_checkout_session(checkout)

"""
Stripe Checkout adapter using the official stripe-python SDK.

Notes on SDK usage:
- Checkout sessions are created through `stripe.checkout.Session.create` with
  a per-request `api_key`, so the module-level key is never mutated. The SDK is
  synchronous and runs in a worker thread.
- Webhook verification uses `stripe.WebhookSignature.verify_header` on the raw
  body with the `Stripe-Signature` header; decoding afterwards is strict and
  produces the closed `PaymentEvent` variant, never a guess.
"""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

import stripe

from application.dtos.payments import CheckoutSession, CreateCheckout, WebhookEvent
from domain.reconciliation.entity import (
    MembershipPurchase,
    PaymentEvent,
    PurchaseIntent,
    TicketPurchaseIntent,
)
from domain.tour.entity import TicketType
from domain.user.entity import MembershipTier
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentPayloadError,
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from core.settings import payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)

# Events that confirm a checkout was paid; everything else is acknowledged only
CONFIRMATION_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW"})


def _header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


class StripeClient(BasePaymentClient):
    provider = "stripe"
    retryable_exceptions = (stripe.APIConnectionError, stripe.RateLimitError)

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        tolerance_seconds: Optional[int] = None,
    ):
        super().__init__()
        self._secret_key = secret_key if secret_key is not None else payment_settings.stripe.secret_key
        self._webhook_secret = (
            webhook_secret if webhook_secret is not None else payment_settings.stripe.webhook_secret
        )
        self._tolerance = (
            tolerance_seconds if tolerance_seconds is not None else payment_settings.webhook.tolerance_seconds
        )

    @staticmethod
    def _to_minor(amount: Decimal, currency: str) -> int:
        # Stripe expects amounts in the smallest currency unit
        exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
        return int((amount * (Decimal(10) ** exponent)).to_integral_value())

    @staticmethod
    def _from_minor(amount: Optional[int], currency: str) -> Decimal:
        if amount is None:
            return Decimal("0")
        exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
        return (Decimal(int(amount)) / (Decimal(10) ** exponent)).quantize(Decimal(1) / (Decimal(10) ** exponent))

    # ---- checkout ---------------------------------------------------------

    async def create_checkout_session(self, req: CreateCheckout) -> CheckoutSession:  # type: ignore[override]
        if not self._secret_key:
            raise PaymentProviderError("PAYMENT__STRIPE__SECRET_KEY not configured", provider=self.provider)

        price_data: dict[str, Any] = {
            "currency": req.currency.lower(),
            "product_data": {"name": req.product_name},
            "unit_amount": self._to_minor(req.unit_amount, req.currency),
        }
        if req.description:
            price_data["product_data"]["description"] = req.description
        if req.mode == "subscription":
            price_data["recurring"] = {"interval": "month"}

        params: dict[str, Any] = {
            "mode": req.mode,
            "payment_method_types": ["card"],
            "line_items": [{"price_data": price_data, "quantity": req.quantity}],
            "metadata": req.metadata,
            "success_url": req.success_url or payment_settings.stripe.success_url,
            "cancel_url": req.cancel_url or payment_settings.stripe.cancel_url,
        }
        if req.customer_email:
            params["customer_email"] = req.customer_email

        def _create():
            return stripe.checkout.Session.create(
                api_key=self._secret_key,
                idempotency_key=req.idempotency_key,
                **params,
            )

        try:
            session = await self._retry(lambda: asyncio.to_thread(_create))
        except self.retryable_exceptions as exc:
            raise PaymentRecoverableError(str(exc), provider=self.provider) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                str(exc), provider=self.provider, provider_code=getattr(exc, "code", None)
            ) from exc

        self._log("checkout_session_created", session_id=session["id"], mode=req.mode)
        return CheckoutSession(
            session_id=str(session["id"]),
            url=session.get("url"),
            provider=self.provider,
            amount_total=req.unit_amount * req.quantity,
            currency=req.currency,
        )

    # ---- webhooks ---------------------------------------------------------

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        if not self._webhook_secret:
            raise PaymentSignatureError("Missing PAYMENT__STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = _header(headers, "Stripe-Signature")
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            payload = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PaymentSignatureError("Webhook body is not UTF-8", provider=self.provider) from exc

        try:
            stripe.WebhookSignature.verify_header(payload, sig, self._webhook_secret, self._tolerance)
        except stripe.SignatureVerificationError as exc:
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise PaymentPayloadError("Webhook body is not valid JSON", provider=self.provider) from exc
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise PaymentPayloadError("Webhook event lacks id or type", provider=self.provider)

        event_id = str(event["id"])
        event_type = str(event["type"])
        data = event.get("data") or {}
        session = data.get("object") or {}

        payment_event = None
        if event_type in CONFIRMATION_EVENT_TYPES:
            status = self._map_status(str(session.get("payment_status") or ""))
            if status == "succeeded":
                payment_event = PaymentEvent(
                    event_id=event_id,
                    intent=self._decode_intent(event_id, session),
                    received_at=datetime.now(timezone.utc),
                )
            else:
                self._log("webhook_payment_not_settled", event_id=event_id, payment_status=status)
        else:
            self._log("webhook_event_ignored", event_id=event_id, event_type=event_type)

        return WebhookEvent(
            id=event_id,
            type=event_type,
            provider=self.provider,
            data=data,
            payment_event=payment_event,
        )

    def _decode_intent(self, event_id: str, session: Mapping[str, Any]) -> PurchaseIntent:
        metadata = session.get("metadata") or {}
        user_id = self._positive_int(event_id, metadata, "user_id", required=True)
        has_tier = bool(metadata.get("tier"))
        has_tour = bool(metadata.get("tour_id"))
        if has_tier == has_tour:
            raise PaymentPayloadError(
                "Metadata must carry exactly one of tier or tour_id",
                provider=self.provider,
                field="metadata",
                details={"event_id": event_id, "metadata_keys": sorted(metadata)},
            )

        currency = str(session.get("currency") or payment_settings.stripe.currency)
        try:
            paid_amount = self._from_minor(session.get("amount_total"), currency)
        except (TypeError, ValueError, InvalidOperation) as exc:
            raise PaymentPayloadError(
                "amount_total is not an integer", provider=self.provider, field="amount_total"
            ) from exc

        if has_tier:
            try:
                tier = MembershipTier(str(metadata["tier"]).lower())
            except ValueError as exc:
                raise PaymentPayloadError(
                    f"Unknown membership tier: {metadata['tier']}",
                    provider=self.provider,
                    field="tier",
                    details={"event_id": event_id},
                ) from exc
            if tier is MembershipTier.FREE:
                raise PaymentPayloadError(
                    "Free tier cannot be purchased", provider=self.provider, field="tier"
                )
            customer = session.get("customer")
            return MembershipPurchase(
                user_id=user_id,
                tier=tier,
                paid_amount=paid_amount,
                provider_customer_ref=str(customer) if customer else None,
            )

        tour_id = self._positive_int(event_id, metadata, "tour_id", required=True)
        quantity = self._positive_int(event_id, metadata, "quantity", required=False) or 1
        try:
            ticket_type = TicketType(str(metadata.get("ticket_type") or TicketType.GENERAL.value).lower())
        except ValueError as exc:
            raise PaymentPayloadError(
                f"Unknown ticket type: {metadata.get('ticket_type')}",
                provider=self.provider,
                field="ticket_type",
                details={"event_id": event_id},
            ) from exc
        payment_ref = session.get("payment_intent") or session.get("id")
        if not payment_ref:
            raise PaymentPayloadError(
                "Checkout session has no payment reference", provider=self.provider, field="payment_intent"
            )
        return TicketPurchaseIntent(
            user_id=user_id,
            tour_id=tour_id,
            ticket_type=ticket_type.value,
            quantity=quantity,
            paid_amount=paid_amount,
            provider_payment_ref=str(payment_ref),
        )

    def _positive_int(
        self,
        event_id: str,
        metadata: Mapping[str, Any],
        key: str,
        *,
        required: bool,
    ) -> Optional[int]:
        raw = metadata.get(key)
        if raw in (None, ""):
            if required:
                raise PaymentPayloadError(
                    f"Missing metadata field: {key}",
                    provider=self.provider,
                    field=key,
                    details={"event_id": event_id},
                )
            return None
        try:
            value = int(str(raw).strip())
        except ValueError as exc:
            raise PaymentPayloadError(
                f"Metadata field {key} is not an integer: {raw}",
                provider=self.provider,
                field=key,
                details={"event_id": event_id},
            ) from exc
        if value <= 0:
            raise PaymentPayloadError(
                f"Metadata field {key} must be positive: {value}",
                provider=self.provider,
                field=key,
                details={"event_id": event_id},
            )
        return value

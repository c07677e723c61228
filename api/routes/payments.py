"""
Payments API routes.

Exposes the Stripe webhook and the checkout endpoints the bot calls. Keep this
thin: no SDK details and no SQL here.
"""
from __future__ import annotations

import asyncio
import ipaddress

from fastapi import APIRouter, Depends, HTTPException, Request

from api.dependencies import get_payment_service, get_reconciliation_engine
from application.dtos.payments import (
    MembershipCheckoutRequest,
    ReconciliationResult,
    TicketCheckoutRequest,
)
from application.services.payment_service import PaymentService
from application.services.reconciliation_service import ReconciliationEngine
from core.config import settings
from core.logging_config import get_logger
from core.response import success_response, webhook_ack
from core.settings import payment_settings
from domain.common.exceptions import StoreUnavailableException
from infrastructure.external.payments.exceptions import PaymentPayloadError, PaymentSignatureError


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ip_permitted(remote_ip: str, allowlist: list[str]) -> bool:
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


def _check_ip_allowlist(request: Request) -> None:
    allowlist = payment_settings.webhook.ip_allowlist or []
    if not allowlist:
        return
    remote_ip = request.client.host if request.client else ""
    if not _ip_permitted(remote_ip, allowlist):
        logger.warning("webhook_ip_not_allowed", remote_ip=remote_ip)
        raise HTTPException(status_code=403, detail="Webhook caller not allowed")


@router.post("/webhooks/stripe", summary="Stripe webhook")
async def stripe_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    _check_ip_allowlist(request)

    raw_body = await request.body()
    try:
        event = service.handle_webhook(request.headers, raw_body)
    except (PaymentSignatureError, PaymentPayloadError) as exc:
        # Never retried by us; the provider gets a 400 and nothing is written.
        logger.warning(
            "webhook_verification_failed",
            error_type=exc.error_type,
            reason=exc.message,
            field=exc.field,
        )
        raise

    if not event.actionable:
        return webhook_ack("Event ignored", ignored=True, id=event.id, type=event.type)

    try:
        outcome = await asyncio.wait_for(
            engine.reconcile(event.payment_event),
            timeout=settings.RECONCILE_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as exc:
        logger.error("reconciliation_timeout", event_id=event.id, timeout=settings.RECONCILE_TIMEOUT_SECONDS)
        raise StoreUnavailableException("Reconciliation timed out", details={"event_id": event.id}) from exc

    result = ReconciliationResult.from_outcome(outcome)
    return webhook_ack("Webhook processed", **result.model_dump(mode="json"))


@router.post("/checkout/membership", summary="Create membership checkout session")
async def create_membership_checkout(
    payload: MembershipCheckoutRequest,
    service: PaymentService = Depends(get_payment_service),
):
    session = await service.create_membership_checkout(payload)
    return success_response(data=session.model_dump(mode="json"), message="Checkout session created")


@router.post("/checkout/tickets", summary="Create ticket checkout session")
async def create_ticket_checkout(
    payload: TicketCheckoutRequest,
    service: PaymentService = Depends(get_payment_service),
):
    session = await service.create_ticket_checkout(payload)
    return success_response(data=session.model_dump(mode="json"), message="Checkout session created")

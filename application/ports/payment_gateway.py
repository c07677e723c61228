"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import CheckoutSession, CreateCheckout, WebhookEvent


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    `parse_webhook` must be pure: verify, decode, and never touch the store.
    """

    provider: str

    async def create_checkout_session(self, req: CreateCheckout) -> CheckoutSession: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...

"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported so
settings objects pick them up at import time.
"""
import hashlib
import hmac
import json
import os
import time
from decimal import Decimal
from typing import Optional

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./test-unused.db")
os.environ.setdefault("PAYMENT__STRIPE__WEBHOOK_SECRET", "whsec_test_secret")

import pytest
import pytest_asyncio

from application.dtos.payments import CheckoutSession, CreateCheckout
from application.services.reconciliation_service import ReconciliationEngine
from domain.tour.entity import Tour
from domain.user.entity import MembershipTier, User
from infrastructure.database import create_engine, create_session_factory, create_tables
from infrastructure.unit_of_work import sqlalchemy_uow_factory


WEBHOOK_SECRET = "whsec_test_secret"


class RecordingSink:
    """Notification sink that keeps messages in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[tuple[int, str, Optional[str]]] = []

    async def notify(self, user_id: int, message: str, *, email_subject: Optional[str] = None) -> None:
        if self.fail:
            raise RuntimeError("broker down")
        self.messages.append((user_id, message, email_subject))


class FakeGateway:
    """Checkout gateway double that records requests instead of calling Stripe."""

    provider = "fake"

    def __init__(self):
        self.requests: list[CreateCheckout] = []

    async def create_checkout_session(self, req: CreateCheckout) -> CheckoutSession:
        self.requests.append(req)
        return CheckoutSession(
            session_id=f"cs_fake_{len(self.requests)}",
            url="https://checkout.example.test/session",
            provider=self.provider,
            amount_total=req.unit_amount * req.quantity,
            currency=req.currency,
        )

    def parse_webhook(self, headers, body):
        raise NotImplementedError


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'reconcile.db'}", echo=False)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def reconciliation_engine(uow_factory, sink):
    return ReconciliationEngine(
        uow_factory,
        sink,
        in_progress_attempts=3,
        in_progress_wait_seconds=0.01,
    )


@pytest.fixture
def make_user(uow_factory):
    async def _make(
        telegram_id: int = 1001,
        *,
        tier: MembershipTier = MembershipTier.FREE,
        email: Optional[str] = None,
    ) -> User:
        async with uow_factory() as uow:
            return await uow.user_repository.create(User(
                id=None,
                telegram_id=telegram_id,
                username=f"fan{telegram_id}",
                first_name="Fan",
                email=email,
                membership_tier=tier,
            ))
    return _make


@pytest.fixture
def make_tour(uow_factory):
    async def _make(
        *,
        tickets_available: int = 10,
        tickets_sold: int = 0,
        ticket_price: Decimal = Decimal("50.00"),
        vip_price: Optional[Decimal] = Decimal("150.00"),
    ) -> Tour:
        async with uow_factory() as uow:
            return await uow.tour_repository.create(Tour(
                id=None,
                city="Lisbon",
                venue="Coliseu",
                tickets_available=tickets_available,
                tickets_sold=tickets_sold,
                ticket_price=ticket_price,
                vip_price=vip_price,
            ))
    return _make


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe does (HMAC-SHA256 of `t.payload`)."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def checkout_event(
    event_id: str,
    metadata: dict,
    *,
    event_type: str = "checkout.session.completed",
    payment_status: str = "paid",
    amount_total: Optional[int] = 2999,
    payment_intent: Optional[str] = "pi_test_1",
    customer: Optional[str] = "cus_test_1",
    session_id: str = "cs_test_1",
) -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": amount_total,
                "currency": "usd",
                "customer": customer,
                "payment_intent": payment_intent,
                "payment_status": payment_status,
                "metadata": metadata,
            }
        },
    })


@pytest.fixture
def signed_checkout():
    """Return (body, headers) for a signed checkout.session event."""
    def _build(event_id: str, metadata: dict, **kwargs):
        payload = checkout_event(event_id, metadata, **kwargs)
        return payload.encode("utf-8"), {"Stripe-Signature": sign_payload(payload)}
    return _build

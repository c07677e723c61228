import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import RecordingSink
from application.services.reconciliation_service import ReconciliationEngine
from domain.common.exceptions import ReconciliationInProgressException, StoreUnavailableException
from domain.reconciliation.entity import (
    MembershipPurchase,
    OutcomeStatus,
    PaymentEvent,
    RejectionReason,
    TicketPurchaseIntent,
)
from domain.user.entity import MembershipTier
from infrastructure.database import create_engine, create_session_factory
from infrastructure.models import ProcessedEventModel, TicketPurchaseModel
from infrastructure.repositories.tour_repository import SQLAlchemyTicketPurchaseRepository
from infrastructure.unit_of_work import sqlalchemy_uow_factory


def membership_event(event_id, user_id, tier=MembershipTier.GOLD, customer="cus_1"):
    return PaymentEvent(
        event_id=event_id,
        intent=MembershipPurchase(
            user_id=user_id,
            tier=tier,
            paid_amount=Decimal("29.99"),
            provider_customer_ref=customer,
        ),
    )


def ticket_event(event_id, user_id, tour_id, quantity=1, payment_ref=None):
    return PaymentEvent(
        event_id=event_id,
        intent=TicketPurchaseIntent(
            user_id=user_id,
            tour_id=tour_id,
            ticket_type="general",
            quantity=quantity,
            paid_amount=Decimal("50.00") * quantity,
            provider_payment_ref=payment_ref or f"pi_{event_id}",
        ),
    )


async def _load_tour(uow_factory, tour_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.tour_repository.get_by_id(tour_id)


async def _load_user(uow_factory, user_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.user_repository.get_by_id(user_id)


async def _count(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_membership_granted_once(reconciliation_engine, uow_factory, make_user, sink):
    user = await make_user()

    outcome = await reconciliation_engine.reconcile(membership_event("evt_1", user.id, MembershipTier.GOLD, "cus_9"))

    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.replayed is False
    stored = await _load_user(uow_factory, user.id)
    assert stored.membership_tier is MembershipTier.GOLD
    assert stored.stripe_customer_id == "cus_9"
    assert stored.membership_expires is not None
    assert len(sink.messages) == 1
    assert "Gold Member" in sink.messages[0][1]


@pytest.mark.asyncio
async def test_duplicate_delivery_returns_prior_outcome_without_reapplying(
    uow_factory, make_user, sink
):
    user = await make_user()
    first_now = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
    later_now = datetime(2025, 3, 20, 12, 0, tzinfo=timezone.utc)
    clock = iter([first_now, later_now])
    engine = ReconciliationEngine(uow_factory, sink, clock=lambda: next(clock), in_progress_attempts=2, in_progress_wait_seconds=0)
    event = membership_event("evt_platinum", user.id, MembershipTier.PLATINUM)

    first = await engine.reconcile(event)
    expires_after_first = (await _load_user(uow_factory, user.id)).membership_expires
    second = await engine.reconcile(event)

    assert first.status is second.status is OutcomeStatus.COMPLETED
    assert first.reason == second.reason
    assert second.replayed is True
    assert (await _load_user(uow_factory, user.id)).membership_expires == expires_after_first
    assert expires_after_first == datetime(2025, 4, 10, 12, 0, tzinfo=timezone.utc)
    # Only the first delivery notifies
    assert len(sink.messages) == 1


@pytest.mark.asyncio
async def test_membership_last_write_wins(uow_factory, make_user, sink):
    user = await make_user()
    t1 = datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc)
    t2 = datetime(2025, 1, 31, 9, 0, tzinfo=timezone.utc)
    clock = iter([t1, t2])
    engine = ReconciliationEngine(uow_factory, sink, clock=lambda: next(clock), in_progress_attempts=2, in_progress_wait_seconds=0)

    await engine.reconcile(membership_event("evt_gold", user.id, MembershipTier.GOLD))
    await engine.reconcile(membership_event("evt_silver", user.id, MembershipTier.SILVER))

    stored = await _load_user(uow_factory, user.id)
    assert stored.membership_tier is MembershipTier.SILVER
    # Jan 31 + 1 month clamps to Feb 28; never stacked onto the first expiry
    assert stored.membership_expires == datetime(2025, 2, 28, 9, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_membership_for_unknown_user_is_rejected(reconciliation_engine, session_factory, sink):
    outcome = await reconciliation_engine.reconcile(membership_event("evt_ghost", 999))

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.reason == RejectionReason.USER_NOT_FOUND.value
    assert await _count(session_factory, ProcessedEventModel) == 1
    assert "could not fulfil" in sink.messages[0][1]


@pytest.mark.asyncio
async def test_ticket_purchase_completed(reconciliation_engine, uow_factory, make_user, make_tour, sink):
    user = await make_user()
    tour = await make_tour(tickets_available=10)

    outcome = await reconciliation_engine.reconcile(ticket_event("evt_t1", user.id, tour.id, quantity=3))

    assert outcome.status is OutcomeStatus.COMPLETED
    assert (await _load_tour(uow_factory, tour.id)).tickets_sold == 3
    async with uow_factory(readonly=True) as uow:
        purchase = await uow.ticket_purchase_repository.get_by_payment_ref("pi_evt_t1")
        assert await uow.ticket_purchase_repository.sum_completed_quantity(tour.id) == 3
    assert purchase.quantity == 3
    assert purchase.total_amount == Decimal("150.00")
    assert "Tickets confirmed" in sink.messages[0][1]


@pytest.mark.asyncio
async def test_capacity_exceeded_is_rejected_and_not_applied(
    reconciliation_engine, uow_factory, session_factory, make_user, make_tour, sink
):
    user = await make_user()
    tour = await make_tour(tickets_available=10, tickets_sold=9)

    outcome = await reconciliation_engine.reconcile(ticket_event("evt_big", user.id, tour.id, quantity=2))

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.reason == RejectionReason.CAPACITY_EXCEEDED.value
    assert (await _load_tour(uow_factory, tour.id)).tickets_sold == 9
    assert await _count(session_factory, TicketPurchaseModel) == 0
    assert "sold out" in sink.messages[0][1]


@pytest.mark.asyncio
async def test_unknown_tour_is_rejected(reconciliation_engine, make_user):
    user = await make_user()

    outcome = await reconciliation_engine.reconcile(ticket_event("evt_nowhere", user.id, 4242))

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.reason == RejectionReason.TOUR_NOT_FOUND.value


@pytest.mark.asyncio
async def test_concurrent_purchases_never_oversell(reconciliation_engine, uow_factory, make_user, make_tour):
    user_a = await make_user(1)
    user_b = await make_user(2)
    tour = await make_tour(tickets_available=10, tickets_sold=8)

    outcomes = await asyncio.gather(
        reconciliation_engine.reconcile(ticket_event("evt_a", user_a.id, tour.id, quantity=2)),
        reconciliation_engine.reconcile(ticket_event("evt_b", user_b.id, tour.id, quantity=2)),
    )

    statuses = sorted(o.status.value for o in outcomes)
    assert statuses == ["completed", "rejected"]
    rejected = next(o for o in outcomes if o.status is OutcomeStatus.REJECTED)
    assert rejected.reason == RejectionReason.CAPACITY_EXCEEDED.value
    stored = await _load_tour(uow_factory, tour.id)
    assert stored.tickets_sold == 10
    async with uow_factory(readonly=True) as uow:
        assert await uow.ticket_purchase_repository.sum_completed_quantity(tour.id) == stored.tickets_sold - 8


@pytest.mark.asyncio
async def test_concurrent_identical_deliveries_apply_once(
    reconciliation_engine, uow_factory, session_factory, make_user, make_tour, sink
):
    user = await make_user()
    tour = await make_tour(tickets_available=10)
    event = ticket_event("evt_same", user.id, tour.id, quantity=1)

    outcomes = await asyncio.gather(
        reconciliation_engine.reconcile(event),
        reconciliation_engine.reconcile(event),
    )

    assert {o.status for o in outcomes} == {OutcomeStatus.COMPLETED}
    assert sorted(o.replayed for o in outcomes) == [False, True]
    assert (await _load_tour(uow_factory, tour.id)).tickets_sold == 1
    assert await _count(session_factory, TicketPurchaseModel) == 1
    assert len(sink.messages) == 1


@pytest.mark.asyncio
async def test_same_payment_under_new_event_id_is_recorded_once(
    reconciliation_engine, uow_factory, session_factory, make_user, make_tour, sink
):
    user = await make_user()
    tour = await make_tour(tickets_available=10)

    first = await reconciliation_engine.reconcile(ticket_event("evt_p1", user.id, tour.id, payment_ref="pi_shared"))
    second = await reconciliation_engine.reconcile(ticket_event("evt_p2", user.id, tour.id, payment_ref="pi_shared"))

    assert first.status is OutcomeStatus.COMPLETED
    assert second.status is OutcomeStatus.DUPLICATE
    assert second.reason == RejectionReason.PAYMENT_ALREADY_RECORDED.value
    assert (await _load_tour(uow_factory, tour.id)).tickets_sold == 1
    assert await _count(session_factory, TicketPurchaseModel) == 1
    assert await _count(session_factory, ProcessedEventModel) == 2
    assert len(sink.messages) == 1


@pytest.mark.asyncio
async def test_payment_recorded_after_stale_read_is_duplicate_not_store_error(
    reconciliation_engine, uow_factory, session_factory, make_user, make_tour, sink, monkeypatch
):
    user = await make_user()
    tour = await make_tour(tickets_available=10)
    first = await reconciliation_engine.reconcile(
        ticket_event("evt_race_a", user.id, tour.id, quantity=2, payment_ref="pi_race")
    )
    assert first.status is OutcomeStatus.COMPLETED

    # 模拟并发：读取时对方尚未提交
    async def stale_read(self, provider_payment_ref):
        return None

    monkeypatch.setattr(SQLAlchemyTicketPurchaseRepository, "get_by_payment_ref", stale_read)

    second = await reconciliation_engine.reconcile(
        ticket_event("evt_race_b", user.id, tour.id, quantity=2, payment_ref="pi_race")
    )

    assert second.status is OutcomeStatus.DUPLICATE
    assert second.reason == RejectionReason.PAYMENT_ALREADY_RECORDED.value
    assert (await _load_tour(uow_factory, tour.id)).tickets_sold == 2
    assert await _count(session_factory, TicketPurchaseModel) == 1
    assert await _count(session_factory, ProcessedEventModel) == 2
    assert len(sink.messages) == 1

    replay = await reconciliation_engine.reconcile(
        ticket_event("evt_race_b", user.id, tour.id, quantity=2, payment_ref="pi_race")
    )
    assert replay.status is OutcomeStatus.DUPLICATE
    assert replay.replayed


@pytest.mark.asyncio
async def test_claim_without_outcome_reports_in_progress(reconciliation_engine, session_factory, make_user):
    user = await make_user()
    async with session_factory() as session:
        session.add(ProcessedEventModel(
            event_id="evt_stuck",
            intent="membership",
            created_at=datetime.now(timezone.utc),
            updated_at=datetime.now(timezone.utc),
        ))
        await session.commit()

    with pytest.raises(ReconciliationInProgressException):
        await reconciliation_engine.reconcile(membership_event("evt_stuck", user.id))


@pytest.mark.asyncio
async def test_notification_failure_does_not_change_outcome(uow_factory, make_user):
    user = await make_user()
    engine = ReconciliationEngine(uow_factory, RecordingSink(fail=True), in_progress_attempts=2, in_progress_wait_seconds=0)

    outcome = await engine.reconcile(membership_event("evt_quiet", user.id))

    assert outcome.status is OutcomeStatus.COMPLETED
    assert (await _load_user(uow_factory, user.id)).membership_tier is MembershipTier.GOLD


@pytest.mark.asyncio
async def test_unreachable_store_is_reported_as_unavailable(tmp_path, sink):
    broken = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nowhere.db'}", echo=False)
    engine = ReconciliationEngine(
        sqlalchemy_uow_factory(create_session_factory(broken)),
        sink,
        in_progress_attempts=1,
        in_progress_wait_seconds=0,
    )
    try:
        with pytest.raises(StoreUnavailableException):
            await engine.reconcile(membership_event("evt_down", 1))
    finally:
        await broken.dispose()
    assert sink.messages == []

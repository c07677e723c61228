"""
Reconciliation engine: applies a verified payment event exactly once.

Protocol per event:
1. claim `event_id` in the processed-event log (first write of the transaction)
2. apply the membership grant or ticket purchase in the same transaction
3. record the outcome on the claim row, commit all three together
4. after commit, hand user-facing messages to the notification sink

A concurrent or repeated delivery loses the claim and gets the stored outcome
back. A claim without an outcome belongs to a delivery still in flight; it is
re-read a bounded number of times and then reported as in progress.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import DBAPIError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from application.ports.notifications import NotificationSink
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import ReconciliationInProgressException, StoreUnavailableException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.reconciliation.entity import (
    MembershipPurchase,
    OutcomeStatus,
    PaymentEvent,
    ReconciliationOutcome,
    RejectionReason,
)
from domain.reconciliation.events import MembershipGranted, PurchaseRejected, TicketsConfirmed
from domain.reconciliation.service import ReconciliationDomainService


logger = get_logger(__name__)

REJECTION_MESSAGES = {
    RejectionReason.CAPACITY_EXCEEDED.value: "the show sold out before your payment was confirmed",
    RejectionReason.TOUR_NOT_FOUND.value: "the show is no longer available",
    RejectionReason.USER_NOT_FOUND.value: "we could not find your fan account",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationEngine:
    def __init__(
        self,
        uow_factory: Callable[[], AbstractUnitOfWork],
        notifier: NotificationSink,
        *,
        clock: Callable[[], datetime] = _utcnow,
        in_progress_attempts: Optional[int] = None,
        in_progress_wait_seconds: Optional[float] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._clock = clock
        self._in_progress_attempts = in_progress_attempts or settings.RECONCILE_IN_PROGRESS_ATTEMPTS
        self._in_progress_wait = (
            in_progress_wait_seconds
            if in_progress_wait_seconds is not None
            else settings.RECONCILE_IN_PROGRESS_WAIT_SECONDS
        )

    async def reconcile(self, event: PaymentEvent) -> ReconciliationOutcome:
        """Apply `event` once; repeated calls return an equal status and reason.

        Raises StoreUnavailableException or ReconciliationInProgressException;
        both leave nothing committed and the whole call may be retried.
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._in_progress_attempts),
                wait=wait_fixed(self._in_progress_wait),
                retry=retry_if_exception_type(ReconciliationInProgressException),
                reraise=True,
            ):
                with attempt:
                    outcome, domain_events = await self._apply_once(event)
        except ReconciliationInProgressException:
            logger.warning(
                "reconciliation_in_progress",
                event_id=event.event_id,
                attempts=self._in_progress_attempts,
            )
            raise

        if outcome.replayed:
            logger.info(
                "reconciliation_duplicate_delivery",
                event_id=event.event_id,
                status=outcome.status.value,
                reason=outcome.reason,
            )
            return outcome

        self._log_outcome(event, outcome)
        await self._publish(domain_events)
        return outcome

    async def _apply_once(self, event: PaymentEvent) -> Tuple[ReconciliationOutcome, List]:
        intent = event.intent
        try:
            async with self._uow_factory() as uow:
                claim = await uow.processed_event_repository.claim_event(event.event_id, intent.kind)
                if not claim.inserted:
                    if claim.existing is None or claim.existing.in_progress:
                        raise ReconciliationInProgressException(event.event_id)
                    return claim.existing.to_outcome().as_replay(), []

                service = ReconciliationDomainService(
                    uow.user_repository,
                    uow.tour_repository,
                    uow.ticket_purchase_repository,
                    savepoint=uow.savepoint,
                )
                now = self._clock()
                if isinstance(intent, MembershipPurchase):
                    outcome = await service.apply_membership(event.event_id, intent, now=now)
                else:
                    outcome = await service.apply_ticket_purchase(event.event_id, intent, now=now)

                await uow.processed_event_repository.record_outcome(
                    event.event_id, outcome.status, outcome.reason
                )
                return outcome, service.get_domain_events()
        except (DBAPIError, OSError) as exc:
            logger.error(
                "reconciliation_store_error",
                event_id=event.event_id,
                error=str(exc),
                exc_info=True,
            )
            raise StoreUnavailableException(details={"event_id": event.event_id}) from exc

    def _log_outcome(self, event: PaymentEvent, outcome: ReconciliationOutcome) -> None:
        if outcome.status is OutcomeStatus.COMPLETED:
            logger.info(
                "reconciliation_completed",
                event_id=event.event_id,
                intent=event.intent.kind,
                user_id=event.intent.user_id,
            )
        elif outcome.status is OutcomeStatus.DUPLICATE:
            logger.warning(
                "reconciliation_payment_already_recorded",
                event_id=event.event_id,
                reason=outcome.reason,
            )
        # Rejections are logged by _publish with the full context.

    async def _publish(self, domain_events: List) -> None:
        for domain_event in domain_events:
            if isinstance(domain_event, PurchaseRejected):
                logger.error(
                    "reconciliation_rejected",
                    event_id=domain_event.source_event_id,
                    user_id=domain_event.user_id,
                    intent=domain_event.intent_kind,
                    reason=domain_event.reason,
                )
            message, subject = self._render(domain_event)
            if message is None:
                continue
            try:
                await self._notifier.notify(domain_event.user_id, message, email_subject=subject)
            except Exception as exc:
                # Delivery never changes the financial outcome.
                logger.error(
                    "notification_failed",
                    event_id=domain_event.source_event_id,
                    user_id=domain_event.user_id,
                    error=str(exc),
                )

    @staticmethod
    def _render(domain_event) -> Tuple[Optional[str], Optional[str]]:
        if isinstance(domain_event, MembershipGranted):
            until = f" until {domain_event.expires_at:%Y-%m-%d}" if domain_event.expires_at else ""
            return (
                f"🎉 Welcome to {domain_event.tier_name}! Your benefits are now active{until}.",
                f"Welcome to {domain_event.tier_name}",
            )
        if isinstance(domain_event, TicketsConfirmed):
            plural = "s" if domain_event.quantity > 1 else ""
            return (
                f"🎫 Ticket{plural} confirmed! {domain_event.quantity} x {domain_event.ticket_type} "
                f"for tour #{domain_event.tour_id}. Check your email for details.",
                "Your tickets are confirmed",
            )
        if isinstance(domain_event, PurchaseRejected):
            why = REJECTION_MESSAGES.get(domain_event.reason, "of a problem on our side")
            return (
                f"⚠️ We received your payment but could not fulfil your order because {why}. "
                "Our team has been notified and will contact you.",
                "We could not fulfil your order",
            )
        return None, None

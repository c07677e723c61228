"""
Reconciliation domain service - applies a verified purchase intent to the store.
"""
from __future__ import annotations

from contextlib import nullcontext
from datetime import datetime
from typing import AsyncContextManager, Callable, List, Optional

from domain.tour.entity import TicketPurchase, TicketPurchaseStatus
from domain.tour.repository import PaymentAlreadyRecordedError, TourRepository, TicketPurchaseRepository
from domain.user.repository import UserRepository
from .entity import (
    MembershipPurchase,
    OutcomeStatus,
    ReconciliationOutcome,
    RejectionReason,
    TicketPurchaseIntent,
)
from .events import MembershipGranted, PurchaseRejected, TicketsConfirmed


class ReconciliationDomainService:
    """
    Domain-side effects of a payment confirmation.

    Responsibilities:
    1. Membership: overwrite tier and reset expiry (last write wins)
    2. Tickets: guard against a second record for the same provider payment,
       then reserve capacity and record the purchase in one savepoint
    3. Collect domain events for the application layer to publish after commit

    Must run inside the transaction that holds the event claim.
    """

    def __init__(
        self,
        user_repository: UserRepository,
        tour_repository: TourRepository,
        ticket_purchase_repository: TicketPurchaseRepository,
        savepoint: Optional[Callable[[], AsyncContextManager]] = None,
    ):
        self.user_repository = user_repository
        self.tour_repository = tour_repository
        self.ticket_purchase_repository = ticket_purchase_repository
        self._savepoint = savepoint or nullcontext
        self.events: List = []

    def _duplicate(self, event_id: str) -> ReconciliationOutcome:
        return ReconciliationOutcome(
            event_id=event_id,
            status=OutcomeStatus.DUPLICATE,
            reason=RejectionReason.PAYMENT_ALREADY_RECORDED.value,
        )

    def _reject(self, event_id: str, user_id: int, reason: RejectionReason, kind: str) -> ReconciliationOutcome:
        self.events.append(PurchaseRejected(
            source_event_id=event_id,
            user_id=user_id,
            reason=reason.value,
            intent_kind=kind,
        ))
        return ReconciliationOutcome(event_id=event_id, status=OutcomeStatus.REJECTED, reason=reason.value)

    async def apply_membership(
        self,
        event_id: str,
        intent: MembershipPurchase,
        *,
        now: datetime,
    ) -> ReconciliationOutcome:
        user = await self.user_repository.get_by_id(intent.user_id)
        if user is None:
            return self._reject(event_id, intent.user_id, RejectionReason.USER_NOT_FOUND, intent.kind)

        user.grant_membership(intent.tier, now=now, customer_ref=intent.provider_customer_ref)
        updated = await self.user_repository.update_membership(user)

        self.events.append(MembershipGranted(
            source_event_id=event_id,
            user_id=updated.id,
            tier=updated.membership_tier.value,
            tier_name=updated.tier_info.name,
            expires_at=updated.membership_expires,
        ))
        return ReconciliationOutcome(event_id=event_id, status=OutcomeStatus.COMPLETED)

    async def apply_ticket_purchase(
        self,
        event_id: str,
        intent: TicketPurchaseIntent,
        *,
        now: datetime,
    ) -> ReconciliationOutcome:
        existing = await self.ticket_purchase_repository.get_by_payment_ref(intent.provider_payment_ref)
        if existing is not None:
            return self._duplicate(event_id)

        if await self.user_repository.get_by_id(intent.user_id) is None:
            return self._reject(event_id, intent.user_id, RejectionReason.USER_NOT_FOUND, intent.kind)

        try:
            async with self._savepoint():
                if not await self.tour_repository.reserve_tickets(intent.tour_id, intent.quantity):
                    tour = await self.tour_repository.get_by_id(intent.tour_id)
                    reason = RejectionReason.TOUR_NOT_FOUND if tour is None else RejectionReason.CAPACITY_EXCEEDED
                    return self._reject(event_id, intent.user_id, reason, intent.kind)

                await self.ticket_purchase_repository.create(TicketPurchase(
                    id=None,
                    user_id=intent.user_id,
                    tour_id=intent.tour_id,
                    ticket_type=intent.ticket_type,
                    quantity=intent.quantity,
                    total_amount=intent.paid_amount,
                    provider_payment_ref=intent.provider_payment_ref,
                    status=TicketPurchaseStatus.COMPLETED,
                    purchased_at=now,
                ))
        except PaymentAlreadyRecordedError:
            # A concurrent delivery recorded this payment after the read above;
            # the savepoint has already undone the reservation.
            return self._duplicate(event_id)

        self.events.append(TicketsConfirmed(
            source_event_id=event_id,
            user_id=intent.user_id,
            tour_id=intent.tour_id,
            ticket_type=intent.ticket_type,
            quantity=intent.quantity,
        ))
        return ReconciliationOutcome(event_id=event_id, status=OutcomeStatus.COMPLETED)

    def get_domain_events(self) -> List:
        events = self.events.copy()
        self.events.clear()
        return events

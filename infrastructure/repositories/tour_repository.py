"""
Tour and ticket purchase repositories - SQLAlchemy implementation.
"""
from datetime import datetime, timezone
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from domain.tour.entity import Tour, TicketPurchase, TicketPurchaseStatus
from domain.tour.repository import PaymentAlreadyRecordedError, TourRepository, TicketPurchaseRepository
from infrastructure.models.tour import TourModel, TicketPurchaseModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyTourRepository(TourRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TourModel) -> Tour:
        return Tour(
            id=model.id,
            city=model.city,
            venue=model.venue,
            date=model.date,
            tickets_available=model.tickets_available,
            tickets_sold=model.tickets_sold,
            ticket_price=Decimal(str(model.ticket_price)) if model.ticket_price is not None else None,
            vip_price=Decimal(str(model.vip_price)) if model.vip_price is not None else None,
            status=model.status,
        )

    async def create(self, tour: Tour) -> Tour:
        db_tour = TourModel(
            id=tour.id,
            city=tour.city,
            venue=tour.venue,
            date=tour.date,
            tickets_available=tour.tickets_available,
            tickets_sold=tour.tickets_sold,
            ticket_price=tour.ticket_price,
            vip_price=tour.vip_price,
            status=tour.status,
        )
        self.session.add(db_tour)
        await self.session.flush()
        await self.session.refresh(db_tour)
        return self._to_entity(db_tour)

    async def get_by_id(self, tour_id: int) -> Optional[Tour]:
        result = await self.session.execute(
            select(TourModel).where(TourModel.id == tour_id)
        )
        db_tour = result.scalar_one_or_none()
        return self._to_entity(db_tour) if db_tour else None

    async def reserve_tickets(self, tour_id: int, quantity: int) -> bool:
        # Single guarded UPDATE: the row lock it takes serializes concurrent
        # reservations and the predicate is re-checked against the latest row.
        result = await self.session.execute(
            update(TourModel)
            .where(
                TourModel.id == tour_id,
                TourModel.tickets_sold + quantity <= TourModel.tickets_available,
            )
            .values(tickets_sold=TourModel.tickets_sold + quantity)
            .execution_options(synchronize_session=False)
        )
        reserved = result.rowcount == 1
        logger.info(
            "tickets_reserve_attempt",
            tour_id=tour_id,
            quantity=quantity,
            reserved=reserved,
        )
        return reserved


class SQLAlchemyTicketPurchaseRepository(TicketPurchaseRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TicketPurchaseModel) -> TicketPurchase:
        return TicketPurchase(
            id=model.id,
            user_id=model.user_id,
            tour_id=model.tour_id,
            ticket_type=model.ticket_type,
            quantity=model.quantity,
            total_amount=Decimal(str(model.total_amount)),
            provider_payment_ref=model.stripe_payment_id,
            status=TicketPurchaseStatus(model.status),
            purchased_at=model.purchased_at,
        )

    async def create(self, purchase: TicketPurchase) -> TicketPurchase:
        db_purchase = TicketPurchaseModel(
            user_id=purchase.user_id,
            tour_id=purchase.tour_id,
            ticket_type=purchase.ticket_type,
            quantity=purchase.quantity,
            total_amount=purchase.total_amount,
            stripe_payment_id=purchase.provider_payment_ref,
            status=purchase.status.value,
            purchased_at=purchase.purchased_at or datetime.now(timezone.utc),
        )
        self.session.add(db_purchase)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if "stripe_payment_id" not in str(exc.orig):
                raise
            # 调用方所在的 savepoint 负责回滚本次插入
            raise PaymentAlreadyRecordedError(purchase.provider_payment_ref) from exc
        await self.session.refresh(db_purchase)
        logger.info(
            "ticket_purchase_created",
            purchase_id=db_purchase.id,
            tour_id=db_purchase.tour_id,
            quantity=db_purchase.quantity,
        )
        return self._to_entity(db_purchase)

    async def get_by_payment_ref(self, provider_payment_ref: str) -> Optional[TicketPurchase]:
        result = await self.session.execute(
            select(TicketPurchaseModel).where(TicketPurchaseModel.stripe_payment_id == provider_payment_ref)
        )
        db_purchase = result.scalar_one_or_none()
        return self._to_entity(db_purchase) if db_purchase else None

    async def sum_completed_quantity(self, tour_id: int) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(TicketPurchaseModel.quantity), 0)).where(
                TicketPurchaseModel.tour_id == tour_id,
                TicketPurchaseModel.status == TicketPurchaseStatus.COMPLETED.value,
            )
        )
        return int(result.scalar_one())

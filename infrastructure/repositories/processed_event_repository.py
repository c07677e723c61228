"""
Processed event log - SQLAlchemy implementation.

The claim is an INSERT against the `event_id` primary key. The database's
unique check is what makes concurrent claims race-free: a second writer
either blocks until the first commits and then fails, or fails immediately.
"""
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from domain.reconciliation.entity import ClaimResult, OutcomeStatus, ProcessedEvent
from domain.reconciliation.repository import ProcessedEventRepository
from infrastructure.models.processed_event import ProcessedEventModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyProcessedEventRepository(ProcessedEventRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProcessedEventModel) -> ProcessedEvent:
        return ProcessedEvent(
            event_id=model.event_id,
            intent_kind=model.intent,
            status=OutcomeStatus(model.outcome) if model.outcome else None,
            reason=model.reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def claim_event(self, event_id: str, intent_kind: str) -> ClaimResult:
        """Insert the claim row; must be the first write of the transaction."""
        try:
            self.session.add(ProcessedEventModel(
                event_id=event_id,
                intent=intent_kind,
                created_at=datetime.now(timezone.utc),
                updated_at=datetime.now(timezone.utc),
            ))
            await self.session.flush()
        except IntegrityError:
            # Nothing else was written yet, so rolling back loses nothing.
            await self.session.rollback()
            existing = await self.get(event_id)
            logger.info(
                "event_claim_conflict",
                event_id=event_id,
                outcome=existing.status.value if existing and existing.status else None,
            )
            return ClaimResult(inserted=False, existing=existing)
        return ClaimResult(inserted=True)

    async def get(self, event_id: str) -> Optional[ProcessedEvent]:
        result = await self.session.execute(
            select(ProcessedEventModel).where(ProcessedEventModel.event_id == event_id)
        )
        db_event = result.scalar_one_or_none()
        return self._to_entity(db_event) if db_event else None

    async def record_outcome(
        self,
        event_id: str,
        status: OutcomeStatus,
        reason: Optional[str] = None,
    ) -> None:
        result = await self.session.execute(
            select(ProcessedEventModel).where(ProcessedEventModel.event_id == event_id)
        )
        db_event = result.scalar_one_or_none()
        if db_event is None:
            raise ValueError(f"No claim for event {event_id}")
        db_event.outcome = status.value
        db_event.reason = reason
        db_event.updated_at = datetime.now(timezone.utc)
        await self.session.flush()

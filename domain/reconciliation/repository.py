"""
Processed event log interface (idempotency claims).
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import ClaimResult, OutcomeStatus, ProcessedEvent


class ProcessedEventRepository(ABC):

    @abstractmethod
    async def claim_event(self, event_id: str, intent_kind: str) -> ClaimResult:
        """
        Atomically insert a claim for `event_id`.

        Must be race-free: of any number of concurrent callers with the same
        id exactly one gets `inserted=True`. The others get the existing row,
        which may not carry an outcome yet.
        """
        pass

    @abstractmethod
    async def get(self, event_id: str) -> Optional[ProcessedEvent]:
        pass

    @abstractmethod
    async def record_outcome(
        self,
        event_id: str,
        status: OutcomeStatus,
        reason: Optional[str] = None,
    ) -> None:
        pass

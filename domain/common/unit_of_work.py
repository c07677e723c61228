"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncContextManager

from domain.user.repository import UserRepository
from domain.tour.repository import TourRepository, TicketPurchaseRepository
from domain.reconciliation.repository import ProcessedEventRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application layer.

    Exiting with an exception rolls back; exiting cleanly commits unless the
    unit is read-only or was already committed explicitly.
    """

    user_repository: UserRepository
    tour_repository: TourRepository
    ticket_purchase_repository: TicketPurchaseRepository
    processed_event_repository: ProcessedEventRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.user_repository = None  # type: ignore[assignment]
        self.tour_repository = None  # type: ignore[assignment]
        self.ticket_purchase_repository = None  # type: ignore[assignment]
        self.processed_event_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...

    @abstractmethod
    def savepoint(self) -> AsyncContextManager:
        """Nested scope: an exception inside undoes only the writes made within it."""
        ...

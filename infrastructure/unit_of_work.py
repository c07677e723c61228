"""SQLAlchemy Unit of Work: one AsyncSession, one transaction, four repositories."""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.processed_event_repository import (
    SQLAlchemyProcessedEventRepository,
)
from infrastructure.repositories.tour_repository import (
    SQLAlchemyTicketPurchaseRepository,
    SQLAlchemyTourRepository,
)
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    Reconciliation runs the event claim, the membership/ticket write and the
    outcome record through a single instance, so they commit or roll back
    together. Read-only units (checkout lookups, notification tasks) never
    open an explicit transaction.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._owns_session = session is None
        self.session: Optional[AsyncSession] = session

    def _bind_repositories(self, session: Optional[AsyncSession]) -> None:
        if session is None:
            self.user_repository = None  # type: ignore[assignment]
            self.tour_repository = None  # type: ignore[assignment]
            self.ticket_purchase_repository = None  # type: ignore[assignment]
            self.processed_event_repository = None  # type: ignore[assignment]
            return
        self.user_repository = SQLAlchemyUserRepository(session)
        self.tour_repository = SQLAlchemyTourRepository(session)
        self.ticket_purchase_repository = SQLAlchemyTicketPurchaseRepository(session)
        self.processed_event_repository = SQLAlchemyProcessedEventRepository(session)

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._bind_repositories(self.session)
        if not self._readonly:
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self.session is not None and self._owns_session:
                # close() also discards a transaction left open by a failed commit
                await self.session.close()
                self.session = None
            self._bind_repositories(None)

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False

    def savepoint(self):
        return self.session.begin_nested()


def sqlalchemy_uow_factory(session_factory: Callable[[], AsyncSession]) -> Callable[..., SQLAlchemyUnitOfWork]:
    """Bind a session factory so callers can write `uow_factory(readonly=True)`."""

    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    return _factory

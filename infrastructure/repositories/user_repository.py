"""
User repository - SQLAlchemy implementation.
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.user.entity import User
from domain.user.repository import UserRepository
from domain.common.exceptions import UserNotFoundException
from infrastructure.models.user import UserModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        return User(
            id=model.id,
            telegram_id=model.telegram_id,
            username=model.username,
            first_name=model.first_name,
            email=model.email,
            membership_tier=model.membership_tier,
            membership_expires=model.membership_expires,
            stripe_customer_id=model.stripe_customer_id,
            created_at=model.created_at,
        )

    def _to_model(self, entity: User) -> UserModel:
        return UserModel(
            id=entity.id,
            telegram_id=entity.telegram_id,
            username=entity.username,
            first_name=entity.first_name,
            email=entity.email,
            membership_tier=entity.membership_tier.value,
            membership_expires=entity.membership_expires,
            stripe_customer_id=entity.stripe_customer_id,
            created_at=entity.created_at or datetime.now(timezone.utc),
        )

    async def create(self, user: User) -> User:
        db_user = self._to_model(user)
        self.session.add(db_user)
        await self.session.flush()  # populate generated id
        await self.session.refresh(db_user)
        return self._to_entity(db_user)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.telegram_id == telegram_id)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def update_membership(self, user: User) -> User:
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user.id)
        )
        db_user = result.scalar_one_or_none()

        if not db_user:
            raise UserNotFoundException(user.id)

        db_user.membership_tier = user.membership_tier.value
        db_user.membership_expires = user.membership_expires
        db_user.stripe_customer_id = user.stripe_customer_id

        await self.session.flush()
        await self.session.refresh(db_user)

        logger.info(
            "membership_updated",
            user_id=db_user.id,
            tier=db_user.membership_tier,
            expires=user.membership_expires.isoformat() if user.membership_expires else None,
        )
        return self._to_entity(db_user)

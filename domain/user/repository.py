"""
User repository interface.
"""
from abc import ABC, abstractmethod
from typing import Optional
from .entity import User


class UserRepository(ABC):
    """Abstract user repository: defines what can be done, not how."""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Create a user"""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get a user by internal id"""
        pass

    @abstractmethod
    async def get_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        """Get a user by Telegram id"""
        pass

    @abstractmethod
    async def update_membership(self, user: User) -> User:
        """Persist tier, expiry and provider customer reference"""
        pass

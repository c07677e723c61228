"""
User database model - SQLAlchemy ORM mapping.
Infrastructure detail only; membership rules live in domain.user.entity.User.
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(BigInteger, unique=True, index=True, nullable=False, comment="Telegram user id")

    username = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)

    # Membership
    membership_tier = Column(String(50), nullable=False, default="free", comment="free/silver/gold/platinum")
    membership_expires = Column(DateTime(timezone=True), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<UserModel(id={self.id}, telegram_id={self.telegram_id}, tier='{self.membership_tier}')>"

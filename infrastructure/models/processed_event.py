"""
Processed event log - one row per provider event id.
"""
from sqlalchemy import Column, String, Text, DateTime
from datetime import datetime, timezone

from .base import Base


class ProcessedEventModel(Base):
    __tablename__ = "processed_events"

    event_id = Column(String(255), primary_key=True, comment="Provider event id (idempotency key)")
    intent = Column(String(50), nullable=False, comment="membership/ticket")
    outcome = Column(String(50), nullable=True, comment="NULL while in progress; completed/rejected/duplicate")
    reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<ProcessedEventModel(event_id='{self.event_id}', outcome='{self.outcome}')>"

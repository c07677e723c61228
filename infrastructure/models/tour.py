"""
Tour and ticket purchase database models.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Index, CheckConstraint, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class TourModel(Base):
    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    city = Column(String(255), nullable=False)
    venue = Column(String(255), nullable=False)
    date = Column(DateTime(timezone=True), nullable=True)

    # Inventory
    tickets_available = Column(Integer, nullable=False, default=0, comment="Fixed capacity")
    tickets_sold = Column(Integer, nullable=False, default=0, comment="Incremented by reconciliation only")

    ticket_price = Column(Numeric(precision=10, scale=2), nullable=True)
    vip_price = Column(Numeric(precision=10, scale=2), nullable=True)
    status = Column(String(50), nullable=False, default="active")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("tickets_sold >= 0 AND tickets_sold <= tickets_available", name="capacity"),
    )

    def __repr__(self):
        return f"<TourModel(id={self.id}, city='{self.city}', sold={self.tickets_sold}/{self.tickets_available})>"


class TicketPurchaseModel(Base):
    __tablename__ = "ticket_purchases"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False, index=True)

    ticket_type = Column(String(50), nullable=False, default="general")
    quantity = Column(Integer, nullable=False, default=1)
    total_amount = Column(Numeric(precision=10, scale=2), nullable=False)

    # Secondary idempotency guard: one record per provider payment
    stripe_payment_id = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="pending", comment="pending/completed/refunded")

    purchased_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_ticket_purchases_tour_status", "tour_id", "status"),
        UniqueConstraint("stripe_payment_id", name="uq_ticket_purchases_stripe_payment_id"),
    )

    def __repr__(self):
        return (
            f"<TicketPurchaseModel(id={self.id}, tour_id={self.tour_id}, "
            f"quantity={self.quantity}, status='{self.status}')>"
        )

"""add_processed_events

Revision ID: 9e4d7a2c6b31
Revises: 5b1c2e7f4a10
Create Date: 2025-10-14 15:42:03.771904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '9e4d7a2c6b31'
down_revision: Union[str, None] = '5b1c2e7f4a10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Claim log: the primary key is the idempotency guarantee
    op.create_table(
        'processed_events',
        sa.Column('event_id', sa.String(length=255), nullable=False, comment='Provider event id (idempotency key)'),
        sa.Column('intent', sa.String(length=50), nullable=False, comment='membership/ticket'),
        sa.Column('outcome', sa.String(length=50), nullable=True, comment='NULL while in progress; completed/rejected/duplicate'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('event_id', name='pk_processed_events'),
    )

    # Secondary guard: one purchase row per provider payment
    op.create_unique_constraint(
        'uq_ticket_purchases_stripe_payment_id', 'ticket_purchases', ['stripe_payment_id']
    )
    op.create_check_constraint(
        'ck_tours_capacity', 'tours', 'tickets_sold >= 0 AND tickets_sold <= tickets_available'
    )


def downgrade() -> None:
    op.drop_constraint('ck_tours_capacity', 'tours', type_='check')
    op.drop_constraint('uq_ticket_purchases_stripe_payment_id', 'ticket_purchases', type_='unique')
    op.drop_table('processed_events')

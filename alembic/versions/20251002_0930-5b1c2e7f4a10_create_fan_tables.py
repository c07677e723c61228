"""create_fan_tables

Revision ID: 5b1c2e7f4a10
Revises:
Create Date: 2025-10-02 09:30:12.418223

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5b1c2e7f4a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('telegram_id', sa.BigInteger(), nullable=False, comment='Telegram user id'),
        sa.Column('username', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('membership_tier', sa.String(length=50), nullable=False, server_default='free', comment='free/silver/gold/platinum'),
        sa.Column('membership_expires', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)
    op.create_index('ix_users_telegram_id', 'users', ['telegram_id'], unique=True)

    op.create_table(
        'tours',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('city', sa.String(length=255), nullable=False),
        sa.Column('venue', sa.String(length=255), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tickets_available', sa.Integer(), nullable=False, server_default='0', comment='Fixed capacity'),
        sa.Column('tickets_sold', sa.Integer(), nullable=False, server_default='0', comment='Incremented by reconciliation only'),
        sa.Column('ticket_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('vip_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_tours'),
    )
    op.create_index('ix_tours_id', 'tours', ['id'], unique=False)

    op.create_table(
        'ticket_purchases',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('ticket_type', sa.String(length=50), nullable=False, server_default='general'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('stripe_payment_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending', comment='pending/completed/refunded'),
        sa.Column('purchased_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_ticket_purchases_user_id_users'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], name='fk_ticket_purchases_tour_id_tours'),
        sa.PrimaryKeyConstraint('id', name='pk_ticket_purchases'),
    )
    op.create_index('ix_ticket_purchases_id', 'ticket_purchases', ['id'], unique=False)
    op.create_index('ix_ticket_purchases_user_id', 'ticket_purchases', ['user_id'], unique=False)
    op.create_index('ix_ticket_purchases_tour_id', 'ticket_purchases', ['tour_id'], unique=False)
    op.create_index('ix_ticket_purchases_tour_status', 'ticket_purchases', ['tour_id', 'status'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_ticket_purchases_tour_status', table_name='ticket_purchases')
    op.drop_index('ix_ticket_purchases_tour_id', table_name='ticket_purchases')
    op.drop_index('ix_ticket_purchases_user_id', table_name='ticket_purchases')
    op.drop_index('ix_ticket_purchases_id', table_name='ticket_purchases')
    op.drop_table('ticket_purchases')
    op.drop_index('ix_tours_id', table_name='tours')
    op.drop_table('tours')
    op.drop_index('ix_users_telegram_id', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')

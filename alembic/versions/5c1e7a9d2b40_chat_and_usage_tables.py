"""chat_and_usage_tables

Revision ID: 5c1e7a9d2b40
Revises: 
Create Date: 2026-10-19 10:12:31.184220

Idempotent: tables that already exist (created by init_db) are left alone.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '5c1e7a9d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('full_name', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    if not table_exists('subscriptions'):
        op.create_table('subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('plan_type', sa.String(), nullable=False),
            sa.Column('billing_period', sa.String(), nullable=True),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
            sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False),
            sa.Column('stripe_customer_id', sa.String(), nullable=True),
            sa.Column('stripe_subscription_id', sa.String(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
        op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'], unique=True)

    if not table_exists('usage_tracking'):
        op.create_table('usage_tracking',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('date', sa.Date(), nullable=False),
            sa.Column('searches_used', sa.Integer(), nullable=False),
            sa.Column('deep_searches_used', sa.Integer(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'date', name='uq_usage_user_date')
        )
        op.create_index(op.f('ix_usage_tracking_id'), 'usage_tracking', ['id'], unique=False)
        op.create_index(op.f('ix_usage_tracking_user_id'), 'usage_tracking', ['user_id'], unique=False)
        op.create_index(op.f('ix_usage_tracking_date'), 'usage_tracking', ['date'], unique=False)

    if not table_exists('chats'):
        op.create_table('chats',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('title', sa.Text(), nullable=False),
            sa.Column('visibility', sa.String(length=16), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_chats_id'), 'chats', ['id'], unique=False)
        op.create_index(op.f('ix_chats_user_id'), 'chats', ['user_id'], unique=False)
        op.create_index('idx_chat_user_created', 'chats', ['user_id', 'created_at'], unique=False)

    if not table_exists('messages'):
        op.create_table('messages',
            sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('chat_id', sa.String(length=36), nullable=False),
            sa.Column('role', sa.String(length=16), nullable=False),
            sa.Column('parts', sa.JSON(), nullable=False),
            sa.Column('attachments', sa.JSON(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('seq')
        )
        op.create_index(op.f('ix_messages_id'), 'messages', ['id'], unique=True)
        op.create_index(op.f('ix_messages_chat_id'), 'messages', ['chat_id'], unique=False)
        op.create_index(op.f('ix_messages_created_at'), 'messages', ['created_at'], unique=False)
        op.create_index('idx_message_chat_seq', 'messages', ['chat_id', 'seq'], unique=False)

    if not table_exists('streams'):
        op.create_table('streams',
            sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('chat_id', sa.String(length=36), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('seq')
        )
        op.create_index(op.f('ix_streams_id'), 'streams', ['id'], unique=True)
        op.create_index(op.f('ix_streams_chat_id'), 'streams', ['chat_id'], unique=False)

    if not table_exists('payment_transactions'):
        op.create_table('payment_transactions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('provider_payment_id', sa.String(), nullable=False),
            sa.Column('provider_order_id', sa.String(), nullable=False),
            sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('plan_type', sa.String(), nullable=False),
            sa.Column('billing_period', sa.String(), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_payment_transactions_id'), 'payment_transactions', ['id'], unique=False)
        op.create_index(op.f('ix_payment_transactions_user_id'), 'payment_transactions', ['user_id'], unique=False)
        op.create_index(op.f('ix_payment_transactions_provider_payment_id'), 'payment_transactions', ['provider_payment_id'], unique=False)

    if not table_exists('documents'):
        op.create_table('documents',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('chat_id', sa.String(length=36), nullable=True),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('kind', sa.String(length=16), nullable=False),
            sa.Column('content', sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_documents_id'), 'documents', ['id'], unique=False)
        op.create_index(op.f('ix_documents_user_id'), 'documents', ['user_id'], unique=False)
        op.create_index(op.f('ix_documents_chat_id'), 'documents', ['chat_id'], unique=False)
        op.create_index('idx_document_user_created', 'documents', ['user_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('documents')
    op.drop_table('payment_transactions')
    op.drop_table('streams')
    op.drop_table('messages')
    op.drop_table('chats')
    op.drop_table('usage_tracking')
    op.drop_table('subscriptions')
    op.drop_table('users')

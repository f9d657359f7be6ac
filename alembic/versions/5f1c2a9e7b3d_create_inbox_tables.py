"""create inbox tables

Revision ID: 5f1c2a9e7b3d
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5f1c2a9e7b3d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


conversationstatus_enum = sa.Enum('OPEN', 'PENDING', 'RESOLVED', name='conversationstatus')


def upgrade() -> None:
    # Pages are provisioned elsewhere; the core only reads their tokens
    op.create_table('pages',
        sa.Column('id', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('is_connected', sa.Boolean(), nullable=True, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('conversations',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('page_id', sa.String(length=100), nullable=False),
        sa.Column('customer_id', sa.String(length=100), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_avatar', sa.String(length=500), nullable=True),
        sa.Column('last_message', sa.Text(), nullable=True),
        sa.Column('last_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_inbound_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', conversationstatus_enum, nullable=False, server_default='OPEN'),
        sa.Column('assigned_agent_id', sa.String(length=100), nullable=True),
        sa.Column('unread_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('unread_count >= 0', name='ck_conversations_unread_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_conversations_page_timestamp', 'conversations', ['page_id', 'last_timestamp'], unique=False)
    op.create_index('ix_conversations_status', 'conversations', ['status'], unique=False)
    op.create_index('ix_conversations_customer', 'conversations', ['customer_id'], unique=False)

    op.create_table('messages',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('conversation_id', sa.String(length=255), nullable=False),
        sa.Column('sender_id', sa.String(length=100), nullable=False),
        sa.Column('sender_name', sa.String(length=255), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_incoming', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_messages_conversation_timestamp', 'messages', ['conversation_id', 'timestamp'], unique=False)
    op.create_index('ix_messages_timestamp', 'messages', ['timestamp'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_messages_timestamp', table_name='messages')
    op.drop_index('ix_messages_conversation_timestamp', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_conversations_customer', table_name='conversations')
    op.drop_index('ix_conversations_status', table_name='conversations')
    op.drop_index('ix_conversations_page_timestamp', table_name='conversations')
    op.drop_table('conversations')
    conversationstatus_enum.drop(op.get_bind(), checkfirst=True)
    op.drop_table('pages')

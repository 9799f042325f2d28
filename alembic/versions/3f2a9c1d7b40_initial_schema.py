"""initial_schema

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-10-18 09:12:44.102315

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'conversations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('last_message_preview', sa.Text(), nullable=True),
        sa.Column('last_message_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_conversations_last_activity_at', 'conversations', ['last_activity_at'])

    op.create_table(
        'conversation_members',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('conversation_id', sa.String(length=64), nullable=False),
        sa.Column('participant_id', sa.String(length=64), nullable=False),
        sa.Column('last_read_at', sa.DateTime(), nullable=True),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('conversation_id', 'participant_id', name='uq_conversation_member'),
    )
    op.create_index(
        'ix_conversation_members_conversation_id', 'conversation_members', ['conversation_id']
    )
    op.create_index(
        'ix_conversation_members_participant_id', 'conversation_members', ['participant_id']
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('server_id', sa.String(length=64), nullable=True),
        sa.Column('conversation_id', sa.String(length=64), nullable=False),
        sa.Column('sender_id', sa.String(length=64), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_messages_server_id', 'messages', ['server_id'])
    op.create_index('ix_messages_conversation_created', 'messages', ['conversation_id', 'created_at'])

    op.create_table(
        'call_history',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('call_id', sa.String(length=64), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('caller_id', sa.String(length=64), nullable=False),
        sa.Column('callee_id', sa.String(length=64), nullable=False),
        sa.Column('call_type', sa.String(length=10), nullable=False),
        sa.Column('final_status', sa.String(length=20), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('call_id', 'owner_id', name='uq_call_history_call_owner'),
    )
    op.create_index('ix_call_history_call_id', 'call_history', ['call_id'])
    op.create_index('ix_call_history_owner_started', 'call_history', ['owner_id', 'started_at'])

    op.create_table(
        'retry_queue',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('conversation_id', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('next_retry_at', sa.DateTime(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_retry_queue_conversation_id', 'retry_queue', ['conversation_id'])
    op.create_index('ix_retry_queue_next_retry_at', 'retry_queue', ['next_retry_at'])


def downgrade() -> None:
    op.drop_index('ix_retry_queue_next_retry_at', table_name='retry_queue')
    op.drop_index('ix_retry_queue_conversation_id', table_name='retry_queue')
    op.drop_table('retry_queue')
    op.drop_index('ix_call_history_owner_started', table_name='call_history')
    op.drop_index('ix_call_history_call_id', table_name='call_history')
    op.drop_table('call_history')
    op.drop_index('ix_messages_conversation_created', table_name='messages')
    op.drop_index('ix_messages_server_id', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_conversation_members_participant_id', table_name='conversation_members')
    op.drop_index('ix_conversation_members_conversation_id', table_name='conversation_members')
    op.drop_table('conversation_members')
    op.drop_index('ix_conversations_last_activity_at', table_name='conversations')
    op.drop_table('conversations')

"""initial messaging schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('username', sa.String(150), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(150), nullable=True),
        sa.Column('avatar_url', sa.String(255), nullable=True),
        sa.Column('is_disabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_pending', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now())
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('user_follows',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('follower_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('followee_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('follower_id', 'followee_id', name='uix_follow_pair')
    )
    op.create_index('ix_user_follows_followee_id', 'user_follows', ['followee_id'])

    op.create_table('user_blocks',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('blocker_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('blocked_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('blocker_id', 'blocked_id', name='uix_block_pair')
    )
    op.create_index('ix_user_blocks_blocked_id', 'user_blocks', ['blocked_id'])

    op.create_table('conversations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('participant_low', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('participant_high', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('participant_low', 'participant_high', name='uix_conversation_pair'),
        sa.CheckConstraint('participant_low < participant_high', name='ck_conversation_pair_order')
    )
    op.create_index('ix_conversations_participant_high', 'conversations', ['participant_high'])
    op.create_index('ix_conversations_last_activity_at', 'conversations', ['last_activity_at'])

    op.create_table('messages',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('conversation_id', sa.Integer, sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_by_sender', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_by_recipient', sa.Boolean(), nullable=False, server_default=sa.false())
    )
    op.create_index('ix_messages_conversation_created', 'messages', ['conversation_id', 'created_at', 'id'])

def downgrade():
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('user_blocks')
    op.drop_table('user_follows')
    op.drop_table('users')

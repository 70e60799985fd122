"""add ai_chat_history, pinyin_learn and english_learn tables

Revision ID: d52c7f9e4b81
Revises: 8b4e6d0a1c23
Create Date: 2026-10-15 20:10:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'd52c7f9e4b81'
down_revision: Union[str, Sequence[str], None] = '8b4e6d0a1c23'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tutor chat history and drill counter tables."""
    op.create_table('ai_chat_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image_data', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_ai_chat_history_user_id', 'ai_chat_history', ['user_id'])
    op.create_table('pinyin_learn',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('pinyin', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=True, server_default='initial'),
        sa.Column('learn_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_learned_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'pinyin', 'type')
    )
    op.create_table('english_learn',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('word', sa.String(), nullable=False),
        sa.Column('level', sa.String(), nullable=True, server_default='beginner'),
        sa.Column('learn_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_learned_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'word', 'level')
    )


def downgrade() -> None:
    """Drop tutor chat history and drill counter tables."""
    op.drop_table('english_learn')
    op.drop_table('pinyin_learn')
    op.drop_index('ix_ai_chat_history_user_id', table_name='ai_chat_history')
    op.drop_table('ai_chat_history')

"""add mastery, game stats, achievement and game session tables

Revision ID: 8b4e6d0a1c23
Revises: 3f1a9c2b7d10
Create Date: 2026-10-13 14:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b4e6d0a1c23'
down_revision: Union[str, Sequence[str], None] = '3f1a9c2b7d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the bookkeeping tables for mastery, experience and achievements."""
    op.create_table('mastery_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('correct_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('wrong_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('consecutive_correct', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('mastery_level', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('last_practiced_at', sa.DateTime(), nullable=True),
        sa.Column('mastered_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['item_id'], ['vocabulary_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'item_id')
    )
    op.create_index('ix_mastery_records_item_id', 'mastery_records', ['item_id'])
    op.create_table('game_stats',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('total_exp', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('current_level', sa.Integer(), nullable=True, server_default='1'),
        sa.Column('total_stars', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('consecutive_days', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('last_learn_date', sa.Date(), nullable=True),
        sa.Column('total_words_learned', sa.Integer(), nullable=True, server_default='0'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_table('unlocked_achievements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('achievement_id', sa.String(), nullable=False),
        sa.Column('unlocked_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'achievement_id')
    )
    op.create_table('game_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('game_type', sa.String(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('exp_earned', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('correct_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('total_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_game_sessions_user_id', 'game_sessions', ['user_id'])


def downgrade() -> None:
    """Drop the bookkeeping tables."""
    op.drop_index('ix_game_sessions_user_id', table_name='game_sessions')
    op.drop_table('game_sessions')
    op.drop_table('unlocked_achievements')
    op.drop_table('game_stats')
    op.drop_index('ix_mastery_records_item_id', table_name='mastery_records')
    op.drop_table('mastery_records')

"""create users and vocabulary tables

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, vocabulary_items and deleted_vocabulary_items."""
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('password', sa.String(), nullable=False),
        sa.Column('api_key_enc', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username')
    )
    op.create_table('vocabulary_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('text', sa.String(), nullable=False),
        sa.Column('phonetic', sa.String(), nullable=True),
        sa.Column('meaning', sa.Text(), nullable=True),
        sa.Column('practice_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('mastery_level', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('consecutive_correct', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('is_mastered', sa.Boolean(), nullable=True, server_default='0'),
        sa.Column('mastered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'kind', 'text')
    )
    op.create_index('ix_vocabulary_items_user_id', 'vocabulary_items', ['user_id'])
    op.create_table('deleted_vocabulary_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('text', sa.String(), nullable=False),
        sa.Column('phonetic', sa.String(), nullable=True),
        sa.Column('meaning', sa.Text(), nullable=True),
        sa.Column('practice_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('mastery_level', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('is_mastered', sa.Boolean(), nullable=True, server_default='0'),
        sa.Column('mastered_at', sa.DateTime(), nullable=True),
        sa.Column('added_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'kind', 'text')
    )
    op.create_index('ix_deleted_vocabulary_items_user_id', 'deleted_vocabulary_items', ['user_id'])


def downgrade() -> None:
    """Drop vocabulary and user tables."""
    op.drop_index('ix_deleted_vocabulary_items_user_id', table_name='deleted_vocabulary_items')
    op.drop_table('deleted_vocabulary_items')
    op.drop_index('ix_vocabulary_items_user_id', table_name='vocabulary_items')
    op.drop_table('vocabulary_items')
    op.drop_table('users')

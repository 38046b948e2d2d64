"""initial forum schema

Revision ID: 3c1f0e7a9b2d
Revises:
Create Date: 2026-10-18 10:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0e7a9b2d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    user_role = sa.Enum('user', 'moderator', 'admin', name='user_role')

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False, server_default='user'),
        sa.Column('post_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reputation', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bio', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'topics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False, server_default='General'),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('post_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_pinned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_moderated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('moderation_reason', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('moderated_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('last_activity', sa.DateTime(), nullable=False),
        sa.Column('last_post_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_topics_author_id', 'topics', ['author_id'])
    op.create_index('ix_topics_category', 'topics', ['category'])
    op.create_index(
        'idx_topics_listing', 'topics',
        ['is_deleted', sa.text('is_pinned DESC'), sa.text('last_activity DESC')],
    )

    op.create_table(
        'posts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('topic_id', sa.Integer(), sa.ForeignKey('topics.id'), nullable=False),
        sa.Column('parent_post_id', sa.Integer(), sa.ForeignKey('posts.id'), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('like_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_reported', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reported_at', sa.DateTime(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_moderated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('moderation_reason', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_posts_author_id', 'posts', ['author_id'])
    op.create_index('ix_posts_topic_id', 'posts', ['topic_id'])
    op.create_index('ix_posts_parent_post_id', 'posts', ['parent_post_id'])
    op.create_index('idx_posts_topic_parent_created', 'posts', ['topic_id', 'parent_post_id', 'created_at'])
    op.create_index('idx_posts_reported', 'posts', ['is_reported', 'is_deleted', 'reported_at'])

    op.create_table(
        'post_likes',
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'post_reports',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('reported_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('reported_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('post_id', 'reported_by_id', name='uq_post_reports_post_reporter'),
    )
    op.create_index('ix_post_reports_post_id', 'post_reports', ['post_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('post_reports')
    op.drop_table('post_likes')
    op.drop_table('posts')
    op.drop_table('topics')
    op.drop_table('users')
    sa.Enum(name='user_role').drop(op.get_bind(), checkfirst=True)

"""Create media, import report and job queue tables

Revision ID: 001_create_import_tables
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = '001_create_import_tables'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(255), nullable=False),
            sa.Column('username', sa.String(50), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('last_import_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
        op.create_index('ix_users_username', 'users', ['username'], unique=True)

    if not table_exists('metadata'):
        op.create_table(
            'metadata',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('lot', sa.String(20), nullable=False),
            sa.Column('source', sa.String(20), nullable=False),
            sa.Column('identifier', sa.String(100), nullable=False),
            sa.Column('title', sa.String(500), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('creators', sa.JSON(), nullable=False),
            sa.Column('images', sa.JSON(), nullable=False),
            sa.Column('publish_year', sa.Integer(), nullable=True),
            sa.Column('specifics', sa.JSON(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('lot', 'source', 'identifier', name='unique_metadata_identifier'),
        )
        op.create_index('ix_metadata_lot', 'metadata', ['lot'])
        op.create_index('ix_metadata_source', 'metadata', ['source'])
        op.create_index('ix_metadata_identifier', 'metadata', ['identifier'])
        op.create_index('ix_metadata_title', 'metadata', ['title'])

    if not table_exists('seen'):
        op.create_table(
            'seen',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('metadata_id', sa.Integer(), nullable=False),
            sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('finished_on', sa.Date(), nullable=True),
            sa.Column('show_season_number', sa.Integer(), nullable=True),
            sa.Column('show_episode_number', sa.Integer(), nullable=True),
            sa.Column('podcast_episode_number', sa.Integer(), nullable=True),
            sa.Column('identifier', sa.String(100), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(['user_id'], ['users.id']),
            sa.ForeignKeyConstraint(['metadata_id'], ['metadata.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_seen_user_id', 'seen', ['user_id'])
        op.create_index('ix_seen_metadata_id', 'seen', ['metadata_id'])
        op.create_index('ix_seen_identifier', 'seen', ['identifier'])

    if not table_exists('reviews'):
        op.create_table(
            'reviews',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('metadata_id', sa.Integer(), nullable=False),
            sa.Column('rating', sa.Numeric(5, 2), nullable=True),
            sa.Column('text', sa.Text(), nullable=True),
            sa.Column('spoiler', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('posted_on', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('identifier', sa.String(100), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id']),
            sa.ForeignKeyConstraint(['metadata_id'], ['metadata.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_reviews_user_id', 'reviews', ['user_id'])
        op.create_index('ix_reviews_metadata_id', 'reviews', ['metadata_id'])
        op.create_index('ix_reviews_identifier', 'reviews', ['identifier'])

    if not table_exists('collections'):
        op.create_table(
            'collections',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(['user_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'name', name='unique_user_collection'),
        )
        op.create_index('ix_collections_user_id', 'collections', ['user_id'])

    if not table_exists('collection_to_metadata'):
        op.create_table(
            'collection_to_metadata',
            sa.Column('collection_id', sa.Integer(), nullable=False),
            sa.Column('metadata_id', sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(['collection_id'], ['collections.id']),
            sa.ForeignKeyConstraint(['metadata_id'], ['metadata.id']),
            sa.PrimaryKeyConstraint('collection_id', 'metadata_id'),
        )

    if not table_exists('user_summaries'):
        op.create_table(
            'user_summaries',
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('data', sa.JSON(), nullable=False),
            sa.Column('calculated_on', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(['user_id'], ['users.id']),
            sa.PrimaryKeyConstraint('user_id'),
        )

    if not table_exists('media_import_reports'):
        op.create_table(
            'media_import_reports',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('source', sa.String(50), nullable=False),
            sa.Column('started_on', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('finished_on', sa.DateTime(), nullable=True),
            sa.Column('success', sa.Boolean(), nullable=True),
            sa.Column('details', sa.JSON(), nullable=True),
            sa.Column('job_id', sa.String(36), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_media_import_reports_user_id', 'media_import_reports', ['user_id'])
        op.create_index('ix_media_import_reports_started_on', 'media_import_reports', ['started_on'])
        op.create_index('ix_media_import_reports_success', 'media_import_reports', ['success'])
        op.create_index('ix_media_import_reports_job_id', 'media_import_reports', ['job_id'])

    if not table_exists('job_queue'):
        op.create_table(
            'job_queue',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('job_id', sa.String(36), nullable=False),
            sa.Column('name', sa.String(50), nullable=False),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
            sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_error', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('locked_at', sa.DateTime(), nullable=True),
            sa.Column('locked_by', sa.String(100), nullable=True),
            sa.Column('done_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_job_queue_job_id', 'job_queue', ['job_id'], unique=True)
        op.create_index('ix_job_queue_name', 'job_queue', ['name'])
        op.create_index('ix_job_queue_status', 'job_queue', ['status'])
        op.create_index('ix_job_queue_created_at', 'job_queue', ['created_at'])


def downgrade() -> None:
    for table in (
        'job_queue',
        'media_import_reports',
        'user_summaries',
        'collection_to_metadata',
        'collections',
        'reviews',
        'seen',
        'metadata',
        'users',
    ):
        if table_exists(table):
            op.drop_table(table)

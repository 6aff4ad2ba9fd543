"""Video pipeline tables migration.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create video_records table
    op.create_table(
        'video_records',
        sa.Column('video_id', sa.String(512), nullable=False),
        sa.Column('owner', sa.String(255), nullable=True),
        sa.Column('title', sa.String(512), nullable=True),
        sa.Column('source_bucket', sa.String(255), nullable=True),
        sa.Column('source_key', sa.String(1024), nullable=True),
        sa.Column('output_prefix', sa.String(1024), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('thumbnail_url', sa.String(2048), nullable=True),
        sa.Column('master_playlist_url', sa.String(2048), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('task_ref', sa.String(512), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('video_id'),
    )
    op.create_index('ix_video_records_owner', 'video_records', ['owner'])
    op.create_index('ix_video_records_status', 'video_records', ['status'])

    # Create owner_overlays table
    op.create_table(
        'owner_overlays',
        sa.Column('owner', sa.String(255), nullable=False),
        sa.Column('overlay_key', sa.String(1024), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('owner'),
    )


def downgrade() -> None:
    op.drop_table('owner_overlays')
    op.drop_index('ix_video_records_status', table_name='video_records')
    op.drop_index('ix_video_records_owner', table_name='video_records')
    op.drop_table('video_records')

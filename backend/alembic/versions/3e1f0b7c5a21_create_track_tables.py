"""create tracks, track_runs, track_files, checkpoint_entries

Revision ID: 3e1f0b7c5a21
Revises:
Create Date: 2026-01-10 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3e1f0b7c5a21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'tracks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('source', sa.String(length=20), server_default='gpx', nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_distance_m', sa.Float(), nullable=False),
        sa.Column('ski_vertical_m', sa.Float(), nullable=False),
        sa.Column('run_count', sa.Integer(), nullable=False),
        sa.Column('stats', _json(), nullable=False),
        sa.Column('points', _json(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tracks_id', 'tracks', ['id'])

    op.create_table(
        'track_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('track_id', sa.Integer(), nullable=False),
        sa.Column('idx', sa.Integer(), nullable=False),
        sa.Column('start_index', sa.Integer(), nullable=False),
        sa.Column('end_index', sa.Integer(), nullable=False),
        sa.Column('distance_m', sa.Float(), nullable=False),
        sa.Column('vertical_drop_m', sa.Float(), nullable=False),
        sa.Column('avg_speed_mps', sa.Float(), nullable=False),
        sa.Column('max_speed_mps', sa.Float(), nullable=False),
        sa.Column('duration_s', sa.Float(), nullable=False),
        sa.Column('start_elevation_m', sa.Float(), nullable=False),
        sa.Column('end_elevation_m', sa.Float(), nullable=False),
        sa.Column('avg_slope', sa.Float(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('avg_hr', sa.Float(), nullable=True),
        sa.Column('max_hr', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['track_id'], ['tracks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_track_runs_id', 'track_runs', ['id'])
    op.create_index('ix_track_runs_track_id', 'track_runs', ['track_id'])

    op.create_table(
        'track_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('track_id', sa.Integer(), nullable=False),
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('content_type', sa.String(), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('storage_path', sa.String(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['track_id'], ['tracks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_track_files_id', 'track_files', ['id'])
    op.create_index('ix_track_files_track_id', 'track_files', ['track_id'])

    op.create_table(
        'checkpoint_entries',
        sa.Column('key', sa.String(length=200), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )


def downgrade() -> None:
    op.drop_table('checkpoint_entries')
    op.drop_index('ix_track_files_track_id', table_name='track_files')
    op.drop_index('ix_track_files_id', table_name='track_files')
    op.drop_table('track_files')
    op.drop_index('ix_track_runs_track_id', table_name='track_runs')
    op.drop_index('ix_track_runs_id', table_name='track_runs')
    op.drop_table('track_runs')
    op.drop_index('ix_tracks_id', table_name='tracks')
    op.drop_table('tracks')

"""001 initial video tables

Revision ID: 001_initial_video_tables
Revises:
Create Date: 2026-10-19

Creates lessons (read-side mirror of the LMS catalogue), videos with the
video_status enum, and video_access_logs.
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_video_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

VIDEO_STATUSES = ("pending", "processing", "ready", "failed", "replaced", "deleted")


def upgrade() -> None:
    """Create lessons, videos and video_access_logs."""
    op.create_table(
        "lessons",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("is_free", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    video_status = postgresql.ENUM(*VIDEO_STATUSES, name="video_status", create_type=False)
    video_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "videos",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("lesson_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("original_path", sa.String(1024), nullable=False),
        sa.Column("hls_path", sa.String(1024), nullable=True),
        sa.Column("encryption_key_encrypted", sa.LargeBinary(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("status", video_status, nullable=False, server_default="pending"),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["lesson_id"],
            ["lessons.id"],
            name="fk_videos_lesson_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_videos_lesson_id_created_at", "videos", ["lesson_id", "created_at"])
    op.create_index("ix_videos_status", "videos", ["status"])

    op.create_table(
        "video_access_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("video_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("device_fingerprint", sa.String(255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("watch_duration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("seek_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("speed_changes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("suspicious_activity", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["video_id"],
            ["videos.id"],
            name="fk_video_access_logs_video_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_video_access_logs_user_id", "video_access_logs", ["user_id"])
    op.create_index("ix_video_access_logs_video_id", "video_access_logs", ["video_id"])


def downgrade() -> None:
    """Drop video tables and the video_status enum."""
    op.drop_index("ix_video_access_logs_video_id", table_name="video_access_logs")
    op.drop_index("ix_video_access_logs_user_id", table_name="video_access_logs")
    op.drop_table("video_access_logs")
    op.drop_index("ix_videos_status", table_name="videos")
    op.drop_index("ix_videos_lesson_id_created_at", table_name="videos")
    op.drop_table("videos")
    postgresql.ENUM(name="video_status").drop(op.get_bind(), checkfirst=True)
    op.drop_table("lessons")

"""SQLAlchemy 2.0 ORM models.

This module contains all SQLAlchemy models for the video pipeline.
All models use the Mapped[type] annotation pattern required by SQLAlchemy 2.0.

Encrypted Fields Pattern:
    The per-video HLS AES key is stored encrypted using Fernet symmetric
    encryption. Encrypted columns follow the naming convention
    `{field}_encrypted` and use LargeBinary type since Fernet outputs bytes.

    NEVER expose encrypted fields in __repr__ or log statements.

Lesson is owned by the LMS course catalogue. It is mapped here read-side only
so the pipeline can resolve a video's owning lesson and its free flag.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates

from app.exceptions import InvalidStateTransitionError

SIZE_UNITS = ("B", "KB", "MB", "GB")


def utcnow() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class VideoStatus(enum.Enum):
    """Processing state of an uploaded video.

    Flow (Happy Path):
        pending → processing → ready

    Error Recovery Flow:
        processing → failed → processing (next attempt of the same job)
        failed/processing → pending (operator reprocess)

    Terminal States:
        replaced (a newer upload took over the lesson), deleted
    """

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    REPLACED = "replaced"
    DELETED = "deleted"


# Statuses that cannot be the primary video of a lesson
INACTIVE_STATUSES = (VideoStatus.REPLACED, VideoStatus.DELETED)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Lesson(Base):
    """Lesson that owns videos (read-side mirror of the LMS catalogue).

    Attributes:
        id: Lesson UUID.
        title: Lesson title shown alongside preview URLs.
        is_free: Free lessons can be streamed without authentication.
    """

    __tablename__ = "lessons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    is_free: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Lesson(id={self.id!s:.8}, title={self.title!r}, is_free={self.is_free})>"


class Video(Base):
    """Uploaded video and its processing state.

    Created by the upload endpoint with status=pending. Only the transcoding
    worker moves it through processing/ready/failed; a replacement upload for
    the same lesson moves the previous record to replaced.

    Attributes:
        original_path: Path of the raw upload relative to a storage root
            (e.g. "temp-videos/<uuid>.mp4").
        hls_path: Processed output relative to a storage root, either
            "videos/<id>/index.m3u8" or, in degraded mode, a direct media copy.
        encryption_key_encrypted: Fernet-encrypted AES-128 key for HLS segments.
        video_metadata: JSON map stored in the "metadata" column, validated
            through app.schemas.video.VideoMetadata.
    """

    __tablename__ = "videos"

    # Valid status transitions, enforced by @validates below
    VALID_TRANSITIONS = {
        VideoStatus.PENDING: [
            VideoStatus.PROCESSING,
            VideoStatus.REPLACED,
            VideoStatus.DELETED,
        ],
        VideoStatus.PROCESSING: [
            VideoStatus.READY,
            VideoStatus.FAILED,
            VideoStatus.PENDING,  # Operator reprocess of a stuck job
            VideoStatus.REPLACED,
        ],
        VideoStatus.READY: [
            VideoStatus.REPLACED,
            VideoStatus.DELETED,
        ],
        VideoStatus.FAILED: [
            VideoStatus.PROCESSING,  # Next attempt within the retry budget
            VideoStatus.PENDING,  # Operator reprocess
            VideoStatus.REPLACED,
            VideoStatus.DELETED,
        ],
        VideoStatus.REPLACED: [],
        VideoStatus.DELETED: [],
    }

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    lesson_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("lessons.id", ondelete="SET NULL"),
        nullable=True,
    )
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    hls_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    encryption_key_encrypted: Mapped[bytes | None] = mapped_column(
        LargeBinary,
        nullable=True,
    )
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[VideoStatus] = mapped_column(
        Enum(
            VideoStatus,
            native_enum=True,
            name="video_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=VideoStatus.PENDING,
    )
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    # Timestamps (UTC timezone-aware)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        # Primary-video lookup: latest active video per lesson
        Index("ix_videos_lesson_id_created_at", "lesson_id", "created_at"),
        Index("ix_videos_status", "status"),
    )

    @validates("status")
    def validate_status_change(self, key: str, value: VideoStatus) -> VideoStatus:
        """Validate status transition before committing to database.

        Args:
            key: The attribute name being validated (always "status").
            value: The new VideoStatus value being assigned.

        Returns:
            The validated VideoStatus value if transition is valid.

        Raises:
            InvalidStateTransitionError: If the transition is not listed in
                VALID_TRANSITIONS.

        Note:
            - Validation is skipped on initial creation (status is None)
            - Re-assigning the current status is a no-op
            - Terminal states (replaced, deleted) have no valid transitions
        """
        if self.status is None or self.status == value:
            return value

        allowed_transitions = self.VALID_TRANSITIONS.get(self.status, [])
        if value not in allowed_transitions:
            raise InvalidStateTransitionError(
                f"Invalid transition: {self.status.value} → {value.value}",
                from_status=self.status,
                to_status=value,
            )

        return value

    @property
    def is_ready(self) -> bool:
        return self.status == VideoStatus.READY

    @property
    def formatted_duration(self) -> str:
        """Duration as "MM:SS", or "HH:MM:SS" from one hour up ("00:00" when unknown)."""
        if not self.duration_seconds:
            return "00:00"

        hours, remainder = divmod(int(self.duration_seconds), 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def formatted_size(self) -> str:
        """Human readable size in base-1024 units, e.g. "1.5 KB" ("0 B" when empty)."""
        if not self.file_size:
            return "0 B"

        size = float(self.file_size)
        unit_index = 0
        while size >= 1024 and unit_index < len(SIZE_UNITS) - 1:
            size /= 1024
            unit_index += 1

        number = f"{size:.2f}".rstrip("0").rstrip(".")
        return f"{number} {SIZE_UNITS[unit_index]}"

    def __repr__(self) -> str:
        """Return string representation for debugging (never includes the key)."""
        return (
            f"<Video(id={self.id!s:.8}, title={self.title!r}, "
            f"status={self.status.value if self.status else None!r})>"
        )


class VideoAccessLog(Base):
    """Audit row created each time a signed stream URL is issued to a user.

    Mutated only by playback telemetry reported by the session that owns it.
    suspicious_activity holds {"reason", "timestamp"} entries appended by the
    anomaly rule in app.services.access_log_service.
    """

    __tablename__ = "video_access_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    video_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_fingerprint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    watch_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    seek_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    speed_changes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    suspicious_activity: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    def mark_suspicious(self, reason: str, at: datetime | None = None) -> bool:
        """Append a suspicious-activity entry unless the reason is already recorded.

        The list is reassigned rather than mutated in place so the JSON column
        is flagged dirty.

        Args:
            reason: Human readable reason, e.g. "Excessive seeking detected".
            at: Timestamp of the detection (defaults to now).

        Returns:
            True if a new entry was appended, False if the reason was present.
        """
        entries = list(self.suspicious_activity or [])
        if any(entry.get("reason") == reason for entry in entries):
            return False

        entries.append({"reason": reason, "timestamp": (at or utcnow()).isoformat()})
        self.suspicious_activity = entries
        return True

    @property
    def is_suspicious(self) -> bool:
        return bool(self.suspicious_activity)

    def __repr__(self) -> str:
        return (
            f"<VideoAccessLog(id={self.id!s:.8}, video_id={self.video_id!s:.8}, "
            f"user_id={self.user_id!r})>"
        )

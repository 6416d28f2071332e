"""Pydantic schemas for video records, stream URLs and playback telemetry.

VideoMetadata gives the free-form ``videos.metadata`` JSON column a typed,
versioned shape while preserving unknown keys written by older deployments.

Schema Naming Convention:
    - *Response: API response bodies
    - AccessLogUpdate: PUT body for playback telemetry

All schemas use Pydantic v2 syntax with model_config instead of class Config.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

METADATA_SCHEMA_VERSION = 1


class VideoMetadata(BaseModel):
    """Typed view of Video.video_metadata.

    Upload fields are written by the upload endpoint, processing fields by
    the transcoding worker. Extra keys are kept so that rewriting the column
    never drops data this version does not know about.
    """

    model_config = ConfigDict(extra="allow")

    schema_version: int = METADATA_SCHEMA_VERSION

    # Upload
    uploaded_by: str | None = None
    uploaded_at: datetime | None = None
    original_extension: str | None = None

    # Processing
    processed_at: datetime | None = None
    processing_method: str | None = Field(
        default=None,
        description='"hls_conversion" or "direct_copy"',
    )
    segments_count: int | None = None
    ffmpeg_available: bool | None = None
    encrypted: bool | None = None

    @classmethod
    def from_column(cls, value: dict[str, Any] | None) -> "VideoMetadata":
        return cls.model_validate(value or {})

    def merged(self, **updates: Any) -> "VideoMetadata":
        """Return a copy with ``updates`` applied, re-validated."""
        return self.model_validate({**self.to_column(), **updates})

    def to_column(self) -> dict[str, Any]:
        """Serialise for the JSON column (datetimes as ISO strings, unset fields dropped)."""
        return self.model_dump(mode="json", exclude_none=True)


class VideoSummary(BaseModel):
    id: UUID
    title: str
    status: str
    size: str


class UploadResponse(BaseModel):
    message: str = "Video uploaded successfully. Processing will begin shortly."
    video: VideoSummary


class VideoStatusResponse(BaseModel):
    """Status polling response; duration and size are human readable strings."""

    id: UUID
    title: str
    status: str
    duration: str
    size: str
    processing_error: str | None
    created_at: datetime
    updated_at: datetime


class StreamVideoInfo(BaseModel):
    id: UUID
    title: str
    duration: str


class StreamUrlResponse(BaseModel):
    """Signed URL issued by GET /api/video/{id}/generate-url.

    access_log_id is set when the caller is authenticated and an access log
    was opened for this issuance; clients send telemetry against it.
    """

    url: str
    expires_at: datetime
    video: StreamVideoInfo
    access_log_id: UUID | None = None


class LessonInfo(BaseModel):
    id: UUID
    title: str


class LessonStreamUrlResponse(BaseModel):
    stream_url: str
    expires_at: datetime
    video: StreamVideoInfo
    lesson: LessonInfo


class AccessLogUpdate(BaseModel):
    """Playback telemetry reported by the player. All counters are cumulative."""

    model_config = ConfigDict(extra="ignore")

    watch_duration: int | None = Field(default=None, ge=0)
    seek_count: int | None = Field(default=None, ge=0)
    speed_changes: int | None = Field(default=None, ge=0)
    ended: bool | None = None


class AccessLogUpdateResponse(BaseModel):
    message: str = "Access log updated"
    log_id: UUID
    suspicious_activity: list[dict[str, Any]] = Field(default_factory=list)

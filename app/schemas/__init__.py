"""Pydantic schemas for validation and serialization."""

from app.schemas.video import (
    AccessLogUpdate,
    AccessLogUpdateResponse,
    LessonStreamUrlResponse,
    StreamUrlResponse,
    UploadResponse,
    VideoMetadata,
    VideoStatusResponse,
)

__all__ = [
    "AccessLogUpdate",
    "AccessLogUpdateResponse",
    "LessonStreamUrlResponse",
    "StreamUrlResponse",
    "UploadResponse",
    "VideoMetadata",
    "VideoStatusResponse",
]

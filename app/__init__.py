"""LMS video pipeline.

This package contains the FastAPI service that accepts lesson video uploads
and streams them through signed, time-limited URLs, plus the PgQueuer worker
that transcodes uploads to encrypted HLS (or a direct copy when ffmpeg is
unavailable). State lives in PostgreSQL.
"""

from app.database import async_session_factory, get_session
from app.models import Base, Lesson, Video, VideoAccessLog

__all__ = [
    "Base",
    "Lesson",
    "Video",
    "VideoAccessLog",
    "async_session_factory",
    "get_session",
]

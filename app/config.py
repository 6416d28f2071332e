"""Configuration management for the video pipeline.

This module provides centralized configuration loading from environment variables.
Getter functions read the environment on each call unless decorated with
``lru_cache`` (required secrets, loaded once per process).

Environment Variables:
    DATABASE_URL: PostgreSQL connection URL (required for production)
    FERNET_KEY: Encryption key for HLS keys at rest (required by the worker)
    STREAM_SIGNING_SECRET: HMAC secret for signed stream URLs (required by the API)
    STORAGE_ROOT: Primary storage root for uploads and outputs (default: "storage/app")
    STORAGE_ROOTS: Comma-separated candidate roots probed when locating files
    MAX_UPLOAD_SIZE_BYTES: Upload cap in bytes (default: 2 GiB)
    STREAM_URL_TTL_MINUTES: Signed URL lifetime (default: 30)
    PREVIEW_STREAM_URL_TTL_MINUTES: Free-lesson preview URL lifetime (default: 120)
    VIDEO_JOB_MAX_ATTEMPTS: Transcoding attempt budget (default: 3)
    VIDEO_JOB_TIMEOUT_SECONDS: Per-attempt deadline (default: 3600)
    FFMPEG_BINARY / FFPROBE_BINARY: Transcoder executables (default: ffmpeg / ffprobe)
    PUBLIC_BASE_URL: Prefix for the HLS key URI written into playlists (default: "")
    QUEUE_ENABLED: Enqueue jobs through PgQueuer (default: true)
    AUTH_USER_HEADER: Header carrying the authenticated user id (default: X-Authenticated-User)

Usage:
    from app.config import get_storage_root, get_stream_signing_secret

    root = get_storage_root()  # Path("storage/app") unless overridden
    secret = get_stream_signing_secret()  # Raises if not set
"""

import os
from functools import lru_cache
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

DEFAULT_MAX_UPLOAD_SIZE_BYTES = 2 * 1024 * 1024 * 1024

# Fixed deployment locations probed after the configured root
LEGACY_STORAGE_ROOTS = ("/app/storage/app/private", "/app/storage/app")


@lru_cache
def get_database_url() -> str:
    """Get database URL from environment.

    Converts postgresql:// to postgresql+asyncpg:// for async SQLAlchemy.

    Environment Variable:
        DATABASE_URL: PostgreSQL connection URL

    Returns:
        Database URL with asyncpg driver.

    Raises:
        ValueError: If DATABASE_URL not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ValueError("DATABASE_URL environment variable is required")

    # Hosted Postgres hands out postgresql:// but we need postgresql+asyncpg://
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


@lru_cache
def get_fernet_key() -> str:
    """Get Fernet encryption key from environment.

    Environment Variable:
        FERNET_KEY: Base64-encoded Fernet key protecting stored HLS keys

    Returns:
        Fernet key string.

    Raises:
        ValueError: If FERNET_KEY not set.
    """
    key = os.getenv("FERNET_KEY")
    if not key:
        raise ValueError("FERNET_KEY environment variable is required")
    return key


def get_stream_signing_secret() -> str:
    """Get the HMAC secret used to sign stream URLs.

    Not cached: the token signer receives this function as its secret
    provider, so rotating the variable takes effect on the next request.

    Environment Variable:
        STREAM_SIGNING_SECRET: Arbitrary high-entropy string

    Returns:
        Signing secret string.

    Raises:
        ValueError: If STREAM_SIGNING_SECRET not set.
    """
    secret = os.getenv("STREAM_SIGNING_SECRET")
    if not secret:
        raise ValueError("STREAM_SIGNING_SECRET environment variable is required")
    return secret


def get_storage_root() -> Path:
    """Get the primary storage root.

    Uploads land in ``<root>/temp-videos`` and processed output in
    ``<root>/videos/<video_id>``.

    Environment Variable:
        STORAGE_ROOT: Directory path (default: "storage/app")

    Returns:
        Storage root path.
    """
    return Path(os.getenv("STORAGE_ROOT", "storage/app"))


def get_storage_roots() -> list[str]:
    """Get the ordered candidate roots probed by the storage locator.

    Environment Variable:
        STORAGE_ROOTS: Comma-separated list of directories
        Example: "/srv/lms/storage/app/private,/srv/lms/storage/app"

    Returns:
        Ordered list of root directories. When STORAGE_ROOTS is not set the
        list is ``<STORAGE_ROOT>/private``, ``<STORAGE_ROOT>`` followed by the
        fixed container locations.
    """
    roots_str = os.getenv("STORAGE_ROOTS", "")
    if roots_str:
        return [root.strip() for root in roots_str.split(",") if root.strip()]

    primary = get_storage_root()
    return [str(primary / "private"), str(primary), *LEGACY_STORAGE_ROOTS]


def _get_int(name: str, default: int, minimum: int = 1) -> int:
    value_str = os.getenv(name, str(default))
    try:
        value = int(value_str)
    except ValueError:
        log.warning("invalid_config_value", name=name, value=value_str, default=default)
        return default

    if value < minimum:
        log.warning("config_value_below_minimum", name=name, value=value, default=default)
        return default

    return value


def get_max_upload_size_bytes() -> int:
    """Get the maximum accepted upload size in bytes.

    Environment Variable:
        MAX_UPLOAD_SIZE_BYTES: Positive integer (default: 2147483648)

    Returns:
        Upload size cap. Invalid values fall back to the default.
    """
    return _get_int("MAX_UPLOAD_SIZE_BYTES", DEFAULT_MAX_UPLOAD_SIZE_BYTES)


def get_stream_url_ttl_minutes() -> int:
    """Get the lifetime of a general signed stream URL in minutes (default: 30)."""
    return _get_int("STREAM_URL_TTL_MINUTES", 30)


def get_preview_stream_url_ttl_minutes() -> int:
    """Get the lifetime of a free-lesson preview URL in minutes (default: 120)."""
    return _get_int("PREVIEW_STREAM_URL_TTL_MINUTES", 120)


def get_video_job_max_attempts() -> int:
    """Get the transcoding job attempt budget (default: 3)."""
    return _get_int("VIDEO_JOB_MAX_ATTEMPTS", 3)


def get_video_job_timeout_seconds() -> int:
    """Get the hard per-attempt deadline for a transcoding job (default: 3600)."""
    return _get_int("VIDEO_JOB_TIMEOUT_SECONDS", 3600)


def get_ffmpeg_binary() -> str:
    return os.getenv("FFMPEG_BINARY", "ffmpeg")


def get_ffprobe_binary() -> str:
    return os.getenv("FFPROBE_BINARY", "ffprobe")


def get_public_base_url() -> str:
    """Get the public base URL written into HLS key URIs.

    Environment Variable:
        PUBLIC_BASE_URL: e.g. "https://lms.example.com" (default: "", relative URIs)

    Returns:
        Base URL without trailing slash.
    """
    return os.getenv("PUBLIC_BASE_URL", "").rstrip("/")


def is_queue_enabled() -> bool:
    """Check whether uploads enqueue jobs through PgQueuer.

    Environment Variable:
        QUEUE_ENABLED: "true"/"false" (default: "true")

    Returns:
        False disables the queue and runs jobs in-process after the response.
    """
    return os.getenv("QUEUE_ENABLED", "true").lower() in ("1", "true", "yes")


def get_auth_user_header() -> str:
    """Get the request header carrying the authenticated user id.

    Identity is established by the upstream authentication layer, which
    sets this header on requests it has authenticated.

    Environment Variable:
        AUTH_USER_HEADER: Header name (default: "X-Authenticated-User")

    Returns:
        Header name string.
    """
    return os.getenv("AUTH_USER_HEADER", "X-Authenticated-User")

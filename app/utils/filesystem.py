"""Filesystem path helpers for the video storage layout.

This module provides standardized path construction for uploads and
processed output. Directory helpers create directories if they don't exist.

Security:
    Video IDs must be alphanumeric with optional dashes/underscores and
    resolved paths are verified to stay within the storage root.

Layout:
    {STORAGE_ROOT}/
    ├── temp-videos/            raw uploads, "<uuid>.<ext>"
    └── videos/
        └── {video_id}/
            ├── index.m3u8      HLS playlist
            ├── segment_000.ts  encrypted segments
            └── <original>      direct copy (degraded mode)

Database rows store paths relative to the storage root
(e.g. "temp-videos/3f2a....mp4"), see relative_to_root().
"""

import re
from pathlib import Path

from app.config import get_storage_root
from app.utils.logging import get_logger

__all__ = [
    "PLAYLIST_NAME",
    "SEGMENT_PATTERN",
    "TEMP_UPLOAD_DIR_NAME",
    "VIDEO_OUTPUT_DIR_NAME",
    "discard_file",
    "get_temp_upload_dir",
    "get_video_output_dir",
    "relative_to_root",
]

log = get_logger(__name__)

TEMP_UPLOAD_DIR_NAME = "temp-videos"
VIDEO_OUTPUT_DIR_NAME = "videos"
PLAYLIST_NAME = "index.m3u8"
SEGMENT_PATTERN = "segment_%03d.ts"

# Validation pattern: alphanumeric, underscores, dashes only
_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def _validate_identifier(identifier: str, name: str) -> None:
    """Validate identifier to prevent path traversal attacks.

    Raises:
        ValueError: If identifier is empty or contains disallowed characters
    """
    if not identifier:
        raise ValueError(f"{name} cannot be empty")

    if not _ID_PATTERN.match(identifier):
        raise ValueError(
            f"Invalid {name}: '{identifier}'. "
            f"Only alphanumeric characters, underscores, and dashes are allowed."
        )


def _verify_path_in_root(path: Path, root: Path) -> None:
    """Verify that resolved path stays within the storage root.

    Raises:
        ValueError: If resolved path escapes root
    """
    if not path.resolve().is_relative_to(root.resolve()):
        raise ValueError(f"Path traversal detected: {path} escapes storage root {root}")


def get_temp_upload_dir(root: Path | None = None) -> Path:
    """Get the raw upload directory (auto-creates).

    Args:
        root: Storage root (defaults to STORAGE_ROOT)

    Returns:
        Path to {root}/temp-videos
    """
    root = root or get_storage_root()
    path = root / TEMP_UPLOAD_DIR_NAME
    _verify_path_in_root(path, root)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_video_output_dir(video_id: str, root: Path | None = None) -> Path:
    """Get the isolated output directory for one video (auto-creates).

    Args:
        video_id: Video UUID string
        root: Storage root (defaults to STORAGE_ROOT)

    Returns:
        Path to {root}/videos/{video_id}

    Raises:
        ValueError: If video_id is invalid or escapes the storage root

    Example:
        >>> get_video_output_dir("3f2a9c1e-0000-4000-8000-000000000000")
        PosixPath('storage/app/videos/3f2a9c1e-0000-4000-8000-000000000000')
    """
    _validate_identifier(video_id, "video_id")
    root = root or get_storage_root()
    path = root / VIDEO_OUTPUT_DIR_NAME / video_id
    _verify_path_in_root(path, root)
    path.mkdir(parents=True, exist_ok=True)
    return path


def relative_to_root(path: Path, root: Path | None = None) -> str:
    """Express a path under the storage root as the POSIX string stored in the database.

    Raises:
        ValueError: If path is not under root
    """
    root = root or get_storage_root()
    return path.resolve().relative_to(root.resolve()).as_posix()


def discard_file(path: Path | None) -> bool:
    """Delete a file if it exists, logging instead of raising on OS errors.

    Used on cleanup paths where the original error must win.

    Returns:
        True if a file was removed.
    """
    if path is None or not path.exists():
        return False

    try:
        path.unlink()
    except OSError as e:
        log.warning("file_cleanup_failed", path=str(path), error=str(e))
        return False

    log.info("file_discarded", path=str(path))
    return True

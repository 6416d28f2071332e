"""Cross-cutting utilities for the video pipeline.

This package contains helper functions and services used across multiple
modules. Utilities should be pure functions or singletons without business
logic.

Modules:
    cli_wrapper: Non-blocking external command execution (ffmpeg, ffprobe).
    encryption: Fernet symmetric encryption for stored HLS keys.
    filesystem: Storage directory helpers with path traversal checks.
    logging: JSON structured logging.
"""

from app.utils.encryption import (
    DecryptionError,
    EncryptionKeyMissing,
    EncryptionService,
    get_encryption_service,
)

__all__ = [
    "DecryptionError",
    "EncryptionKeyMissing",
    "EncryptionService",
    "get_encryption_service",
]

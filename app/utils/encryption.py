"""Fernet symmetric encryption for HLS segment keys at rest.

Each processed video gets a random 16-byte AES-128 key that ffmpeg uses to
encrypt its HLS segments. The raw key must never be stored in the database;
it is wrapped with Fernet before being written to
``videos.encryption_key_encrypted`` and unwrapped only by the key-delivery
endpoint.

The FERNET_KEY environment variable must be set with a valid Fernet key
generated via `Fernet.generate_key()` or the `scripts/generate_fernet_key.py`
CLI tool.

Usage:
    from app.utils.encryption import get_encryption_service

    service = get_encryption_service()
    wrapped = service.encrypt_key(os.urandom(16))
    raw = service.decrypt_key(wrapped, video_id=str(video.id))

Security Notes:
    - NEVER log or expose raw or wrapped keys
    - Key rotation requires re-wrapping all stored keys
"""

import os
from typing import ClassVar

from cryptography.fernet import Fernet, InvalidToken


class EncryptionKeyMissing(Exception):
    """Raised when FERNET_KEY environment variable is not set or is malformed."""

    pass


class DecryptionError(Exception):
    """Raised when decryption fails due to invalid key or corrupted data.

    Attributes:
        video_id: The video whose key failed to decrypt (if available).
            Useful for debugging without exposing secrets.
    """

    def __init__(self, message: str, video_id: str | None = None) -> None:
        self.video_id = video_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.video_id:
            return f"{super().__str__()} (video_id={self.video_id})"
        return super().__str__()


class EncryptionService:
    """Fernet symmetric encryption service for stored HLS keys.

    Implements the singleton pattern with lazy initialization so the
    Fernet key is loaded only once per process.

    Raises:
        EncryptionKeyMissing: If FERNET_KEY environment variable is not set.
    """

    _instance: ClassVar["EncryptionService | None"] = None
    _cipher: Fernet

    def __new__(cls) -> "EncryptionService":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self) -> None:
        key = os.environ.get("FERNET_KEY")
        if not key:
            raise EncryptionKeyMissing(
                "FERNET_KEY environment variable is required. "
                "Generate a key using: python scripts/generate_fernet_key.py"
            )
        try:
            self._cipher = Fernet(key.encode())
        except ValueError as e:
            raise EncryptionKeyMissing(
                "Invalid FERNET_KEY format: Fernet key must be 32 url-safe "
                "base64-encoded bytes. Generate a valid key using: "
                "python scripts/generate_fernet_key.py"
            ) from e

    def encrypt_key(self, key: bytes) -> bytes:
        """Wrap a raw segment key for database storage.

        Args:
            key: Raw AES key bytes.

        Returns:
            Fernet token bytes.
        """
        return self._cipher.encrypt(key)

    def decrypt_key(self, ciphertext: bytes, video_id: str | None = None) -> bytes:
        """Unwrap a stored segment key.

        Args:
            ciphertext: The Fernet token from database storage.
            video_id: Optional video ID for error context.

        Returns:
            Raw AES key bytes.

        Raises:
            DecryptionError: If decryption fails (invalid key or corrupted data).
        """
        try:
            return self._cipher.decrypt(ciphertext)
        except InvalidToken as e:
            raise DecryptionError(
                "Decryption failed: invalid encryption key or corrupted data",
                video_id=video_id,
            ) from e
        except (TypeError, ValueError) as e:
            raise DecryptionError(
                f"Decryption failed: {type(e).__name__}",
                video_id=video_id,
            ) from e

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (for testing only)."""
        cls._instance = None


def get_encryption_service() -> EncryptionService:
    """Get the singleton EncryptionService instance.

    Raises:
        EncryptionKeyMissing: If FERNET_KEY environment variable is not set.
    """
    return EncryptionService()

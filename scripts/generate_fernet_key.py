#!/usr/bin/env python3
"""Generate a Fernet encryption key for HLS key storage.

Each transcoded video gets its own AES-128 segment key. That key is stored
in videos.encryption_key_encrypted, wrapped with the Fernet key printed by
this script, and unwrapped by GET /api/video/key/{id} at playback time.

Usage:
    python scripts/generate_fernet_key.py

Security Notes:
    - Generate a unique key per environment (staging, production)
    - The API and the worker must share the same FERNET_KEY
    - Losing the key makes every encrypted HLS rendition unplayable
"""

from cryptography.fernet import Fernet


def main() -> None:
    """Generate and display a new Fernet encryption key."""
    key_string = Fernet.generate_key().decode()

    print("=" * 60)
    print("Generated Fernet Encryption Key")
    print("=" * 60)
    print()
    print("Add this to the environment of both the API and the worker:")
    print()
    print(f"FERNET_KEY={key_string}")
    print()
    print("IMPORTANT:")
    print("  - Never commit this key to version control")
    print("  - Keep a secure backup of production keys")
    print("  - Rotating the key requires re-wrapping stored HLS keys")
    print("=" * 60)


if __name__ == "__main__":
    main()

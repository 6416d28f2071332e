"""Media type detection for streamed video files.

Resolution order:
    1. File extension (authoritative map)
    2. Leading-bytes sniffing (ISO BMFF, WebM/Matroska, AVI, MPEG-TS)
    3. MIME type recorded at upload
    4. "video/mp4"
"""

from pathlib import Path

DEFAULT_MEDIA_TYPE = "video/mp4"

EXTENSION_MEDIA_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/x-m4v",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".webm": "video/webm",
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
}

# Upload whitelist: extension -> canonical media type
UPLOAD_EXTENSIONS = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "webm": "video/webm",
}

SNIFF_LENGTH = 16


def sniff_media_type(head: bytes) -> str | None:
    """Guess a media type from the first bytes of a file."""
    if len(head) >= 12 and head[4:8] == b"ftyp":
        brand = head[8:12]
        if brand == b"qt  ":
            return "video/quicktime"
        if brand.startswith(b"M4V"):
            return "video/x-m4v"
        return "video/mp4"
    if head.startswith(b"\x1a\x45\xdf\xa3"):
        return "video/webm"
    if len(head) >= 12 and head.startswith(b"RIFF") and head[8:12] == b"AVI ":
        return "video/x-msvideo"
    if head.startswith(b"#EXTM3U"):
        return "application/vnd.apple.mpegurl"
    if head[:1] == b"\x47":
        return "video/mp2t"
    return None


def detect_media_type(path: Path, recorded: str | None = None) -> str:
    """Determine the Content-Type for a file being streamed.

    Args:
        path: File on disk.
        recorded: MIME type stored on the Video row at upload time.

    Returns:
        Media type string, never empty.
    """
    by_extension = EXTENSION_MEDIA_TYPES.get(path.suffix.lower())
    if by_extension:
        return by_extension

    try:
        with path.open("rb") as f:
            head = f.read(SNIFF_LENGTH)
    except OSError:
        head = b""

    return sniff_media_type(head) or recorded or DEFAULT_MEDIA_TYPE

"""File resolution, playlist signing and chunked body generation for the streaming gateway."""

import asyncio
import re
from collections.abc import AsyncIterator, Callable
from pathlib import Path, PurePosixPath

from fastapi import Request

from app.models import Video
from app.services.storage_locator import StorageLocator
from app.utils.logging import get_logger

log = get_logger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024
PLAYLIST_SUFFIX = ".m3u8"
SEGMENT_NAME = re.compile(r"^segment_\d+\.ts$")

_KEY_URI = re.compile(r'URI="[^"]*"')


def resolve_stream_file(video: Video, locator: StorageLocator) -> Path | None:
    """Pick the file served for a ready video.

    A direct media output (degraded mode) is preferred. When the output is an
    HLS playlist the retained original upload is served as the progressive
    rendition, with the playlist itself as the last resort.
    """
    if video.hls_path and not video.hls_path.endswith(PLAYLIST_SUFFIX):
        return locator.locate(video.hls_path, video.original_path)
    return locator.locate(video.original_path, video.hls_path)


async def iter_file_range(
    path: Path,
    start: int,
    length: int,
    request: Request | None = None,
    chunk_size: int = STREAM_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """Yield ``length`` bytes of ``path`` from ``start`` in ``chunk_size`` reads.

    Stops early when the client disconnects. A read error ends the body
    after the bytes already sent; the file handle is always closed.
    """
    remaining = length
    try:
        with path.open("rb") as f:
            f.seek(start)
            while remaining > 0:
                if request is not None and await request.is_disconnected():
                    log.info("stream_client_disconnected", path=str(path), remaining=remaining)
                    break
                data = await asyncio.to_thread(f.read, min(chunk_size, remaining))
                if not data:
                    break
                remaining -= len(data)
                yield data
    except OSError as e:
        log.error(
            "stream_read_failed",
            path=str(path),
            error=str(e),
            bytes_unsent=remaining,
        )


def segment_path(video: Video, segment_name: str) -> str | None:
    """Storage-relative path of one HLS segment, or None for a bad name."""
    if not video.hls_path or not video.hls_path.endswith(PLAYLIST_SUFFIX):
        return None
    if not SEGMENT_NAME.match(segment_name):
        return None
    return str(PurePosixPath(video.hls_path).parent / segment_name)


def sign_playlist(playlist: str, key_url: str, segment_url: Callable[[str], str]) -> str:
    """Point a stored playlist's key and segment URIs at signed gateway URLs.

    Stored playlists reference the key endpoint without credentials and
    segments by bare file name. Players do not add query parameters to
    either, so the playlist is rewritten per request with the caller's
    signed parameters.
    """
    lines = []
    for line in playlist.splitlines():
        entry = line.strip()
        if entry.startswith("#EXT-X-KEY"):
            line = _KEY_URI.sub(lambda _: f'URI="{key_url}"', entry)
        elif entry and not entry.startswith("#"):
            line = segment_url(PurePosixPath(entry).name)
        lines.append(line)
    return "\n".join(lines) + "\n"

"""Video processing service: turn a raw upload into streamable output.

This service is the pure part of the transcoding job. It receives a video's
id and recorded source path, touches only the filesystem and external
tools, and returns a ProcessingOutcome. It never opens a database session;
the worker persists the outcome (see app.workers.video_processing_worker).

Processing Modes:
    hls_conversion (ffmpeg available):
        1. Probe duration (ffprobe, falling back to ffmpeg's banner)
        2. Clear segments left in videos/{id}/ by an earlier attempt
        3. Generate a random AES-128 key and IV, write key + key info files
        4. Encrypted baseline H.264 HLS encode
        5. On failure, one unencrypted stream-copy HLS encode, given only the
           time the encrypted encode left of the budget
        6. On second failure raise TranscodeError with ffmpeg's output
        7. Remove the plaintext key files from the output directory

    direct_copy (ffmpeg missing, degraded):
        Copy the upload byte-for-byte to videos/{id}/{basename}. Duration 0.

Usage:
    service = VideoProcessingService()
    outcome = await service.process(str(video.id), video.original_path)
"""

import asyncio
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from app.config import get_public_base_url, get_storage_root, get_video_job_timeout_seconds
from app.exceptions import TranscodeError, VideoSourceNotFoundError
from app.services.storage_locator import StorageLocator
from app.services.transcoder import (
    HlsKey,
    ToolMissing,
    TranscodeFailed,
    Transcoder,
    TranscodeResult,
    TranscodeSuccess,
    ffmpeg_available,
    remove_key_material,
    write_key_info,
)
from app.utils.filesystem import PLAYLIST_NAME, get_video_output_dir, relative_to_root
from app.utils.logging import get_logger

log = get_logger(__name__)

HLS_CONVERSION = "hls_conversion"
DIRECT_COPY = "direct_copy"

# Floor for an encode started after the budget is nearly spent
MIN_ENCODE_SECONDS = 1.0


def build_key_uri(video_id: str) -> str:
    """Key URI written into playlists; served by GET /api/video/key/{id}."""
    return f"{get_public_base_url()}/api/video/key/{video_id}"


@dataclass
class ProcessingOutcome:
    """Result of processing one video.

    Attributes:
        output_path: Output relative to the storage root (playlist or direct copy).
        duration_seconds: Probed duration (0 when unknown).
        processing_method: "hls_conversion" or "direct_copy".
        ffmpeg_available: Whether the transcoder was present.
        segments_count: Number of .ts segments (HLS only).
        encryption_key: Raw AES key when segments are encrypted. Never logged.
    """

    output_path: str
    duration_seconds: int
    processing_method: str
    ffmpeg_available: bool
    segments_count: int | None = None
    encryption_key: bytes | None = field(default=None, repr=False)

    @property
    def encrypted(self) -> bool:
        return self.encryption_key is not None


class VideoProcessingService:
    """Locates a video's source and produces its streamable output.

    Args:
        locator: Storage locator for the source (default: from STORAGE_ROOTS)
        transcoder: ffmpeg facade (default: Transcoder())
        storage_root: Root that receives output (default: STORAGE_ROOT)
        tool_probe: Capability check for ffmpeg (default: cached PATH lookup)
        time_budget: Seconds one run may spend in encodes, shared by the
            encrypted encode and the copy fallback (default: VIDEO_JOB_TIMEOUT_SECONDS)
        clock: Monotonic clock (default: time.monotonic)
    """

    def __init__(
        self,
        locator: StorageLocator | None = None,
        transcoder: Transcoder | None = None,
        storage_root: Path | None = None,
        tool_probe: Callable[[], bool] = ffmpeg_available,
        time_budget: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.locator = locator or StorageLocator.from_config()
        self.transcoder = transcoder or Transcoder()
        self.storage_root = storage_root or get_storage_root()
        self.tool_probe = tool_probe
        self.time_budget = time_budget or get_video_job_timeout_seconds()
        self.clock = clock

    def locate_source(self, video_id: str, original_path: str) -> Path:
        """Resolve the upload on disk.

        Raises:
            VideoSourceNotFoundError: Listing every probed path.
        """
        source = self.locator.locate(original_path)
        if source is None:
            probed = [str(path) for path in self.locator.candidates(original_path)]
            raise VideoSourceNotFoundError(video_id, probed)
        return source

    async def process(self, video_id: str, original_path: str) -> ProcessingOutcome:
        deadline = self.clock() + self.time_budget
        source = self.locate_source(video_id, original_path)
        output_dir = get_video_output_dir(video_id, self.storage_root)

        if self.tool_probe():
            return await self._convert_to_hls(video_id, source, output_dir, deadline)

        log.warning("ffmpeg_unavailable_direct_copy", video_id=video_id, source=str(source))
        return await self._direct_copy(video_id, source, output_dir)

    async def _direct_copy(self, video_id: str, source: Path, output_dir: Path) -> ProcessingOutcome:
        destination = output_dir / Path(source).name
        if source.resolve() != destination.resolve():
            await asyncio.to_thread(shutil.copyfile, source, destination)

        log.info(
            "video_direct_copy_complete",
            video_id=video_id,
            destination=str(destination),
            size_bytes=destination.stat().st_size,
        )
        return ProcessingOutcome(
            output_path=relative_to_root(destination, self.storage_root),
            duration_seconds=0,
            processing_method=DIRECT_COPY,
            ffmpeg_available=False,
        )

    def _remaining(self, deadline: float) -> float:
        return max(deadline - self.clock(), MIN_ENCODE_SECONDS)

    async def _convert_to_hls(
        self, video_id: str, source: Path, output_dir: Path, deadline: float
    ) -> ProcessingOutcome:
        duration = await self.transcoder.probe_duration(source)
        # Segments left by an earlier attempt must not mix with this one
        _clear_hls_output(output_dir)
        hls_key = HlsKey.generate()
        key_info_file = write_key_info(output_dir, hls_key, build_key_uri(video_id))

        try:
            result = await self.transcoder.encode_hls(
                source, output_dir, key_info_file, timeout=self._remaining(deadline)
            )
            if isinstance(result, TranscodeFailed):
                log.warning(
                    "encrypted_hls_failed_retrying_copy",
                    video_id=video_id,
                    error=result.message[:500],
                )
                _clear_hls_output(output_dir)
                result = await self.transcoder.encode_hls_copy(
                    source, output_dir, timeout=self._remaining(deadline)
                )
        finally:
            remove_key_material(output_dir)

        success = _require_success(result)
        log.info(
            "video_hls_conversion_complete",
            video_id=video_id,
            duration_seconds=duration,
            segments_count=success.segments_count,
            encrypted=success.encrypted,
        )
        return ProcessingOutcome(
            output_path=relative_to_root(output_dir / PLAYLIST_NAME, self.storage_root),
            duration_seconds=duration,
            processing_method=HLS_CONVERSION,
            ffmpeg_available=True,
            segments_count=success.segments_count,
            encryption_key=hls_key.key if success.encrypted else None,
        )


def _clear_hls_output(output_dir: Path) -> None:
    for partial in [*output_dir.glob("*.ts"), output_dir / PLAYLIST_NAME]:
        partial.unlink(missing_ok=True)


def _require_success(result: TranscodeResult) -> TranscodeSuccess:
    if isinstance(result, TranscodeSuccess):
        return result
    if isinstance(result, ToolMissing):
        raise TranscodeError(f"Transcoder not found: {result.tool}")
    raise TranscodeError("Failed to convert video to HLS format", result.message)

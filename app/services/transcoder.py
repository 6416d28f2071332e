"""ffmpeg/ffprobe integration for HLS packaging.

All invocations go through app.utils.cli_wrapper.run_command with explicit
argument lists (no shell). Encodes return a typed result instead of raising
so the processing service can decide between the encrypted attempt, the
copy fallback and failure.

HLS Output (per video):
    videos/{video_id}/index.m3u8        playlist
    videos/{video_id}/segment_NNN.ts    ~10 s segments, AES-128 when encrypted

Encoding Flags:
    -profile:v baseline -level 3.0      broadly compatible H.264
    -start_number 0 -hls_time 10 -hls_list_size 0 (VOD playlist with all segments)

Capability Probe:
    ffmpeg_available() checks PATH once per binary name and caches the answer
    for the process lifetime.
"""

import asyncio
import re
import secrets
import shutil
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from app.config import get_ffmpeg_binary, get_ffprobe_binary, get_video_job_timeout_seconds
from app.utils.cli_wrapper import CommandError, run_command, truncate
from app.utils.filesystem import PLAYLIST_NAME, SEGMENT_PATTERN
from app.utils.logging import get_logger

log = get_logger(__name__)

KEY_FILE_NAME = "encryption.key"
KEY_INFO_FILE_NAME = "keyinfo.txt"
HLS_SEGMENT_SECONDS = 10
PROBE_TIMEOUT_SECONDS = 60

_DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2})(?:\.\d+)?")


@dataclass(frozen=True)
class TranscodeSuccess:
    playlist_path: Path
    segments_count: int
    encrypted: bool


@dataclass(frozen=True)
class ToolMissing:
    tool: str


@dataclass(frozen=True)
class TranscodeFailed:
    message: str


TranscodeResult = TranscodeSuccess | ToolMissing | TranscodeFailed


@dataclass(frozen=True)
class HlsKey:
    """AES-128 key and IV for HLS segment encryption.

    Attributes:
        key: 16 random bytes.
        iv: 32 hex characters written to the key info file.
    """

    key: bytes
    iv: str

    @classmethod
    def generate(cls) -> "HlsKey":
        return cls(key=secrets.token_bytes(16), iv=secrets.token_hex(16))

    def __repr__(self) -> str:
        return "HlsKey(key=*****, iv=*****)"


@lru_cache
def _tool_available(binary: str) -> bool:
    available = shutil.which(binary) is not None
    log.info("transcoder_capability_probed", binary=binary, available=available)
    return available


def ffmpeg_available() -> bool:
    """Whether the configured ffmpeg binary is on PATH (cached per binary)."""
    return _tool_available(get_ffmpeg_binary())


def write_key_info(output_dir: Path, hls_key: HlsKey, key_uri: str) -> Path:
    """Write the key file and ffmpeg's key info file into ``output_dir``.

    Key info format (one item per line):
        key URI written into the playlist
        path of the key file ffmpeg reads
        IV as hex

    Returns:
        Path of the key info file.
    """
    key_path = output_dir / KEY_FILE_NAME
    key_path.write_bytes(hls_key.key)
    key_path.chmod(0o600)

    key_info_path = output_dir / KEY_INFO_FILE_NAME
    key_info_path.write_text(f"{key_uri}\n{key_path.resolve()}\n{hls_key.iv}\n")
    return key_info_path


def remove_key_material(output_dir: Path) -> None:
    """Delete the plaintext key and key info files after encoding."""
    for name in (KEY_FILE_NAME, KEY_INFO_FILE_NAME):
        (output_dir / name).unlink(missing_ok=True)


def count_segments(output_dir: Path) -> int:
    return len(list(output_dir.glob("*.ts")))


def parse_ffmpeg_duration(output: str) -> int:
    """Extract whole seconds from ffmpeg's "Duration: HH:MM:SS.xx" banner (0 if absent)."""
    match = _DURATION_PATTERN.search(output)
    if not match:
        return 0
    hours, minutes, seconds = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


class Transcoder:
    """Thin async facade over ffmpeg and ffprobe.

    Args:
        ffmpeg: ffmpeg executable (default: FFMPEG_BINARY)
        ffprobe: ffprobe executable (default: FFPROBE_BINARY)
        timeout: Subprocess timeout for encodes in seconds
            (default: VIDEO_JOB_TIMEOUT_SECONDS)
    """

    def __init__(
        self,
        ffmpeg: str | None = None,
        ffprobe: str | None = None,
        timeout: float | None = None,
    ):
        self.ffmpeg = ffmpeg or get_ffmpeg_binary()
        self.ffprobe = ffprobe or get_ffprobe_binary()
        self.timeout = timeout or get_video_job_timeout_seconds()

    async def probe_duration(self, source: Path) -> int:
        """Probe media duration in whole seconds.

        Tries ffprobe first and falls back to parsing ``ffmpeg -i`` output.

        Returns:
            Duration in seconds, or 0 if neither method succeeds.
        """
        try:
            result = await run_command(
                [
                    self.ffprobe,
                    "-v",
                    "error",
                    "-show_entries",
                    "format=duration",
                    "-of",
                    "default=noprint_wrappers=1:nokey=1",
                    str(source),
                ],
                timeout=PROBE_TIMEOUT_SECONDS,
            )
            return int(float(result.stdout.strip()))
        except (CommandError, FileNotFoundError, ValueError, asyncio.TimeoutError) as e:
            log.warning("ffprobe_duration_failed", source=str(source), error=str(e))

        try:
            # ffmpeg exits non-zero without an output file; the banner is still on stderr
            result = await run_command(
                [self.ffmpeg, "-hide_banner", "-i", str(source)],
                timeout=PROBE_TIMEOUT_SECONDS,
                check=False,
            )
        except (FileNotFoundError, asyncio.TimeoutError) as e:
            log.warning("ffmpeg_duration_failed", source=str(source), error=str(e))
            return 0

        return parse_ffmpeg_duration(result.stderr)

    def _hls_command(
        self, source: Path, output_dir: Path, key_info_file: Path | None
    ) -> list[str]:
        command = [self.ffmpeg, "-y", "-i", str(source)]
        if key_info_file is not None:
            command += ["-profile:v", "baseline", "-level", "3.0"]
        else:
            command += ["-codec", "copy"]
        command += [
            "-start_number",
            "0",
            "-hls_time",
            str(HLS_SEGMENT_SECONDS),
            "-hls_list_size",
            "0",
        ]
        if key_info_file is not None:
            command += ["-hls_key_info_file", str(key_info_file)]
        command += [
            "-hls_segment_filename",
            str(output_dir / SEGMENT_PATTERN),
            "-f",
            "hls",
            str(output_dir / PLAYLIST_NAME),
        ]
        return command

    async def _encode(
        self,
        source: Path,
        output_dir: Path,
        key_info_file: Path | None,
        timeout: float | None,
    ) -> TranscodeResult:
        command = self._hls_command(source, output_dir, key_info_file)
        try:
            result = await run_command(command, timeout=timeout or self.timeout, check=False)
        except FileNotFoundError:
            return ToolMissing(tool=self.ffmpeg)
        except asyncio.TimeoutError as e:
            return TranscodeFailed(message=str(e))

        playlist = output_dir / PLAYLIST_NAME
        if result.returncode != 0 or not playlist.is_file():
            return TranscodeFailed(message=truncate(result.stderr or result.stdout, 2000))

        return TranscodeSuccess(
            playlist_path=playlist,
            segments_count=count_segments(output_dir),
            encrypted=key_info_file is not None,
        )

    async def encode_hls(
        self,
        source: Path,
        output_dir: Path,
        key_info_file: Path,
        timeout: float | None = None,
    ) -> TranscodeResult:
        """Re-encode to baseline H.264 HLS with AES-128 encrypted segments.

        ``timeout`` overrides the instance timeout for this encode, so callers
        can hand over only what is left of a job attempt.
        """
        return await self._encode(source, output_dir, key_info_file, timeout)

    async def encode_hls_copy(
        self, source: Path, output_dir: Path, timeout: float | None = None
    ) -> TranscodeResult:
        """Repackage to unencrypted HLS without re-encoding (stream copy)."""
        return await self._encode(source, output_dir, None, timeout)

"""Tests for VideoProcessingService.

Covers both processing modes without a real ffmpeg:
- direct_copy when the capability probe reports ffmpeg missing
- hls_conversion through a fake transcoder that writes playlist/segments
"""

import uuid
from pathlib import Path

import pytest

from app.exceptions import TranscodeError, VideoSourceNotFoundError
from app.services.storage_locator import StorageLocator
from app.services.transcoder import (
    KEY_FILE_NAME,
    KEY_INFO_FILE_NAME,
    ToolMissing,
    TranscodeFailed,
    TranscodeSuccess,
    count_segments,
)
from app.services.video_processing import (
    DIRECT_COPY,
    HLS_CONVERSION,
    VideoProcessingService,
)

UPLOAD_BYTES = b"\x00\x00\x00\x18ftypmp42" + bytes(range(256)) * 8


class FakeTranscoder:
    """Stands in for Transcoder, recording calls and writing fake output."""

    def __init__(self, encrypted_ok=True, copy_ok=True, duration=65):
        self.encrypted_ok = encrypted_ok
        self.copy_ok = copy_ok
        self.duration = duration
        self.calls = []
        self.timeouts = []
        self.key_files_seen = False

    async def probe_duration(self, source: Path) -> int:
        self.calls.append("probe")
        return self.duration

    def _write(self, output_dir: Path, encrypted: bool) -> TranscodeSuccess:
        playlist = output_dir / "index.m3u8"
        playlist.write_text("#EXTM3U\n#EXT-X-ENDLIST\n")
        for i in range(2):
            (output_dir / f"segment_{i:03d}.ts").write_bytes(b"ts")
        return TranscodeSuccess(
            playlist_path=playlist,
            segments_count=count_segments(output_dir),
            encrypted=encrypted,
        )

    async def encode_hls(self, source, output_dir, key_info_file, timeout=None):
        self.calls.append("encrypted")
        self.timeouts.append(timeout)
        self.key_files_seen = (output_dir / KEY_FILE_NAME).exists() and key_info_file.exists()
        if not self.encrypted_ok:
            (output_dir / "segment_000.ts").write_bytes(b"partial")
            return TranscodeFailed(message="encrypted encode failed")
        return self._write(output_dir, encrypted=True)

    async def encode_hls_copy(self, source, output_dir, timeout=None):
        self.calls.append("copy")
        self.timeouts.append(timeout)
        if not self.copy_ok:
            return TranscodeFailed(message="Invalid data found when processing input")
        return self._write(output_dir, encrypted=False)


@pytest.fixture
def video_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def upload(storage_root: Path) -> str:
    """Raw upload on disk; returns its storage-relative path."""
    (storage_root / "temp-videos").mkdir()
    (storage_root / "temp-videos" / "lecture.mp4").write_bytes(UPLOAD_BYTES)
    return "temp-videos/lecture.mp4"


def make_service(
    storage_root: Path, transcoder=None, ffmpeg=True, **kwargs
) -> VideoProcessingService:
    return VideoProcessingService(
        locator=StorageLocator.from_roots([storage_root]),
        transcoder=transcoder or FakeTranscoder(),
        storage_root=storage_root,
        tool_probe=lambda: ffmpeg,
        **kwargs,
    )


class TestDirectCopy:
    async def test_copies_bytes_when_ffmpeg_missing(self, storage_root, upload, video_id):
        """[P0] Degraded mode produces a byte-identical copy with duration 0."""
        transcoder = FakeTranscoder()
        service = make_service(storage_root, transcoder, ffmpeg=False)

        outcome = await service.process(video_id, upload)

        assert outcome.processing_method == DIRECT_COPY
        assert outcome.ffmpeg_available is False
        assert outcome.duration_seconds == 0
        assert outcome.encrypted is False
        assert outcome.output_path == f"videos/{video_id}/lecture.mp4"
        assert (storage_root / outcome.output_path).read_bytes() == UPLOAD_BYTES
        assert transcoder.calls == []

    async def test_rerun_is_idempotent(self, storage_root, upload, video_id):
        service = make_service(storage_root, ffmpeg=False)

        first = await service.process(video_id, upload)
        second = await service.process(video_id, upload)

        assert first.output_path == second.output_path
        assert (storage_root / second.output_path).read_bytes() == UPLOAD_BYTES
        assert (storage_root / upload).exists()


class TestHlsConversion:
    async def test_encrypted_hls(self, storage_root, upload, video_id):
        """[P0] Encrypted encode succeeds: playlist path, key returned, key files removed."""
        transcoder = FakeTranscoder(duration=65)
        service = make_service(storage_root, transcoder)

        outcome = await service.process(video_id, upload)

        output_dir = storage_root / "videos" / video_id
        assert outcome.processing_method == HLS_CONVERSION
        assert outcome.ffmpeg_available is True
        assert outcome.output_path == f"videos/{video_id}/index.m3u8"
        assert outcome.duration_seconds == 65
        assert outcome.segments_count == 2
        assert outcome.encrypted is True
        assert len(outcome.encryption_key) == 16
        assert transcoder.calls == ["probe", "encrypted"]
        assert transcoder.key_files_seen is True
        assert not (output_dir / KEY_FILE_NAME).exists()
        assert not (output_dir / KEY_INFO_FILE_NAME).exists()

    async def test_key_uri_uses_public_base_url(self, storage_root, upload, video_id, monkeypatch):
        monkeypatch.setenv("PUBLIC_BASE_URL", "https://lms.example.com")
        seen = {}

        class CapturingTranscoder(FakeTranscoder):
            async def encode_hls(self, source, output_dir, key_info_file, timeout=None):
                seen["uri"] = key_info_file.read_text().splitlines()[0]
                return await super().encode_hls(source, output_dir, key_info_file, timeout)

        await make_service(storage_root, CapturingTranscoder()).process(video_id, upload)

        assert seen["uri"] == f"https://lms.example.com/api/video/key/{video_id}"

    async def test_falls_back_to_copy_encode(self, storage_root, upload, video_id):
        """[P1] A failed encrypted encode is retried once as unencrypted copy."""
        transcoder = FakeTranscoder(encrypted_ok=False)
        service = make_service(storage_root, transcoder)

        outcome = await service.process(video_id, upload)

        assert transcoder.calls == ["probe", "encrypted", "copy"]
        assert outcome.processing_method == HLS_CONVERSION
        assert outcome.encrypted is False
        assert outcome.encryption_key is None
        assert not (storage_root / "videos" / video_id / KEY_FILE_NAME).exists()

    async def test_both_encodes_failing_raises(self, storage_root, upload, video_id):
        transcoder = FakeTranscoder(encrypted_ok=False, copy_ok=False)
        service = make_service(storage_root, transcoder)

        with pytest.raises(TranscodeError, match="Invalid data found") as exc_info:
            await service.process(video_id, upload)

        assert exc_info.value.output == "Invalid data found when processing input"
        assert not (storage_root / "videos" / video_id / KEY_FILE_NAME).exists()

    async def test_tool_vanishing_mid_run_raises(self, storage_root, upload, video_id):
        class VanishingTranscoder(FakeTranscoder):
            async def encode_hls(self, source, output_dir, key_info_file, timeout=None):
                return ToolMissing(tool="ffmpeg")

        service = make_service(storage_root, VanishingTranscoder())

        with pytest.raises(TranscodeError, match="Transcoder not found: ffmpeg"):
            await service.process(video_id, upload)

    async def test_stale_segments_from_earlier_attempt_removed(
        self, storage_root, upload, video_id
    ):
        """[P0] A retry into a used output directory reports only its own segments.

        GIVEN: 20 unencrypted segments and a playlist left by a failed attempt
        WHEN: The next attempt's encrypted encode writes 2 segments
        THEN: segments_count is 2 and the stale segments are gone
        """
        # GIVEN
        output_dir = storage_root / "videos" / video_id
        output_dir.mkdir(parents=True)
        for i in range(20):
            (output_dir / f"segment_{i:03d}.ts").write_bytes(b"stale")
        (output_dir / "index.m3u8").write_text("#EXTM3U\n")

        # WHEN
        outcome = await make_service(storage_root).process(video_id, upload)

        # THEN
        assert outcome.segments_count == 2
        assert sorted(p.name for p in output_dir.glob("*.ts")) == [
            "segment_000.ts",
            "segment_001.ts",
        ]
        assert all(p.read_bytes() == b"ts" for p in output_dir.glob("*.ts"))


class TestTimeBudget:
    async def test_encodes_share_one_budget(self, storage_root, upload, video_id):
        """[P0] The copy fallback only gets what the encrypted encode left over."""
        now = [1000.0]

        class SlowFailingTranscoder(FakeTranscoder):
            async def encode_hls(self, source, output_dir, key_info_file, timeout=None):
                now[0] += 3000
                return await super().encode_hls(source, output_dir, key_info_file, timeout)

        transcoder = SlowFailingTranscoder(encrypted_ok=False)
        service = make_service(
            storage_root, transcoder, time_budget=3600, clock=lambda: now[0]
        )

        await service.process(video_id, upload)

        assert transcoder.calls == ["probe", "encrypted", "copy"]
        assert transcoder.timeouts == [3600, 600]

    async def test_spent_budget_leaves_minimum(self, storage_root, upload, video_id):
        now = [0.0]

        class OverrunTranscoder(FakeTranscoder):
            async def encode_hls(self, source, output_dir, key_info_file, timeout=None):
                now[0] += 5000
                return await super().encode_hls(source, output_dir, key_info_file, timeout)

        transcoder = OverrunTranscoder(encrypted_ok=False)
        service = make_service(storage_root, transcoder, time_budget=60, clock=lambda: now[0])

        await service.process(video_id, upload)

        assert transcoder.timeouts == [60, 1.0]

    def test_budget_defaults_to_job_timeout(self, storage_root, monkeypatch):
        monkeypatch.setenv("VIDEO_JOB_TIMEOUT_SECONDS", "900")

        assert make_service(storage_root).time_budget == 900


class TestLocateSource:
    async def test_missing_source_lists_tried_paths(self, storage_root, video_id):
        """[P0] A missing upload fails with every candidate path in the message."""
        service = make_service(storage_root)

        with pytest.raises(VideoSourceNotFoundError) as exc_info:
            await service.process(video_id, "temp-videos/missing.mp4")

        assert exc_info.value.video_id == video_id
        assert exc_info.value.probed_paths == [str(storage_root / "temp-videos" / "missing.mp4")]
        assert "Tried paths" in str(exc_info.value)

    async def test_legacy_absolute_path_is_found(self, storage_root, upload, video_id):
        service = make_service(storage_root, ffmpeg=False)

        outcome = await service.process(
            video_id, "/var/www/old-host/storage/app/private/temp-videos/lecture.mp4"
        )

        assert outcome.output_path == f"videos/{video_id}/lecture.mp4"

"""Tests for StorageLocator.

Test Coverage:
- Ordered probing across root strategies
- Absolute legacy paths normalised to their storage-relative tail
- Deduplication and skipping of empty inputs
- "Not found" is None, never an exception
"""

from pathlib import Path

from app.services.storage_locator import (
    StorageLocator,
    normalize_legacy_path,
    root_prefix,
)


class TestNormalizeLegacyPath:
    def test_strips_machine_prefix_before_temp_videos(self):
        path = "/var/www/lms/storage/app/private/temp-videos/a.mp4"

        assert normalize_legacy_path(path) == "temp-videos/a.mp4"

    def test_strips_machine_prefix_before_videos(self):
        assert normalize_legacy_path("/old/host/videos/1/x.mp4") == "videos/1/x.mp4"

    def test_relative_paths_are_not_legacy(self):
        assert normalize_legacy_path("temp-videos/a.mp4") is None

    def test_absolute_path_without_marker(self):
        assert normalize_legacy_path("/tmp/upload.mp4") is None


class TestCandidates:
    def test_relative_path_searches_roots_in_order(self):
        locator = StorageLocator.from_roots(["/srv/a", "/srv/b"])

        assert locator.candidates("videos/1/x.mp4") == [
            Path("/srv/a/videos/1/x.mp4"),
            Path("/srv/b/videos/1/x.mp4"),
        ]

    def test_absolute_path_tried_first_then_normalised(self):
        locator = StorageLocator.from_roots(["/srv/a"])

        assert locator.candidates("/legacy/storage/app/temp-videos/a.mp4") == [
            Path("/legacy/storage/app/temp-videos/a.mp4"),
            Path("/srv/a/temp-videos/a.mp4"),
        ]

    def test_multiple_paths_deduplicated_and_empty_skipped(self):
        locator = StorageLocator.from_roots(["/srv/a"])

        candidates = locator.candidates("temp-videos/a.mp4", None, "", "temp-videos/a.mp4")

        assert candidates == [Path("/srv/a/temp-videos/a.mp4")]

    def test_custom_strategy(self):
        locator = StorageLocator([lambda rel: Path("/mnt/media") / rel.upper()])

        assert locator.candidates("x.mp4") == [Path("/mnt/media/X.MP4")]

    def test_root_prefix_ignores_leading_slash_in_relative_path(self):
        assert root_prefix("/srv/a")("/videos/x.mp4") == Path("/srv/a/videos/x.mp4")


class TestLocate:
    def test_returns_first_existing_file(self, tmp_path: Path):
        first = tmp_path / "private"
        second = tmp_path / "public"
        (second / "temp-videos").mkdir(parents=True)
        (second / "temp-videos" / "a.mp4").write_bytes(b"video")
        locator = StorageLocator.from_roots([first, second])

        assert locator.locate("temp-videos/a.mp4") == second / "temp-videos" / "a.mp4"

    def test_prefers_earlier_root_when_both_exist(self, tmp_path: Path):
        for root in ("a", "b"):
            (tmp_path / root / "videos").mkdir(parents=True)
            (tmp_path / root / "videos" / "x.mp4").write_bytes(root.encode())
        locator = StorageLocator.from_roots([tmp_path / "a", tmp_path / "b"])

        assert locator.locate("videos/x.mp4").read_bytes() == b"a"

    def test_missing_file_returns_none(self, tmp_path: Path):
        locator = StorageLocator.from_roots([tmp_path])

        assert locator.locate("temp-videos/missing.mp4") is None

    def test_directories_are_not_files(self, tmp_path: Path):
        (tmp_path / "videos" / "abc").mkdir(parents=True)
        locator = StorageLocator.from_roots([tmp_path])

        assert locator.locate("videos/abc") is None

    def test_legacy_absolute_path_found_under_current_root(self, tmp_path: Path):
        """[P0] Rows written on another machine still resolve after a move."""
        (tmp_path / "temp-videos").mkdir()
        (tmp_path / "temp-videos" / "a.mp4").write_bytes(b"video")
        locator = StorageLocator.from_roots([tmp_path])

        found = locator.locate("/old/host/storage/app/private/temp-videos/a.mp4")

        assert found == tmp_path / "temp-videos" / "a.mp4"

    def test_from_config_uses_storage_roots(self, storage_root: Path):
        (storage_root / "temp-videos").mkdir()
        (storage_root / "temp-videos" / "a.mp4").write_bytes(b"video")

        assert StorageLocator.from_config().locate("temp-videos/a.mp4") is not None

"""Tests for scripts/check_video_status.py (status report and reprocess)."""

import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from check_video_status import (  # noqa: E402
    find_reprocessable_videos,
    find_stuck_videos,
    print_report,
    reprocess,
    status_counts,
)

from app.entrypoints import PROCESS_VIDEO_ENTRYPOINT  # noqa: E402
from app.models import Lesson, Video, VideoStatus, utcnow  # noqa: E402


def video(title: str, status: VideoStatus, age: timedelta, **extra) -> Video:
    return Video(
        title=title,
        original_filename=f"{title}.mp4",
        original_path=f"temp-videos/{title}.mp4",
        status=status,
        created_at=utcnow() - age,
        **extra,
    )


@pytest.fixture
async def videos(async_test_session):
    rows = {
        "pending": video("pending", VideoStatus.PENDING, timedelta(minutes=1)),
        "failed": video("failed", VideoStatus.FAILED, timedelta(hours=1), processing_error="boom"),
        "stuck": video("stuck", VideoStatus.PROCESSING, timedelta(minutes=30)),
        "running": video("running", VideoStatus.PROCESSING, timedelta(minutes=2)),
        "ready": video("ready", VideoStatus.READY, timedelta(days=1)),
    }
    async_test_session.add_all(rows.values())
    await async_test_session.commit()
    return rows


class TestQueries:
    async def test_status_counts(self, async_test_session, videos):
        counts = await status_counts(async_test_session)

        assert counts == {"pending": 1, "processing": 2, "ready": 1, "failed": 1}

    async def test_stuck_videos(self, async_test_session, videos):
        stuck = await find_stuck_videos(async_test_session)

        assert [v.title for v in stuck] == ["stuck"]

    async def test_reprocessable_videos(self, async_test_session, videos):
        """[P0] Pending and failed always; processing only once stuck."""
        found = await find_reprocessable_videos(async_test_session)

        assert sorted(v.title for v in found) == ["failed", "pending", "stuck"]


class TestReprocess:
    async def test_resets_and_enqueues(self, async_test_session, videos, capsys):
        queue = AsyncMock()

        queued = await reprocess(async_test_session, queue, assume_yes=True)

        assert queued == 3
        assert queue.enqueue.await_count == 3
        enqueued_ids = {call.args[1].decode() for call in queue.enqueue.await_args_list}
        assert enqueued_ids == {
            str(videos[name].id) for name in ("pending", "failed", "stuck")
        }
        assert all(call.args[0] == PROCESS_VIDEO_ENTRYPOINT for call in queue.enqueue.await_args_list)

        result = await async_test_session.execute(
            select(Video).where(Video.status == VideoStatus.PENDING)
        )
        reset = result.scalars().all()
        assert len(reset) == 3
        assert all(v.processing_error is None for v in reset)
        assert "queued for reprocessing" in capsys.readouterr().out

    async def test_declined_confirmation(self, async_test_session, videos, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt: "n")
        queue = AsyncMock()

        assert await reprocess(async_test_session, queue) == 0
        queue.enqueue.assert_not_awaited()

    async def test_nothing_to_do(self, async_test_session, capsys):
        assert await reprocess(async_test_session, AsyncMock(), assume_yes=True) == 0
        assert "No videos need reprocessing." in capsys.readouterr().out


class TestReport:
    async def test_report_lists_lessons_and_failures(
        self, async_test_session, sample_lesson_data, capsys
    ):
        lesson = Lesson(**sample_lesson_data)
        async_test_session.add_all(
            [
                lesson,
                video(
                    "broken",
                    VideoStatus.FAILED,
                    timedelta(hours=1),
                    lesson_id=lesson.id,
                    processing_error="Video file not found",
                ),
            ]
        )
        await async_test_session.commit()

        await print_report(async_test_session)

        out = capsys.readouterr().out
        assert "Introduction to Composting" in out
        assert "status=failed" in out
        assert "Video file not found" in out

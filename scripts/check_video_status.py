#!/usr/bin/env python3
"""Check video processing status and optionally reprocess stuck videos.

Prints video counts per status, each lesson's primary video, videos stuck in
pending/processing for more than 10 minutes and failed videos with their
error. With --reprocess, pending, failed and stuck processing videos are
reset to pending (error cleared) and re-enqueued.

Usage:
    python scripts/check_video_status.py
    python scripts/check_video_status.py --reprocess
    python scripts/check_video_status.py --reprocess --yes
"""

import argparse
import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv

script_dir = Path(__file__).parent.parent
sys.path.insert(0, str(script_dir))
load_dotenv(script_dir / ".env")

from sqlalchemy import func, or_, select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.entrypoints import PROCESS_VIDEO_ENTRYPOINT  # noqa: E402
from app.models import Lesson, Video, VideoStatus, utcnow  # noqa: E402
from app.services.video_service import get_primary_video, reset_for_reprocess  # noqa: E402

STUCK_AFTER = timedelta(minutes=10)


async def status_counts(session: AsyncSession) -> dict[str, int]:
    result = await session.execute(
        select(Video.status, func.count()).group_by(Video.status).order_by(Video.status)
    )
    return {status.value: count for status, count in result.all()}


async def find_stuck_videos(session: AsyncSession, now: datetime | None = None) -> list[Video]:
    """Pending or processing videos created more than 10 minutes ago."""
    cutoff = (now or utcnow()) - STUCK_AFTER
    result = await session.execute(
        select(Video)
        .where(
            Video.status.in_((VideoStatus.PENDING, VideoStatus.PROCESSING)),
            Video.created_at < cutoff,
        )
        .order_by(Video.created_at)
    )
    return list(result.scalars().all())


async def find_reprocessable_videos(
    session: AsyncSession, now: datetime | None = None
) -> list[Video]:
    """Pending and failed videos, plus processing videos older than 10 minutes."""
    cutoff = (now or utcnow()) - STUCK_AFTER
    result = await session.execute(
        select(Video)
        .where(
            or_(
                Video.status.in_((VideoStatus.PENDING, VideoStatus.FAILED)),
                (Video.status == VideoStatus.PROCESSING) & (Video.created_at < cutoff),
            )
        )
        .order_by(Video.created_at)
    )
    return list(result.scalars().all())


async def print_report(session: AsyncSession) -> None:
    print("Checking video processing status...")
    print()
    print(f"{'Status':<12} Count")
    for status, count in (await status_counts(session)).items():
        print(f"{status:<12} {count}")

    print()
    print("Lesson Video Details:")
    lessons = (await session.execute(select(Lesson).order_by(Lesson.created_at))).scalars().all()
    for lesson in lessons:
        video = await get_primary_video(session, lesson.id)
        title = lesson.title if len(lesson.title) <= 30 else lesson.title[:27] + "..."
        print(
            f"  {str(lesson.id)[:8]}... {title:<30} "
            f"status={video.status.value if video else 'no video'} "
            f"size={video.formatted_size if video else '-'} "
            f"error={'yes' if video and video.processing_error else 'no'}"
        )

    stuck = await find_stuck_videos(session)
    if stuck:
        print()
        print(f"⚠️  Found {len(stuck)} stuck videos (older than 10 minutes):")
        for video in stuck:
            print(f"  - Video ID: {video.id} (Status: {video.status.value}, Created: {video.created_at})")

    failed = (
        (await session.execute(select(Video).where(Video.status == VideoStatus.FAILED)))
        .scalars()
        .all()
    )
    if failed:
        print()
        print(f"❌ Found {len(failed)} failed videos:")
        for video in failed:
            error = (video.processing_error or "Unknown error")[:80]
            print(f"  - Video ID: {video.id} - Error: {error}")


async def reprocess(session: AsyncSession, queue, assume_yes: bool = False) -> int:
    """Reset reprocessable videos to pending and re-enqueue them.

    Returns:
        Number of videos queued.
    """
    videos = await find_reprocessable_videos(session)
    if not videos:
        print("No videos need reprocessing.")
        return 0

    if not assume_yes:
        answer = input(f"Reprocess {len(videos)} videos? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            return 0

    reset = [video for video in videos if reset_for_reprocess(video)]
    await session.commit()

    for video in reset:
        await queue.enqueue(PROCESS_VIDEO_ENTRYPOINT, str(video.id).encode())
        print(f"✅ Queued video {video.id} for reprocessing")

    print("All videos have been queued for reprocessing!")
    return len(reset)


async def main(args: argparse.Namespace) -> int:
    from app.database import async_session_factory

    if async_session_factory is None:
        print("ERROR: DATABASE_URL environment variable not set")
        return 1

    async with async_session_factory() as session:
        await print_report(session)

        if args.reprocess:
            from app.queue import initialize_enqueuer

            queue, pool = await initialize_enqueuer()
            try:
                await reprocess(session, queue, assume_yes=args.yes)
            finally:
                await pool.close()

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check video processing status")
    parser.add_argument(
        "--reprocess",
        action="store_true",
        help="Reprocess pending, failed and stuck processing videos",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Do not ask for confirmation before reprocessing",
    )
    sys.exit(asyncio.run(main(parser.parse_args())))

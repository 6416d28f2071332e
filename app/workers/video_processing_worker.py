"""Video Processing Worker for the upload → streamable output pipeline.

This worker processes one video by orchestrating VideoProcessingService.
It follows the short transaction pattern: claim video → close DB → process →
reopen DB → update video.

Transaction Pattern (CRITICAL):
    1. Claim video (short transaction, row lock, set status="processing")
    2. Close database connection
    3. Process (LONG-RUNNING, up to the job deadline, outside transaction)
    4. Reopen database connection
    5. Update video (short transaction, set status="ready" or "failed")

Claiming:
    Only pending or failed videos are claimed. Any other status means another
    attempt is running, the video is already ready, or it was replaced, and
    the task returns without touching the row. This keeps attempts serial.

Error Handling:
    Every failure writes status="failed" and processing_error before the
    exception is re-raised to the JobSupervisor, which retries within the
    attempt budget (see run_video_job).

Usage:
    await run_video_job(video_id="uuid-here")
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session_factory
from app.models import Video, VideoStatus, utcnow
from app.schemas.video import VideoMetadata
from app.services.job_supervisor import JobAttemptTimeout, JobSupervisor
from app.services.video_processing import ProcessingOutcome, VideoProcessingService
from app.utils.encryption import get_encryption_service
from app.utils.logging import get_logger

log = get_logger(__name__)

CLAIMABLE_STATUSES = (VideoStatus.PENDING, VideoStatus.FAILED)

# Statuses a failure may be recorded over
FAILABLE_STATUSES = (VideoStatus.PROCESSING, VideoStatus.FAILED)

EXHAUSTED_MESSAGE = "Processing failed after multiple attempts: {error}"


def _require_session_factory() -> async_sessionmaker[AsyncSession]:
    if async_session_factory is None:
        log.error("database_not_configured")
        raise RuntimeError("Database not configured")
    return async_session_factory


async def _claim_video(video_id: UUID) -> str | None:
    """Move a claimable video to processing and return its original_path."""
    session_factory = _require_session_factory()
    async with session_factory() as db:
        result = await db.execute(select(Video).where(Video.id == video_id).with_for_update())
        video = result.scalar_one_or_none()

        if video is None:
            log.error("video_not_found", video_id=str(video_id))
            return None

        if video.status not in CLAIMABLE_STATUSES:
            log.info(
                "video_claim_skipped",
                video_id=str(video_id),
                status=video.status.value,
            )
            return None

        video.status = VideoStatus.PROCESSING
        video.processing_error = None
        original_path = video.original_path
        await db.commit()

    log.info("video_claimed", video_id=str(video_id), original_path=original_path)
    return original_path


async def _store_outcome(
    video_id: UUID, outcome: ProcessingOutcome, wrapped_key: bytes | None
) -> bool:
    session_factory = _require_session_factory()
    async with session_factory() as db:
        result = await db.execute(select(Video).where(Video.id == video_id).with_for_update())
        video = result.scalar_one_or_none()

        if video is None or video.status != VideoStatus.PROCESSING:
            # Replaced or deleted while processing; the result is discarded
            log.warning(
                "video_changed_during_processing",
                video_id=str(video_id),
                status=video.status.value if video else None,
            )
            return False

        metadata = VideoMetadata.from_column(video.video_metadata).merged(
            processed_at=utcnow().isoformat(),
            processing_method=outcome.processing_method,
            ffmpeg_available=outcome.ffmpeg_available,
            segments_count=outcome.segments_count,
            encrypted=outcome.encrypted,
        )

        video.status = VideoStatus.READY
        video.hls_path = outcome.output_path
        video.duration_seconds = outcome.duration_seconds
        video.encryption_key_encrypted = wrapped_key
        video.video_metadata = metadata.to_column()
        await db.commit()

    log.info(
        "video_ready",
        video_id=str(video_id),
        output_path=outcome.output_path,
        processing_method=outcome.processing_method,
        duration_seconds=outcome.duration_seconds,
        segments_count=outcome.segments_count,
    )
    return True


async def mark_video_failed(video_id: str | UUID, message: str) -> bool:
    """Record a failure on a video that is processing or already failed.

    Returns:
        True if the row was updated.
    """
    if isinstance(video_id, str):
        video_id = UUID(video_id)

    session_factory = _require_session_factory()
    async with session_factory() as db:
        video = await db.get(Video, video_id)
        if video is None or video.status not in FAILABLE_STATUSES:
            return False

        video.status = VideoStatus.FAILED
        video.processing_error = message
        await db.commit()

    log.error("video_failed", video_id=str(video_id), error=message[:500])
    return True


async def process_video_task(
    video_id: str | UUID,
    service: VideoProcessingService | None = None,
) -> ProcessingOutcome | None:
    """Process a single video (one attempt).

    Args:
        video_id: Video UUID (string or UUID object)
        service: Processing service (default: VideoProcessingService())

    Returns:
        The stored ProcessingOutcome, or None if the video was not claimable
        or changed while processing.

    Raises:
        Exception: Any processing error, after status="failed" is recorded.
    """
    if isinstance(video_id, str):
        video_id = UUID(video_id)

    original_path = await _claim_video(video_id)
    if original_path is None:
        return None

    service = service or VideoProcessingService()
    try:
        outcome = await service.process(str(video_id), original_path)
        wrapped_key = (
            get_encryption_service().encrypt_key(outcome.encryption_key)
            if outcome.encryption_key is not None
            else None
        )
        stored = await _store_outcome(video_id, outcome, wrapped_key)
    except Exception as e:
        log.error(
            "video_processing_error",
            video_id=str(video_id),
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        await mark_video_failed(video_id, str(e))
        raise

    return outcome if stored else None


async def run_video_job(
    video_id: str | UUID,
    supervisor: JobSupervisor | None = None,
    service: VideoProcessingService | None = None,
) -> ProcessingOutcome | None:
    """Run process_video_task under the retry/deadline supervisor.

    A timed-out attempt is cancelled before it can record its failure, so
    the per-attempt hook records it. After the final attempt the error is
    recorded as "Processing failed after multiple attempts: ..." and
    re-raised to the queue, which does not retry again.
    """
    supervisor = supervisor or JobSupervisor()
    video_key = str(video_id)

    async def on_attempt_failed(attempt: int, error: BaseException) -> None:
        if isinstance(error, JobAttemptTimeout):
            await mark_video_failed(video_key, str(error))

    async def on_exhausted(error: BaseException) -> None:
        await mark_video_failed(video_key, EXHAUSTED_MESSAGE.format(error=error))

    return await supervisor.run(
        lambda: process_video_task(video_key, service=service),
        job_name=f"process_video:{video_key}",
        on_attempt_failed=on_attempt_failed,
        on_exhausted=on_exhausted,
    )

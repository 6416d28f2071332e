"""Upload ingestion and lesson video lookup.

This module provides the write side of the upload endpoint:
- Upload validation (extension whitelist, title, size cap, lesson exists)
- Streaming the upload to <STORAGE_ROOT>/temp-videos/<uuid>.<ext>
- Replacing a lesson's primary video and creating the pending Video row
- Handing the video to the transcoding queue (with in-process fallback)

Architecture:
- The Video row and the replacement mark are committed in one transaction
- Any failure before commit removes the stored file and rolls back
- Enqueueing happens after commit and never fails the upload
"""

import asyncio
import uuid
from pathlib import Path

import structlog
from fastapi import BackgroundTasks, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app import database
from app.config import get_max_upload_size_bytes
from app.entrypoints import PROCESS_VIDEO_ENTRYPOINT
from app.exceptions import UploadValidationError
from app.models import INACTIVE_STATUSES, Lesson, Video, VideoStatus, utcnow
from app.schemas.video import VideoMetadata
from app.services.media_types import UPLOAD_EXTENSIONS
from app.utils.filesystem import discard_file, get_temp_upload_dir, relative_to_root
from app.workers.video_processing_worker import run_video_job

log = structlog.get_logger()

UPLOAD_CHUNK_SIZE = 1024 * 1024
MAX_TITLE_LENGTH = 255


def validate_upload(filename: str | None, title: str | None) -> str:
    """Validate the upload's filename and title.

    Returns:
        Lowercase file extension without the dot (e.g. "mp4").

    Raises:
        UploadValidationError: Missing file, unsupported type, or bad title.
    """
    if not filename:
        raise UploadValidationError("The video field is required.")

    extension = Path(filename).suffix.lower().lstrip(".")
    if extension not in UPLOAD_EXTENSIONS:
        allowed = ", ".join(UPLOAD_EXTENSIONS)
        raise UploadValidationError(f"The video must be a file of type: {allowed}.")

    if not title or not title.strip():
        raise UploadValidationError("The title field is required.")

    if len(title) > MAX_TITLE_LENGTH:
        raise UploadValidationError(
            f"The title may not be greater than {MAX_TITLE_LENGTH} characters."
        )

    return extension


async def store_upload(
    upload: UploadFile,
    extension: str,
    max_size: int | None = None,
    root: Path | None = None,
) -> tuple[Path, int]:
    """Stream an upload to the temp directory in 1 MiB chunks.

    The size cap is enforced while reading, so an oversize upload is cut off
    and removed without being stored in full.

    Returns:
        Tuple of (stored path, size in bytes).

    Raises:
        UploadValidationError: Upload exceeds max_size.
    """
    max_size = max_size or get_max_upload_size_bytes()
    if upload.size is not None and upload.size > max_size:
        raise UploadValidationError(_too_large_message(max_size))

    target = get_temp_upload_dir(root) / f"{uuid.uuid4()}.{extension}"
    written = 0
    try:
        with target.open("wb") as f:
            while chunk := await upload.read(UPLOAD_CHUNK_SIZE):
                written += len(chunk)
                if written > max_size:
                    raise UploadValidationError(_too_large_message(max_size))
                await asyncio.to_thread(f.write, chunk)
    except BaseException:
        discard_file(target)
        raise

    return target, written


def _too_large_message(max_size: int) -> str:
    return f"The video may not be greater than {max_size // 1024} kilobytes."


async def get_primary_video(db: AsyncSession, lesson_id: uuid.UUID) -> Video | None:
    """Return the lesson's primary video: its newest video not replaced or deleted."""
    result = await db.execute(
        select(Video)
        .where(Video.lesson_id == lesson_id, Video.status.not_in(INACTIVE_STATUSES))
        .order_by(Video.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def ingest_upload(
    db: AsyncSession,
    upload: UploadFile,
    title: str | None,
    lesson_id: uuid.UUID | None = None,
    uploaded_by: str | None = None,
    root: Path | None = None,
) -> Video:
    """Validate, store and record a new upload as a pending Video.

    Args:
        db: Database session (committed here on success)
        upload: Multipart file
        title: Video title (required, at most 255 characters)
        lesson_id: Owning lesson, must exist when given
        uploaded_by: Authenticated uploader, recorded in metadata
        root: Storage root (defaults to STORAGE_ROOT)

    Returns:
        The committed Video with status="pending".

    Raises:
        UploadValidationError: Validation failed, nothing was stored.
        Exception: Storage or database failure, after file cleanup and rollback.
    """
    extension = validate_upload(upload.filename, title)

    if lesson_id is not None and await db.get(Lesson, lesson_id) is None:
        raise UploadValidationError("The selected lesson id is invalid.")

    stored_path, size = await store_upload(upload, extension, root=root)

    try:
        if lesson_id is not None:
            previous = await get_primary_video(db, lesson_id)
            if previous is not None:
                previous.status = VideoStatus.REPLACED
                log.info(
                    "video_replaced",
                    video_id=str(previous.id),
                    lesson_id=str(lesson_id),
                )

        metadata = VideoMetadata(
            uploaded_by=uploaded_by,
            uploaded_at=utcnow(),
            original_extension=extension,
        )
        video = Video(
            title=title.strip(),
            lesson_id=lesson_id,
            original_filename=upload.filename,
            original_path=relative_to_root(stored_path, root),
            file_size=size,
            mime_type=UPLOAD_EXTENSIONS[extension],
            status=VideoStatus.PENDING,
            video_metadata=metadata.to_column(),
        )
        db.add(video)
        await db.commit()
    except Exception as e:
        log.error(
            "video_upload_failed",
            error=str(e),
            error_type=type(e).__name__,
            stored_path=str(stored_path),
        )
        discard_file(stored_path)
        await db.rollback()
        raise

    log.info(
        "video_uploaded",
        video_id=str(video.id),
        lesson_id=str(lesson_id) if lesson_id else None,
        size=size,
        original_path=video.original_path,
    )
    return video


async def enqueue_processing(
    video_id: uuid.UUID,
    background_tasks: BackgroundTasks | None = None,
) -> bool:
    """Hand a video to the transcoding queue.

    Falls back to running the supervised job in-process after the response
    when the queue is not configured or enqueueing fails.

    Returns:
        True if the job was enqueued on PgQueuer, False if the fallback was used.
    """
    queue = database.task_queue
    if queue is not None:
        try:
            await queue.enqueue(PROCESS_VIDEO_ENTRYPOINT, str(video_id).encode())
            log.info("video_job_enqueued", video_id=str(video_id))
            return True
        except Exception as e:
            log.warning(
                "video_enqueue_failed",
                video_id=str(video_id),
                error=str(e),
                error_type=type(e).__name__,
            )
    else:
        log.warning("task_queue_unavailable", video_id=str(video_id))

    if background_tasks is not None:
        background_tasks.add_task(run_video_job, video_id)
        log.info("video_job_scheduled_in_process", video_id=str(video_id))
    return False


def reset_for_reprocess(video: Video) -> bool:
    """Return a pending, failed or processing video to pending with its error cleared.

    Returns:
        True if the video can be re-enqueued.
    """
    if video.status not in (VideoStatus.PENDING, VideoStatus.FAILED, VideoStatus.PROCESSING):
        return False

    video.status = VideoStatus.PENDING
    video.processing_error = None
    return True

"""Lesson preview streaming route.

GET /api/lessons/{lesson_id}/stream-url issues a two hour signed URL for the
primary video of a free lesson. Callers may be anonymous; an authenticated
caller's id is signed into the URL instead of "anonymous".
"""

from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_optional_user_id
from app.config import get_preview_stream_url_ttl_minutes
from app.database import get_session
from app.models import Lesson
from app.routes.videos import (
    build_stream_url,
    get_stream_token_signer,
    message_response,
    parse_uuid,
)
from app.schemas.video import LessonInfo, LessonStreamUrlResponse, StreamVideoInfo
from app.services.stream_tokens import StreamTokenSigner
from app.services.video_service import get_primary_video

log = structlog.get_logger()
router = APIRouter(prefix="/api/lessons", tags=["lessons"])


@router.get("/{lesson_id}/stream-url", response_model=LessonStreamUrlResponse)
async def lesson_stream_url(
    lesson_id: str,
    request: Request,
    db: AsyncSession = Depends(get_session),
    signer: StreamTokenSigner = Depends(get_stream_token_signer),
    user_id: str | None = Depends(get_optional_user_id),
):
    """Issue a preview stream URL for a free lesson.

    Returns:
        200 OK: {stream_url, expires_at, video, lesson}
        400 Bad Request: No ready primary video
        403 Forbidden: Lesson is not free
        404 Not Found: Unknown lesson
    """
    parsed = parse_uuid(lesson_id)
    lesson = await db.get(Lesson, parsed) if parsed else None
    if lesson is None:
        return message_response(404, "Lesson not found")

    video = await get_primary_video(db, lesson.id)
    if video is None or not video.is_ready:
        return message_response(
            400,
            "Video not available",
            status=video.status.value if video else "no_video",
        )

    if not lesson.is_free:
        return message_response(403, "This lesson requires course purchase")

    signed = signer.issue(
        str(video.id),
        user_id,
        timedelta(minutes=get_preview_stream_url_ttl_minutes()),
    )
    log.info(
        "lesson_stream_url_issued",
        lesson_id=str(lesson.id),
        video_id=str(video.id),
        user=signed.user,
    )
    return LessonStreamUrlResponse(
        stream_url=build_stream_url(request, signed),
        expires_at=signed.expires_at,
        video=StreamVideoInfo(
            id=video.id, title=lesson.title, duration=video.formatted_duration
        ),
        lesson=LessonInfo(id=lesson.id, title=lesson.title),
    )

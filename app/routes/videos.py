"""Video upload, status and secure streaming routes.

This module provides the FastAPI routes under /api/video:
- POST /upload - Multipart upload, creates a pending Video and enqueues processing
- GET /status/{video_id} - Processing status polling
- GET /{video_id}/generate-url - Issue a signed, time-limited stream URL
- GET /stream/{video_id} - Token-checked byte-range streaming (HLS playlists are
  rewritten per request so key and segment URIs carry the signed parameters)
- GET /segment/{video_id}/{segment_name} - Token-checked HLS segment delivery
- GET /key/{video_id} - Token-checked HLS AES key delivery
- PUT /access-log/{log_id} - Playback telemetry from the player

Pattern:
- Authorization happens when a URL is issued; the stream endpoint only
  verifies the HMAC token and its expiry
- Streaming and key responses carry CORS headers, including errors
- Error bodies are {"message": ...}
"""

import asyncio
import uuid
from datetime import timedelta
from pathlib import Path

import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_optional_user_id
from app.config import get_stream_url_ttl_minutes
from app.database import get_session
from app.exceptions import (
    RangeNotSatisfiableError,
    StreamTokenError,
    UploadValidationError,
)
from app.models import Lesson, Video, VideoAccessLog
from app.schemas.video import (
    AccessLogUpdate,
    AccessLogUpdateResponse,
    StreamUrlResponse,
    StreamVideoInfo,
    UploadResponse,
    VideoStatusResponse,
    VideoSummary,
)
from app.services.access_log_service import apply_telemetry, create_access_log
from app.services.byte_range import parse_range
from app.services.media_types import detect_media_type
from app.services.storage_locator import StorageLocator
from app.services.stream_tokens import SignedStream, StreamTokenSigner
from app.services.streaming import (
    PLAYLIST_SUFFIX,
    iter_file_range,
    resolve_stream_file,
    segment_path,
    sign_playlist,
)
from app.services.video_service import enqueue_processing, ingest_upload
from app.utils.encryption import DecryptionError, EncryptionKeyMissing, get_encryption_service

log = structlog.get_logger()
router = APIRouter(prefix="/api/video", tags=["videos"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Type",
    "Access-Control-Expose-Headers": "Content-Range, Accept-Ranges, Content-Length",
}

HLS_PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
HLS_SEGMENT_MEDIA_TYPE = "video/mp2t"

FULL_RESPONSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, private, must-revalidate",
    "Content-Disposition": "inline",
    "X-Content-Type-Options": "nosniff",
}


def get_stream_token_signer() -> StreamTokenSigner:
    return StreamTokenSigner()


def get_storage_locator() -> StorageLocator:
    return StorageLocator.from_config()


def message_response(
    status_code: int, message: str, headers: dict[str, str] | None = None, **extra: object
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"message": message, **extra},
        headers=headers,
    )


def parse_uuid(value: str | None) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


async def find_video(db: AsyncSession, video_id: str) -> Video | None:
    parsed = parse_uuid(video_id)
    return await db.get(Video, parsed) if parsed else None


def gateway_url(request: Request, route_name: str, params: dict[str, str], **path_params: str) -> str:
    return str(request.url_for(route_name, **path_params).include_query_params(**params))


def build_stream_url(request: Request, signed: SignedStream) -> str:
    return gateway_url(request, "stream_video", signed.query_params(), video_id=signed.video_id)


async def playlist_response(
    request: Request, path: Path, video_id: str, params: dict[str, str]
) -> Response:
    playlist = await asyncio.to_thread(path.read_text)
    body = sign_playlist(
        playlist,
        key_url=gateway_url(request, "hls_key", params, video_id=video_id),
        segment_url=lambda name: gateway_url(
            request, "stream_segment", params, video_id=video_id, segment_name=name
        ),
    )
    return Response(
        content=body,
        media_type=HLS_PLAYLIST_MEDIA_TYPE,
        headers={**CORS_HEADERS, **FULL_RESPONSE_HEADERS},
    )


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_video(
    background_tasks: BackgroundTasks,
    video: UploadFile | None = File(None),
    title: str | None = Form(None),
    lesson_id: str | None = Form(None),
    db: AsyncSession = Depends(get_session),
    user_id: str | None = Depends(get_optional_user_id),
) -> JSONResponse:
    """Accept a video upload.

    Returns:
        201 Created: Video stored with status "pending" and handed to the queue
        422 Unprocessable Entity: Validation failed (type, size, title, lesson)
        500 Internal Server Error: Storage or database failure (nothing persisted)
    """
    if video is None:
        return message_response(422, "The video field is required.")

    parsed_lesson_id = parse_uuid(lesson_id)
    if lesson_id and parsed_lesson_id is None:
        return message_response(422, "The selected lesson id is invalid.")

    try:
        record = await ingest_upload(
            db,
            video,
            title,
            lesson_id=parsed_lesson_id,
            uploaded_by=user_id,
        )
    except UploadValidationError as e:
        log.info("video_upload_rejected", reason=str(e), filename=video.filename)
        return message_response(422, str(e))
    except Exception as e:
        log.error("video_upload_error", error=str(e), error_type=type(e).__name__)
        return message_response(500, "Failed to upload video", error=str(e))

    await enqueue_processing(record.id, background_tasks)

    body = UploadResponse(
        video=VideoSummary(
            id=record.id,
            title=record.title,
            status=record.status.value,
            size=record.formatted_size,
        )
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=body.model_dump(mode="json"),
    )


@router.get("/status/{video_id}", response_model=VideoStatusResponse)
async def video_status(video_id: str, db: AsyncSession = Depends(get_session)):
    video = await find_video(db, video_id)
    if video is None:
        return message_response(404, "Video not found")

    return VideoStatusResponse(
        id=video.id,
        title=video.title,
        status=video.status.value,
        duration=video.formatted_duration,
        size=video.formatted_size,
        processing_error=video.processing_error,
        created_at=video.created_at,
        updated_at=video.updated_at,
    )


@router.get("/{video_id}/generate-url", response_model=StreamUrlResponse)
async def generate_stream_url(
    video_id: str,
    request: Request,
    db: AsyncSession = Depends(get_session),
    signer: StreamTokenSigner = Depends(get_stream_token_signer),
    user_id: str | None = Depends(get_optional_user_id),
):
    """Issue a 30 minute signed stream URL.

    Videos bound to a paid lesson require an authenticated caller. An access
    log is opened for every authenticated issuance.

    Returns:
        200 OK: {url, expires_at, video, access_log_id}
        400 Bad Request: Video is not ready
        401 Unauthorized: Paid lesson and anonymous caller
        404 Not Found: Unknown video
    """
    video = await find_video(db, video_id)
    if video is None:
        return message_response(404, "Video not found")

    if not video.is_ready:
        return message_response(
            400, "Video is not ready for streaming", status=video.status.value
        )

    if video.lesson_id is not None:
        lesson = await db.get(Lesson, video.lesson_id)
        if lesson is not None and not lesson.is_free and user_id is None:
            return message_response(401, "Authentication required")

    signed = signer.issue(
        str(video.id), user_id, timedelta(minutes=get_stream_url_ttl_minutes())
    )

    access_log_id = None
    if user_id is not None:
        access_log = create_access_log(db, request, video.id, user_id)
        await db.commit()
        access_log_id = access_log.id

    log.info(
        "stream_url_issued",
        video_id=str(video.id),
        user=signed.user,
        expires=signed.expires,
    )
    return StreamUrlResponse(
        url=build_stream_url(request, signed),
        expires_at=signed.expires_at,
        video=StreamVideoInfo(
            id=video.id, title=video.title, duration=video.formatted_duration
        ),
        access_log_id=access_log_id,
    )


def verify_stream_request(
    signer: StreamTokenSigner,
    video_id: str,
    user: str | None,
    expires: str | None,
    token: str | None,
) -> JSONResponse | None:
    """Check signed query parameters, returning an error response or None."""
    if not user or not expires or not token:
        return message_response(400, "Missing token parameters", headers=CORS_HEADERS)

    try:
        signer.verify(video_id, user, expires, token)
    except StreamTokenError as e:
        log.warning(
            "stream_token_rejected",
            video_id=video_id,
            user=user,
            token=token[:8] + "...",
            reason=str(e),
        )
        return message_response(403, str(e), headers=CORS_HEADERS)

    return None


@router.options("/stream/{video_id}")
async def stream_preflight(video_id: str) -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.get("/stream/{video_id}", name="stream_video")
async def stream_video(
    video_id: str,
    request: Request,
    user: str | None = None,
    expires: str | None = None,
    token: str | None = None,
    db: AsyncSession = Depends(get_session),
    signer: StreamTokenSigner = Depends(get_stream_token_signer),
    locator: StorageLocator = Depends(get_storage_locator),
) -> Response:
    """Stream a ready video with HTTP Range support.

    Returns:
        200 OK: Full file
        206 Partial Content: Requested byte range
        400 Bad Request: Missing user/expires/token
        403 Forbidden: Invalid or expired token
        404 Not Found: Unknown or not ready video, or file not on disk
        416 Range Not Satisfiable: Range outside the file
    """
    rejection = verify_stream_request(signer, video_id, user, expires, token)
    if rejection is not None:
        return rejection

    video = await find_video(db, video_id)
    if video is None or not video.is_ready:
        return message_response(404, "Video not available", headers=CORS_HEADERS)

    path = resolve_stream_file(video, locator)
    if path is None:
        log.error(
            "video_file_not_found",
            video_id=video_id,
            tried_paths=[str(p) for p in locator.candidates(video.original_path, video.hls_path)],
        )
        return message_response(404, "Video file not found", headers=CORS_HEADERS)

    if path.suffix == PLAYLIST_SUFFIX:
        return await playlist_response(
            request, path, video_id, {"user": user, "expires": expires, "token": token}
        )

    file_size = path.stat().st_size
    media_type = detect_media_type(path, video.mime_type)
    range_header = request.headers.get("range")

    if range_header:
        try:
            byte_range = parse_range(range_header, file_size)
        except RangeNotSatisfiableError:
            log.info("range_not_satisfiable", video_id=video_id, range=range_header, size=file_size)
            return Response(
                content="Not Satisfiable",
                status_code=416,
                headers={**CORS_HEADERS, "Content-Range": f"bytes */{file_size}"},
            )

        return StreamingResponse(
            iter_file_range(path, byte_range.start, byte_range.length, request),
            status_code=status.HTTP_206_PARTIAL_CONTENT,
            media_type=media_type,
            headers={
                **CORS_HEADERS,
                "Accept-Ranges": "bytes",
                "Content-Range": byte_range.content_range,
                "Content-Length": str(byte_range.length),
            },
        )

    return StreamingResponse(
        iter_file_range(path, 0, file_size, request),
        status_code=status.HTTP_200_OK,
        media_type=media_type,
        headers={
            **CORS_HEADERS,
            **FULL_RESPONSE_HEADERS,
            "Accept-Ranges": "bytes",
            "Content-Length": str(file_size),
        },
    )


@router.get("/segment/{video_id}/{segment_name}", name="stream_segment")
async def stream_segment(
    video_id: str,
    segment_name: str,
    request: Request,
    user: str | None = None,
    expires: str | None = None,
    token: str | None = None,
    db: AsyncSession = Depends(get_session),
    signer: StreamTokenSigner = Depends(get_stream_token_signer),
    locator: StorageLocator = Depends(get_storage_locator),
) -> Response:
    """Serve one segment of an HLS video referenced by a signed playlist.

    Returns:
        200 OK: Segment bytes (video/mp2t)
        400 Bad Request: Missing user/expires/token
        403 Forbidden: Invalid or expired token
        404 Not Found: Unknown or not ready video, bad segment name, or file not on disk
    """
    rejection = verify_stream_request(signer, video_id, user, expires, token)
    if rejection is not None:
        return rejection

    video = await find_video(db, video_id)
    if video is None or not video.is_ready:
        return message_response(404, "Video not available", headers=CORS_HEADERS)

    relative = segment_path(video, segment_name)
    path = locator.locate(relative) if relative else None
    if path is None:
        return message_response(404, "Segment not found", headers=CORS_HEADERS)

    size = path.stat().st_size
    return StreamingResponse(
        iter_file_range(path, 0, size, request),
        media_type=HLS_SEGMENT_MEDIA_TYPE,
        headers={**CORS_HEADERS, **FULL_RESPONSE_HEADERS, "Content-Length": str(size)},
    )


@router.get("/key/{video_id}", name="hls_key")
async def hls_key(
    video_id: str,
    user: str | None = None,
    expires: str | None = None,
    token: str | None = None,
    db: AsyncSession = Depends(get_session),
    signer: StreamTokenSigner = Depends(get_stream_token_signer),
) -> Response:
    """Deliver the AES-128 key referenced by an encrypted HLS playlist.

    Gated by the same signed parameters as the stream URL. Served playlists
    already carry them in the key URI.
    """
    rejection = verify_stream_request(signer, video_id, user, expires, token)
    if rejection is not None:
        return rejection

    video = await find_video(db, video_id)
    if video is None or not video.is_ready or video.encryption_key_encrypted is None:
        return message_response(404, "Encryption key not found", headers=CORS_HEADERS)

    try:
        key = get_encryption_service().decrypt_key(
            video.encryption_key_encrypted, video_id=str(video.id)
        )
    except (DecryptionError, EncryptionKeyMissing) as e:
        log.error("hls_key_unavailable", video_id=video_id, error=str(e))
        return message_response(500, "Encryption key unavailable", headers=CORS_HEADERS)

    return Response(
        content=key,
        media_type="application/octet-stream",
        headers={**CORS_HEADERS, "Cache-Control": "no-store"},
    )


@router.put("/access-log/{log_id}", response_model=AccessLogUpdateResponse)
async def update_access_log(
    log_id: str,
    update: AccessLogUpdate,
    db: AsyncSession = Depends(get_session),
    user_id: str | None = Depends(get_optional_user_id),
):
    """Record playback telemetry against an access log owned by the caller.

    Returns:
        200 OK: {message, log_id, suspicious_activity}
        401 Unauthorized: Anonymous caller
        403 Forbidden: Log belongs to another user
        404 Not Found: Unknown log
    """
    if user_id is None:
        return message_response(401, "Authentication required")

    parsed = parse_uuid(log_id)
    access_log = await db.get(VideoAccessLog, parsed) if parsed else None
    if access_log is None:
        return message_response(404, "Access log not found")

    if access_log.user_id != user_id:
        log.warning(
            "access_log_owner_mismatch",
            log_id=log_id,
            owner=access_log.user_id,
            user=user_id,
        )
        return message_response(403, "Forbidden")

    apply_telemetry(access_log, update)
    await db.commit()

    return AccessLogUpdateResponse(
        log_id=access_log.id,
        suspicious_activity=access_log.suspicious_activity or [],
    )

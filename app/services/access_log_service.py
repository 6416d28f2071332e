"""Video access logs: creation on URL issuance and playback telemetry.

Anomaly Rule:
    seek_count > 50      → "Excessive seeking detected"
    speed_changes > 20   → "Excessive speed changes detected"

Each reason is recorded at most once per log. Flags are advisory: they are
stored for review and never block playback.
"""

import uuid

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import VideoAccessLog, utcnow
from app.schemas.video import AccessLogUpdate
from app.utils.logging import get_logger

log = get_logger(__name__)

SEEK_THRESHOLD = 50
SPEED_CHANGE_THRESHOLD = 20

EXCESSIVE_SEEKING = "Excessive seeking detected"
EXCESSIVE_SPEED_CHANGES = "Excessive speed changes detected"

DEVICE_FINGERPRINT_HEADER = "X-Device-Fingerprint"


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()[:45] or None
    return request.client.host if request.client else None


def create_access_log(
    db: AsyncSession,
    request: Request,
    video_id: uuid.UUID,
    user_id: str,
) -> VideoAccessLog:
    """Add an access log for a stream URL issued to ``user_id`` (caller commits)."""
    access_log = VideoAccessLog(
        id=uuid.uuid4(),
        user_id=user_id,
        video_id=video_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        device_fingerprint=request.headers.get(DEVICE_FINGERPRINT_HEADER),
        started_at=utcnow(),
        watch_duration=0,
        seek_count=0,
        speed_changes=0,
    )
    db.add(access_log)
    log.info(
        "access_log_created",
        log_id=str(access_log.id),
        video_id=str(video_id),
        user_id=user_id,
    )
    return access_log


def detect_anomalies(access_log: VideoAccessLog) -> list[str]:
    """Apply the anomaly rule and return the reasons newly recorded."""
    reasons = []
    if (access_log.seek_count or 0) > SEEK_THRESHOLD:
        reasons.append(EXCESSIVE_SEEKING)
    if (access_log.speed_changes or 0) > SPEED_CHANGE_THRESHOLD:
        reasons.append(EXCESSIVE_SPEED_CHANGES)

    detected_at = utcnow()
    return [reason for reason in reasons if access_log.mark_suspicious(reason, detected_at)]


def apply_telemetry(access_log: VideoAccessLog, update: AccessLogUpdate) -> list[str]:
    """Apply reported counters, close the session on ``ended`` and run the anomaly rule.

    Returns:
        Reasons newly flagged by this update.
    """
    if update.watch_duration is not None:
        access_log.watch_duration = update.watch_duration
    if update.seek_count is not None:
        access_log.seek_count = update.seek_count
    if update.speed_changes is not None:
        access_log.speed_changes = update.speed_changes
    if update.ended:
        access_log.ended_at = utcnow()

    flagged = detect_anomalies(access_log)
    if flagged:
        log.warning(
            "suspicious_activity_detected",
            log_id=str(access_log.id),
            video_id=str(access_log.video_id),
            user_id=access_log.user_id,
            reasons=flagged,
        )
    return flagged

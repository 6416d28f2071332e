"""PgQueuer entrypoint definitions for the video pipeline.

Entrypoints:
    - process_video: Transcode one uploaded video (payload: video UUID as bytes)

Each job runs the video processing worker under the JobSupervisor, which
owns the attempt budget and per-attempt deadline. When the supervisor gives
up, the error propagates so PgQueuer records the job as failed; the video
row already carries status="failed" and the final error.

References:
    - app.workers.video_processing_worker: Short transaction pattern
    - PgQueuer Documentation: https://pgqueuer.readthedocs.io/
"""

import os
from uuid import UUID

from pgqueuer import PgQueuer
from pgqueuer.models import Job

from app.utils.logging import get_logger
from app.workers.video_processing_worker import run_video_job

log = get_logger(__name__)

PROCESS_VIDEO_ENTRYPOINT = "process_video"


def parse_video_id(job: Job) -> UUID:
    """Decode and validate the video id carried in a job payload.

    Raises:
        ValueError: If the payload is missing, not bytes, or not a UUID.
    """
    if job.payload is None:
        raise ValueError("Job payload is None")

    if not isinstance(job.payload, bytes):
        raise ValueError(f"Job payload must be bytes, got {type(job.payload)}")

    return UUID(job.payload.decode())


async def handle_process_video(job: Job) -> None:
    video_id = parse_video_id(job)
    worker_id = os.getenv("WORKER_ID", "worker-local")

    log.info(
        "process_video_job_received",
        worker_id=worker_id,
        video_id=str(video_id),
        pgqueuer_job_id=str(job.id),
    )
    await run_video_job(video_id)


def register_entrypoints(pgq: PgQueuer) -> None:
    """Register all entrypoints with a PgQueuer instance.

    Called after PgQueuer is initialized so that registration does not
    depend on a module-level queue object existing at import time.

    Args:
        pgq: Initialized PgQueuer instance
    """
    pgq.entrypoint(PROCESS_VIDEO_ENTRYPOINT)(handle_process_video)
    log.info("entrypoints_registered", entrypoints=[PROCESS_VIDEO_ENTRYPOINT])

"""FastAPI application for the LMS video pipeline.

This is the web service entry point: upload, status polling, signed stream
URL issuance and the streaming gateway. Transcoding runs in the separate
worker process (python -m app.worker).
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse

from app import database
from app.config import is_queue_enabled
from app.routes import lessons, videos

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the enqueue-only PgQueuer connection.

    Startup:
    - Initialize the PgQueuer enqueuer if QUEUE_ENABLED and DATABASE_URL are set
    - On failure, uploads fall back to in-process processing

    Shutdown:
    - Close the queue connection pool
    """
    # Startup
    queue_pool = None

    if is_queue_enabled() and os.getenv("DATABASE_URL"):
        from app.queue import initialize_enqueuer

        try:
            database.task_queue, queue_pool = await initialize_enqueuer()
            log.info("task_queue_ready")
        except Exception as e:
            log.warning(
                "task_queue_unavailable",
                error=str(e),
                message="Uploads will be processed in-process",
            )
    else:
        log.warning(
            "task_queue_disabled",
            message="QUEUE_ENABLED is false or DATABASE_URL not set",
        )

    yield  # Application runs here

    # Shutdown
    if queue_pool is not None:
        database.task_queue = None
        await queue_pool.close()
        log.info("task_queue_closed")


# Create FastAPI app with lifespan
app = FastAPI(
    title="LMS Video Pipeline",
    description="Video ingestion, transcoding and secure streaming for the LMS",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(videos.router)
app.include_router(lessons.router)


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> JSONResponse:
    """Health check endpoint for deployment validation.

    Returns:
        JSONResponse: Status and queue availability
    """
    return JSONResponse(
        content={
            "status": "healthy",
            "service": "lms-video-pipeline",
            "queue": "connected" if database.task_queue is not None else "in-process",
        }
    )


@app.get("/", status_code=status.HTTP_200_OK)
async def root() -> JSONResponse:
    """Root endpoint with API information.

    Returns:
        JSONResponse: API metadata
    """
    return JSONResponse(
        content={
            "service": "LMS Video Pipeline",
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/health",
        }
    )


if __name__ == "__main__":
    import uvicorn

    # Binding to 0.0.0.0 is intentional for container deployments
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",  # noqa: S104
        port=8000,
        reload=True,
    )

"""Worker process entry point for the video pipeline.

Runs as a separate process from the API and consumes "process_video" jobs
from PgQueuer. Each job transcodes one uploaded video under the
JobSupervisor (3 attempts, 1 hour per attempt by default).

Architecture Pattern:
    - Separate Process: the API only enqueues, the worker only consumes
    - Async Execution: ffmpeg runs in a worker thread, the loop stays responsive
    - Short Transactions: Claim → close DB → process → reopen DB → update
    - Graceful Shutdown: SIGTERM/SIGINT stop the loop and close pools

Usage:
    python -m app.worker
"""

import asyncio
import os
import signal
import sys
from dataclasses import dataclass

import asyncpg

from app.config import get_database_url, get_fernet_key
from app.database import engine
from app.utils.logging import get_logger

log = get_logger(__name__)

# Shutdown flag (set by SIGTERM handler)
shutdown_requested = False

# Global asyncpg pool reference (for cleanup in shutdown)
asyncpg_pool: asyncpg.Pool | None = None


def signal_handler(signum: int, frame: object) -> None:
    """Handle SIGTERM/SIGINT for graceful shutdown.

    Args:
        signum: Signal number (typically SIGTERM = 15)
        frame: Current stack frame (unused)

    Side Effects:
        Sets global shutdown_requested flag and stops the PgQueuer loop
    """
    global shutdown_requested
    log.info(
        "shutdown_signal_received",
        signal=signum,
        signal_name=signal.Signals(signum).name,
    )
    shutdown_requested = True

    from app import queue

    if queue.pgq is not None:
        queue.pgq.shutdown.set()


async def worker_main_loop() -> None:
    """Main worker event loop with PgQueuer job consumption.

    Behavior:
        - Initialize PgQueuer with asyncpg connection pool
        - Register entrypoints (process_video)
        - Run PgQueuer loop (polling, LISTEN/NOTIFY, FOR UPDATE SKIP LOCKED)

    Raises:
        Exception: Fatal initialization errors are logged and re-raised
    """
    global asyncpg_pool

    worker_id = os.getenv("WORKER_ID", "worker-local")
    log.info("worker_started_with_pgqueuer", worker_id=worker_id)

    try:
        from app.entrypoints import register_entrypoints
        from app.queue import initialize_pgqueuer

        pgq, pool = await initialize_pgqueuer()
        asyncpg_pool = pool

        register_entrypoints(pgq)
        await pgq.run()

    except asyncio.CancelledError:
        log.info("worker_cancelled", worker_id=worker_id)
        raise
    except Exception as e:
        log.error(
            "worker_fatal_error",
            worker_id=worker_id,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise
    finally:
        log.info("worker_shutdown", worker_id=worker_id)


async def shutdown_worker() -> None:
    """Close the PgQueuer pool and dispose the SQLAlchemy engine."""
    log.info("closing_database_connections")

    if asyncpg_pool:
        await asyncpg_pool.close()
        log.info("asyncpg_pool_closed")

    if engine:
        await engine.dispose()
        log.info("sqlalchemy_engine_closed")

    log.info("database_connections_closed")


@dataclass
class WorkerConfig:
    """Worker configuration loaded from environment variables."""

    database_url: str
    fernet_key: str


def get_config() -> WorkerConfig:
    """Load and validate worker configuration.

    FERNET_KEY is required up front: without it no HLS key could be stored
    and every encrypted conversion would fail at the final step.

    Raises:
        ValueError: If required environment variables not set.
    """
    return WorkerConfig(
        database_url=get_database_url(),
        fernet_key=get_fernet_key(),
    )


def main() -> None:
    """Worker process entry point.

    Exit Codes:
        0: Successful shutdown (SIGTERM received)
        1: Fatal error (configuration invalid, database unreachable)
    """
    try:
        config = get_config()
        database_host = (
            config.database_url.split("@")[-1].split("/")[0]
            if "@" in config.database_url
            else "local"
        )
        log.info("worker_configuration_loaded", database_url_host=database_host)
    except Exception as e:
        log.error("configuration_load_failed", error=str(e), exc_info=True)
        sys.exit(1)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    exit_code = 0
    try:
        asyncio.run(worker_main_loop())
    except KeyboardInterrupt:
        log.info("worker_interrupted_by_user")
    except Exception as e:
        log.error("worker_fatal_error", error=str(e), exc_info=True)
        exit_code = 1
    finally:
        asyncio.run(shutdown_worker())
        log.info("worker_exited", exit_code=exit_code)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()

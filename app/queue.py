"""PgQueuer initialization for the video pipeline.

Two sides use the queue:
    - The worker process consumes jobs (initialize_pgqueuer + pgq.run())
    - The API process only enqueues (initialize_enqueuer → app.database.task_queue)

Architecture Pattern:
    - AsyncpgPoolDriver: Connection pool shared by the queue
    - QueueManager: Schema installation (idempotent)
    - Entrypoint Registration: see app.entrypoints

Usage:
    from app.queue import initialize_pgqueuer

    pgq, pool = await initialize_pgqueuer()
    register_entrypoints(pgq)
    await pgq.run()

References:
    - PgQueuer Documentation: https://pgqueuer.readthedocs.io/
"""

import os

import asyncpg
from pgqueuer import PgQueuer
from pgqueuer.db import AsyncpgPoolDriver
from pgqueuer.qm import QueueManager
from pgqueuer.queries import Queries

from app.utils.logging import get_logger

log = get_logger(__name__)

# Global PgQueuer instance (initialized in initialize_pgqueuer)
pgq: PgQueuer | None = None


def _get_dsn() -> str:
    """Get a plain asyncpg DSN (no SQLAlchemy driver suffix).

    Raises:
        ValueError: If DATABASE_URL not set
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable not set")
    return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)


async def _create_pool(min_size: int, max_size: int) -> asyncpg.Pool:
    log.info("initializing_asyncpg_pool", min_size=min_size, max_size=max_size, timeout=30)
    return await asyncpg.create_pool(
        dsn=_get_dsn(),
        min_size=min_size,
        max_size=max_size,
        timeout=30,  # Connection acquire timeout (seconds)
    )


async def install_schema(pool: asyncpg.Pool) -> None:
    """Install PgQueuer tables (idempotent: safe to call multiple times)."""
    log.info("installing_pgqueuer_schema")
    qm = QueueManager(AsyncpgPoolDriver(pool))
    try:
        await qm.queries.install()
    except asyncpg.DuplicateObjectError:
        log.info("pgqueuer_schema_already_installed")
        return
    log.info("pgqueuer_schema_installed")


async def initialize_pgqueuer() -> tuple[PgQueuer, asyncpg.Pool]:
    """Initialize the consuming side of the queue for the worker process.

    Returns:
        tuple[PgQueuer, asyncpg.Pool]: PgQueuer ready for entrypoint registration

    Raises:
        ValueError: If DATABASE_URL not set
        asyncpg.PostgresError: If database connection fails
    """
    pool = await _create_pool(min_size=2, max_size=10)
    await install_schema(pool)

    global pgq
    pgq = PgQueuer(AsyncpgPoolDriver(pool))
    log.info("pgqueuer_initialized")
    return pgq, pool


async def initialize_enqueuer() -> tuple[Queries, asyncpg.Pool]:
    """Initialize the enqueue-only side used by the API process.

    Returns:
        tuple[Queries, asyncpg.Pool]: Queries handle exposing enqueue()

    Raises:
        ValueError: If DATABASE_URL not set
        asyncpg.PostgresError: If database connection fails
    """
    pool = await _create_pool(min_size=1, max_size=5)
    await install_schema(pool)
    queries = Queries(AsyncpgPoolDriver(pool))
    log.info("pgqueuer_enqueuer_initialized")
    return queries, pool

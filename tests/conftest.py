"""Shared pytest fixtures for async database testing.

This module provides reusable fixtures for testing SQLAlchemy models and
database operations using an in-memory SQLite database, plus environment
fixtures for encryption, stream signing and storage roots. The PgQueuer
task queue is mocked for every test.
"""

from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models import Base
from app.services.transcoder import _tool_available
from app.utils.encryption import EncryptionService

TEST_SIGNING_SECRET = "test-stream-signing-secret"


@pytest.fixture
def valid_fernet_key() -> str:
    """Generate a valid Fernet key for testing."""
    return Fernet.generate_key().decode()


@pytest.fixture(autouse=False)
def encryption_env(valid_fernet_key: str, monkeypatch: pytest.MonkeyPatch):
    """Set up encryption environment for tests.

    Sets FERNET_KEY environment variable and resets the
    EncryptionService singleton before and after the test.
    """
    EncryptionService.reset_instance()
    monkeypatch.setenv("FERNET_KEY", valid_fernet_key)
    yield valid_fernet_key
    EncryptionService.reset_instance()


@pytest.fixture
def signing_env(monkeypatch: pytest.MonkeyPatch) -> str:
    """Set STREAM_SIGNING_SECRET for tests that issue or verify stream URLs."""
    monkeypatch.setenv("STREAM_SIGNING_SECRET", TEST_SIGNING_SECRET)
    return TEST_SIGNING_SECRET


@pytest.fixture
def storage_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point STORAGE_ROOT and STORAGE_ROOTS at a temporary directory.

    Returns:
        Path: The storage root (uploads land in <root>/temp-videos).
    """
    root = tmp_path / "storage" / "app"
    root.mkdir(parents=True)
    monkeypatch.setenv("STORAGE_ROOT", str(root))
    monkeypatch.setenv("STORAGE_ROOTS", str(root))
    return root


@pytest.fixture(autouse=True)
def clear_tool_probe_cache():
    """Reset the cached ffmpeg capability probe between tests."""
    _tool_available.cache_clear()
    yield
    _tool_available.cache_clear()


@pytest_asyncio.fixture
async def async_engine():
    """Create an async SQLite engine for testing.

    Uses in-memory SQLite with aiosqlite for fast test execution.
    Creates all tables before yielding, disposes after.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    """Create an async session for testing.

    Provides a session bound to the test engine with expire_on_commit=False
    to match production configuration.
    """
    async_session_factory = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def mock_task_queue(monkeypatch):
    """Mock PgQueuer task queue for tests.

    Automatically replaces app.database.task_queue so uploads enqueue onto
    a mock instead of PostgreSQL. Tests can use this fixture to verify calls.

    Returns:
        AsyncMock: Mocked task_queue with enqueue method.
    """
    mock_queue = AsyncMock()
    mock_queue.enqueue = AsyncMock(return_value=None)

    monkeypatch.setattr("app.database.task_queue", mock_queue)

    return mock_queue


@pytest_asyncio.fixture
async def api_client(test_session_factory, signing_env, storage_root):
    """HTTP client for the FastAPI app backed by the in-memory database.

    Overrides get_session with the StaticPool session factory so that
    requests and test assertions share the same data. Lifespan is not run,
    so the PgQueuer enqueuer stays mocked by mock_task_queue.
    """
    from app.database import get_session
    from app.main import app

    async def override_get_session():
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


# Import additional fixtures from fixtures/ package
from tests.fixtures.database import (  # noqa: F401, E402
    async_test_engine,
    async_test_session,
    mock_async_session,
    sample_lesson_data,
    sample_video_data,
    test_session_factory,
)

"""Tests for PgQueuer entrypoint handlers.

This module tests:
    - Entrypoint registration by name
    - Payload decoding and validation
    - Delegation to the supervised video job
"""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pgqueuer import PgQueuer

from app.entrypoints import (
    PROCESS_VIDEO_ENTRYPOINT,
    handle_process_video,
    parse_video_id,
    register_entrypoints,
)


def get_registered_entrypoints() -> dict:
    """Register entrypoints on a mock PgQueuer and return them by name."""
    mock_pgq = MagicMock(spec=PgQueuer)
    registered_functions = {}

    def mock_entrypoint(name):
        def decorator(func):
            registered_functions[name] = func
            return func

        return decorator

    mock_pgq.entrypoint = mock_entrypoint
    register_entrypoints(mock_pgq)
    return registered_functions


def make_job(payload) -> MagicMock:
    job = MagicMock()
    job.id = 123
    job.payload = payload
    return job


class TestRegistration:
    def test_process_video_registered(self):
        entrypoints = get_registered_entrypoints()

        assert list(entrypoints) == [PROCESS_VIDEO_ENTRYPOINT]
        assert entrypoints[PROCESS_VIDEO_ENTRYPOINT] is handle_process_video


class TestParseVideoId:
    def test_uuid_payload(self):
        video_id = uuid.uuid4()

        assert parse_video_id(make_job(str(video_id).encode())) == video_id

    @pytest.mark.parametrize(
        ("payload", "error"),
        [
            (None, "Job payload is None"),
            ("not-bytes", "must be bytes"),
            (b"not-a-uuid", "badly formed"),
        ],
    )
    def test_invalid_payloads(self, payload, error):
        with pytest.raises(ValueError, match=error):
            parse_video_id(make_job(payload))


class TestHandleProcessVideo:
    async def test_runs_supervised_job(self):
        """[P0] The handler hands the decoded id to run_video_job."""
        video_id = uuid.uuid4()

        with patch("app.entrypoints.run_video_job", new_callable=AsyncMock) as mock_run:
            await handle_process_video(make_job(str(video_id).encode()))

        mock_run.assert_awaited_once_with(video_id)

    async def test_job_error_propagates(self):
        with patch(
            "app.entrypoints.run_video_job",
            new_callable=AsyncMock,
            side_effect=RuntimeError("Processing failed after multiple attempts"),
        ):
            with pytest.raises(RuntimeError, match="multiple attempts"):
                await handle_process_video(make_job(str(uuid.uuid4()).encode()))

    async def test_bad_payload_never_runs_job(self):
        with patch("app.entrypoints.run_video_job", new_callable=AsyncMock) as mock_run:
            with pytest.raises(ValueError):
                await handle_process_video(make_job(b"garbage"))

        mock_run.assert_not_awaited()

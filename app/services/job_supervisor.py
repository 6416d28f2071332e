"""Retry and deadline supervision for background jobs.

The supervisor wraps a job coroutine factory and owns the retry policy,
keeping it out of the job itself:

    - Up to ``max_attempts`` serial attempts (default: VIDEO_JOB_MAX_ATTEMPTS = 3)
    - Each attempt bounded by ``attempt_timeout`` seconds
      (default: VIDEO_JOB_TIMEOUT_SECONDS = 3600); a timeout is a failed attempt
    - Exponential backoff between attempts
    - ``on_attempt_failed`` hook after each failed attempt
    - ``on_exhausted`` hook after the final failure, then the last error propagates

Built on tenacity's AsyncRetrying, the same library the pipeline uses for
retrying external calls.

Usage:
    supervisor = JobSupervisor()
    await supervisor.run(
        lambda: process_video_task(video_id),
        job_name="process_video",
        on_exhausted=record_final_failure,
    )
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from app.config import get_video_job_max_attempts, get_video_job_timeout_seconds
from app.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

AttemptHook = Callable[[int, BaseException], Awaitable[None]]
ExhaustedHook = Callable[[BaseException], Awaitable[None]]


class JobAttemptTimeout(Exception):
    """Raised when a single attempt exceeds the per-attempt deadline."""

    def __init__(self, job_name: str, attempt: int, timeout: float):
        self.job_name = job_name
        self.attempt = attempt
        self.timeout = timeout
        super().__init__(f"{job_name} attempt {attempt} exceeded timeout of {timeout}s")


class JobSupervisor:
    """Runs a job with a bounded number of attempts and a per-attempt deadline.

    Args:
        max_attempts: Attempt budget (default: VIDEO_JOB_MAX_ATTEMPTS)
        attempt_timeout: Deadline per attempt in seconds (default: VIDEO_JOB_TIMEOUT_SECONDS)
        wait: tenacity wait strategy between attempts
            (default: exponential, 2 s doubling up to 60 s)
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        attempt_timeout: float | None = None,
        wait: wait_base | None = None,
    ):
        self.max_attempts = max_attempts or get_video_job_max_attempts()
        self.attempt_timeout = attempt_timeout or get_video_job_timeout_seconds()
        self.wait = wait or wait_exponential(multiplier=2, min=2, max=60)

    async def _run_attempt(
        self,
        job: Callable[[], Awaitable[T]],
        job_name: str,
        attempt: int,
        on_attempt_failed: AttemptHook | None,
    ) -> T:
        log.info(
            "job_attempt_start",
            job=job_name,
            attempt=attempt,
            max_attempts=self.max_attempts,
            timeout=self.attempt_timeout,
        )
        try:
            try:
                return await asyncio.wait_for(job(), timeout=self.attempt_timeout)
            except asyncio.TimeoutError as e:
                raise JobAttemptTimeout(job_name, attempt, self.attempt_timeout) from e
        except Exception as e:
            log.warning(
                "job_attempt_failed",
                job=job_name,
                attempt=attempt,
                error=str(e),
                error_type=type(e).__name__,
            )
            if on_attempt_failed is not None:
                await _call_hook(job_name, on_attempt_failed, attempt, e)
            raise

    async def run(
        self,
        job: Callable[[], Awaitable[T]],
        job_name: str = "job",
        on_attempt_failed: AttemptHook | None = None,
        on_exhausted: ExhaustedHook | None = None,
    ) -> T:
        """Run ``job`` until it succeeds or the attempt budget is spent.

        Args:
            job: Zero-argument callable returning a fresh coroutine per attempt.
            job_name: Name used in logs and timeout messages.
            on_attempt_failed: Awaited with (attempt_number, error) after each failure.
            on_exhausted: Awaited with the last error once no attempts remain.

        Returns:
            The job's return value from the first successful attempt.

        Raises:
            Exception: The last attempt's error after the budget is exhausted.
        """

        def before_sleep(retry_state: RetryCallState) -> None:
            log.info(
                "job_retry_scheduled",
                job=job_name,
                attempt=retry_state.attempt_number,
                sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._run_attempt(
                        job,
                        job_name,
                        attempt.retry_state.attempt_number,
                        on_attempt_failed,
                    )
        except Exception as e:
            log.error(
                "job_attempts_exhausted",
                job=job_name,
                max_attempts=self.max_attempts,
                error=str(e),
                error_type=type(e).__name__,
            )
            if on_exhausted is not None:
                await _call_hook(job_name, on_exhausted, e)
            raise

        log.info("job_succeeded", job=job_name)
        return result


async def _call_hook(job_name: str, hook: Callable[..., Awaitable[None]], *args: Any) -> None:
    # A failing hook is logged; the job's own error keeps propagating
    try:
        await hook(*args)
    except Exception as hook_error:
        log.error(
            "job_hook_failed",
            job=job_name,
            hook=getattr(hook, "__name__", repr(hook)),
            error=str(hook_error),
            exc_info=True,
        )

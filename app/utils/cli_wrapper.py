"""Async wrapper for external command execution (ffmpeg, ffprobe).

Commands are always passed as an argument list and never through a shell.
The child runs under ``asyncio.create_subprocess_exec`` so a long transcode
does not block the event loop, with a hard timeout per call and structured
errors. The child never outlives the call: on timeout or cancellation (for
example a job attempt deadline) it is killed and reaped before the error
propagates.

Critical Pattern:
- Services MUST use this wrapper instead of calling subprocess.run() directly
- Non-zero exits raise CommandError carrying the captured stderr
- Timeouts raise asyncio.TimeoutError
- A missing executable raises FileNotFoundError (callers treat it as "tool missing")
"""

import asyncio
import os
import subprocess

from app.utils.logging import get_logger

log = get_logger(__name__)

# Argument fragments that can carry key material (key info files, signed URLs)
SENSITIVE_MARKERS = ("key", "token", "secret")


class CommandError(Exception):
    """Raised when an external command exits with a non-zero code.

    Attributes:
        command (str): Executable name (e.g., "ffmpeg")
        exit_code (int): Process exit code
        stderr (str): Captured stderr output
    """

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command: str = command
        self.exit_code: int = exit_code
        self.stderr: str = stderr
        super().__init__(f"{command} failed with exit code {exit_code}: {stderr}")


def truncate(text: str, limit: int = 500) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def sanitize_args(args: list[str]) -> list[str]:
    """Redact secret-looking arguments and shorten long ones for logging.

    Example:
        >>> sanitize_args(["-i", "in.mp4", "https://x/key?token=abc"])
        ['-i', 'in.mp4', 'https://x/key?token=***REDACTED***']
    """
    sanitized: list[str] = []
    for arg in args:
        if "=" in arg and any(marker in arg.lower() for marker in SENSITIVE_MARKERS):
            param, _ = arg.split("=", 1)
            sanitized.append(f"{param}=***REDACTED***")
        else:
            sanitized.append(truncate(arg, 100))
    return sanitized


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
    await process.wait()


async def run_command(
    command: list[str],
    timeout: float = 600,
    check: bool = True,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run an external command without blocking the event loop.

    Args:
        command: Executable followed by its arguments, e.g. ["ffprobe", "-v", "error", ...]
        timeout: Timeout in seconds (default: 600)
        check: Raise CommandError on a non-zero exit code (default: True).
            With check=False the CompletedProcess is returned as-is.
        env: Extra environment variables layered over the parent environment.

    Returns:
        CompletedProcess with stdout, stderr, returncode

    Raises:
        CommandError: If the command exits with non-zero code and check is True
        asyncio.TimeoutError: If the command exceeds timeout (the child is killed)
        asyncio.CancelledError: If the caller is cancelled (the child is killed)
        FileNotFoundError: If the executable is not installed
        ValueError: If command is empty
    """
    if not command:
        raise ValueError("command must not be empty")

    executable = os.path.basename(command[0])
    log.info("command_start", command=executable, args=sanitize_args(command[1:]), timeout=timeout)

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    process = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=process_env,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        await _kill(process)
        log.error("command_timeout", command=executable, timeout=timeout, pid=process.pid)
        raise asyncio.TimeoutError(f"{executable} exceeded timeout of {timeout}s") from e
    except asyncio.CancelledError:
        await asyncio.shield(_kill(process))
        log.warning("command_cancelled", command=executable, pid=process.pid)
        raise

    # ffmpeg may emit non-UTF-8 metadata
    result = subprocess.CompletedProcess(
        args=command,
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )

    if result.returncode != 0:
        log.error(
            "command_error",
            command=executable,
            exit_code=result.returncode,
            stderr=truncate(result.stderr),
        )
        if check:
            raise CommandError(executable, result.returncode, result.stderr)
        return result

    log.info("command_success", command=executable, stdout=truncate(result.stdout))
    return result

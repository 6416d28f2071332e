"""Shared exceptions for the application.

This module contains exception classes used across multiple services
to avoid cross-domain dependencies between services and routes.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.models import VideoStatus


class ConfigurationError(Exception):
    """Raised when required configuration is missing.

    This error indicates a configuration problem that prevents the
    pipeline from running (e.g., no signing secret, unusable storage root).
    """

    pass


class InvalidStateTransitionError(Exception):
    """Raised when attempting an invalid state transition in the Video workflow.

    Only transitions defined in Video.VALID_TRANSITIONS are allowed.

    Attributes:
        from_status: The current VideoStatus before the attempted transition.
        to_status: The VideoStatus that was attempted but is not valid.

    Example:
        >>> video.status = VideoStatus.REPLACED
        >>> video.status = VideoStatus.READY  # Invalid - replaced is terminal
        InvalidStateTransitionError: Invalid transition: replaced → ready
    """

    def __init__(self, message: str, from_status: "VideoStatus", to_status: "VideoStatus"):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message)

    def __str__(self) -> str:
        base_message = super().__str__()
        return f"{base_message} (from={self.from_status.value}, to={self.to_status.value})"


class VideoSourceNotFoundError(Exception):
    """Raised when the uploaded source file cannot be found on any storage root.

    The message lists every probed path so operators can see where the
    worker looked.

    Attributes:
        video_id: The video whose source is missing.
        probed_paths: Candidate paths checked, in probe order.
    """

    def __init__(self, video_id: str, probed_paths: list[str]):
        self.video_id = video_id
        self.probed_paths = probed_paths
        super().__init__(
            f"Video file not found for {video_id}. Tried paths: {', '.join(probed_paths)}"
        )


class TranscodeError(Exception):
    """Raised when both the encrypted and the copy HLS encode fail.

    Attributes:
        output: Tail of the transcoder's diagnostic output.
    """

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(f"{message}. FFmpeg output: {output}" if output else message)


class UploadValidationError(Exception):
    """Raised when an upload fails validation (type, size, title, lesson).

    Maps to HTTP 422. The message is safe to show to the client.
    """

    pass


class StreamTokenError(Exception):
    """Base class for signed stream URL rejections (HTTP 403)."""

    pass


class InvalidStreamTokenError(StreamTokenError):
    """Raised when the supplied token does not match the expected HMAC."""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class ExpiredStreamTokenError(StreamTokenError):
    """Raised when a correctly signed token is past its expiry."""

    def __init__(self, message: str = "Token expired"):
        super().__init__(message)


class RangeNotSatisfiableError(Exception):
    """Raised when a Range header cannot be served (HTTP 416).

    Attributes:
        size: Full size of the resource, used for ``Content-Range: bytes */size``.
    """

    def __init__(self, size: int, header: str | None = None):
        self.size = size
        self.header = header
        super().__init__(f"Range not satisfiable for resource of {size} bytes: {header!r}")

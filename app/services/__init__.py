"""Business logic services for the video pipeline."""

from app.exceptions import ConfigurationError
from app.services.job_supervisor import JobAttemptTimeout, JobSupervisor
from app.services.storage_locator import StorageLocator
from app.services.stream_tokens import SignedStream, StreamTokenSigner
from app.services.transcoder import Transcoder
from app.services.video_processing import ProcessingOutcome, VideoProcessingService

__all__ = [
    "ConfigurationError",
    "JobAttemptTimeout",
    "JobSupervisor",
    "ProcessingOutcome",
    "SignedStream",
    "StorageLocator",
    "StreamTokenSigner",
    "Transcoder",
    "VideoProcessingService",
]

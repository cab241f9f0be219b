"""Two-phase delivery of artifacts and payload to KTL."""

from .submission_client import PhaseResult, SubmissionClient, SubmissionOutcome
from .submission_errors import (
    NetworkError,
    RequestTimeoutError,
    ServerError,
    ServiceRejectedError,
    SubmissionError,
)
from .submission_service import SubmissionService

__all__ = [
    "NetworkError",
    "PhaseResult",
    "RequestTimeoutError",
    "ServerError",
    "ServiceRejectedError",
    "SubmissionClient",
    "SubmissionError",
    "SubmissionOutcome",
    "SubmissionService",
]

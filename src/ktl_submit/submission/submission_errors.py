"""Errors raised by the two-phase KTL submission."""

from __future__ import annotations

from ..domain.models import SubmissionPhase
from ..exceptions import KtlSubmitError


class SubmissionError(KtlSubmitError):
    """Failure of one submission phase.

    ``detail`` holds the server-provided message when the response carried
    one; ``message`` is always human readable.
    """

    retryable: bool = False

    def __init__(
        self,
        phase: SubmissionPhase,
        reason: str,
        *,
        detail: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.phase = phase
        self.reason = reason
        self.detail = detail
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.detail:
            return self.detail
        return f"{self.phase.label} failed: {self.reason}"


class NetworkError(SubmissionError):
    """Transport level failure (connection refused, reset, DNS)."""

    retryable = True


class RequestTimeoutError(SubmissionError):
    """The request did not complete within the configured timeout."""

    retryable = True


class ServerError(SubmissionError):
    """Non-200 HTTP response; only 5xx responses are retried."""

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code is not None and self.status_code >= 500


class ServiceRejectedError(SubmissionError):
    """HTTP 200 whose body carries an explicit service-level failure flag."""


__all__ = [
    "NetworkError",
    "RequestTimeoutError",
    "ServerError",
    "ServiceRejectedError",
    "SubmissionError",
]

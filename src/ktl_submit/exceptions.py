"""Domain level exceptions shared across the package."""

from __future__ import annotations

__all__ = [
    "ArchiveError",
    "ArtifactError",
    "InvalidJobStateError",
    "JobBusyError",
    "JobNotFoundError",
    "JobStoreError",
    "KtlSubmitError",
    "RenderError",
    "ValidationError",
]


class KtlSubmitError(Exception):
    """Base class for package specific errors."""


class JobStoreError(KtlSubmitError):
    """Base class for job store contract violations."""


class JobNotFoundError(JobStoreError, KeyError):
    """Raised when a job id is not present in the store."""

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else "job not found"


class JobBusyError(JobStoreError):
    """Raised when a job already has a submission in flight."""


class InvalidJobStateError(JobStoreError):
    """Raised when a status transition is not allowed from the current state."""


class ArtifactError(KtlSubmitError):
    """Base class for artifact generation failures."""


class RenderError(ArtifactError):
    """Snapshot or composite generation failed; the artifact is omitted."""


class ArchiveError(ArtifactError):
    """Archive construction failed; the submission must not proceed."""


class ValidationError(KtlSubmitError):
    """Job or payload data is not acceptable for submission."""

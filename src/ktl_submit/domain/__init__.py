"""Domain types shared by the job store, artifact stages and submission."""

from .models import (
    ArchiveMode,
    Artifact,
    ArtifactKind,
    Entry,
    Job,
    JobCategory,
    JobSnapshot,
    Payload,
    Photo,
    StampDetails,
    SubmissionPhase,
    SubmissionStatus,
    format_site,
)
from .results import Failed, Ok, Skipped, StageResult

__all__ = [
    "ArchiveMode",
    "Artifact",
    "ArtifactKind",
    "Entry",
    "Failed",
    "Job",
    "JobCategory",
    "JobSnapshot",
    "Ok",
    "Payload",
    "Photo",
    "Skipped",
    "StageResult",
    "StampDetails",
    "SubmissionPhase",
    "SubmissionStatus",
    "format_site",
]

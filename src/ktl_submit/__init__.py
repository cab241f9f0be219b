"""KTL submission pipeline.

The package turns an inspection job (transcribed instrument readings plus
photos) into the artifacts and the JSON envelope expected by the KTL labview
service, and delivers them with the two-phase upload protocol.
"""

from .domain.models import Artifact, ArtifactKind, Entry, Job, Photo, SubmissionStatus
from .jobs.jobs_repository import JobRepository
from .submission.submission_service import SubmissionService

__all__ = [
    "Artifact",
    "ArtifactKind",
    "Entry",
    "Job",
    "JobRepository",
    "Photo",
    "SubmissionService",
    "SubmissionStatus",
]

"""Submission orchestration for one job.

``submit`` captures the job synchronously, generates the artifacts in order
(snapshot, composite, archive), maps the payload, validates the envelope and
hands everything to :class:`SubmissionClient`. The job ends in ``success`` or
``error``; a failed snapshot or composite only drops that artifact, a failed
archive aborts the attempt.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import structlog

from ..artifacts.archive_packager import ArchivePackager
from ..artifacts.artifact_naming import build_name
from ..artifacts.composite_image import CompositeImageComposer
from ..artifacts.table_snapshot import (
    PillowTableSnapshotRenderer,
    TableSnapshotRenderer,
    UnmountedSnapshotRenderer,
)
from ..config import SubmissionSettings
from ..domain.models import Artifact, ArtifactKind, Job, JobSnapshot, Payload
from ..domain.results import Failed, Ok, Skipped, StageResult
from ..exceptions import ArchiveError, KtlSubmitError
from ..jobs.jobs_repository import JobRepository
from ..payload.payload_mapper import MappingContext, map_payload
from ..payload.payload_schema import EnvelopeValidator
from .submission_client import SubmissionClient
from .submission_errors import SubmissionError

logger = structlog.get_logger(__name__)


class SubmissionService:
    """Drive the ``idle -> sending -> success | error`` cycle of a job."""

    def __init__(
        self,
        repository: JobRepository,
        client: SubmissionClient,
        *,
        snapshot_renderer: TableSnapshotRenderer | None = None,
        composer: CompositeImageComposer | None = None,
        packager: ArchivePackager | None = None,
        validator: EnvelopeValidator | None = None,
        operator: str = "",
        snapshot_width: int = 800,
        secondary_identifiers: Iterable[str] = (),
        naming_identifiers: Sequence[str] | None = None,
    ) -> None:
        self._repository = repository
        self._client = client
        self._snapshot_renderer = snapshot_renderer or UnmountedSnapshotRenderer()
        self._composer = composer or CompositeImageComposer()
        self._packager = packager or ArchivePackager()
        self._validator = validator or EnvelopeValidator()
        self._operator = operator
        self._snapshot_width = snapshot_width
        self._secondary_identifiers = frozenset(secondary_identifiers)
        self._naming_identifiers = tuple(naming_identifiers) if naming_identifiers else None

    @classmethod
    def build_default(
        cls,
        repository: JobRepository,
        settings: SubmissionSettings | None = None,
        **overrides,
    ) -> "SubmissionService":
        """Wire the Pillow renderers and the HTTP client from settings."""

        settings = settings or SubmissionSettings.build_default()
        font_path = str(settings.font_path) if settings.font_path else None
        options = {
            "snapshot_renderer": PillowTableSnapshotRenderer(
                scale=settings.snapshot_scale, font_path=font_path
            ),
            "composer": CompositeImageComposer(
                quality=settings.composite_quality,
                max_dimension=settings.composite_max_dimension_px,
                font_path=font_path,
            ),
            "packager": ArchivePackager(mode=settings.archive_mode, font_path=font_path),
            "operator": settings.operator,
            "snapshot_width": settings.snapshot_width_px,
        }
        options.update(overrides)
        client = options.pop("client", None) or SubmissionClient.from_settings(settings)
        return cls(repository, client, **options)

    # ------------------------------------------------------------------
    # Preflight
    # ------------------------------------------------------------------
    def preview_artifact_names(self, job_id: str) -> list[str]:
        """Names the next submission will upload, in upload order."""

        snapshot = self._repository.get(job_id).snapshot()
        names: list[str] = []
        key = (snapshot.receipt_number, snapshot.site_location, snapshot.selected_item)
        if not isinstance(self._snapshot_renderer, UnmountedSnapshotRenderer) and any(
            entry.has_value for entry in snapshot.entries
        ):
            names.append(build_name(ArtifactKind.DATATABLE, *key))
        if snapshot.photos:
            names.append(build_name(ArtifactKind.COMPOSITE, *key))
            names.append(build_name(ArtifactKind.ARCHIVE, *key))
        return names

    def preview_payload(self, job_id: str, *, operator: str | None = None) -> Payload:
        snapshot = self._repository.get(job_id).snapshot()
        return self._map(snapshot, self.preview_artifact_names(job_id), operator)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    async def submit(self, job_id: str, *, operator: str | None = None) -> Job:
        # Captured before the first await; later edits wait for the next attempt.
        snapshot = self._repository.begin_submission(job_id)
        log = logger.bind(job_id=job_id, receipt_number=snapshot.receipt_number)
        log.info("ktl.submission.start", photos=len(snapshot.photos), entries=len(snapshot.entries))

        try:
            artifacts = await self.generate_artifacts(snapshot)
            payload = self._map(snapshot, [artifact.name for artifact in artifacts], operator)
            self._validator.validate(payload.to_wire())
            outcome = await self._client.submit(artifacts, payload)
        except SubmissionError as exc:
            log.warning("ktl.submission.failed", phase=exc.phase.value, error=exc.message)
            return self._repository.fail_submission(job_id, exc.message, phase=exc.phase)
        except KtlSubmitError as exc:
            log.warning("ktl.submission.failed", error=str(exc))
            return self._repository.fail_submission(job_id, str(exc))
        except Exception as exc:
            log.exception("ktl.submission.crashed")
            self._repository.fail_submission(job_id, f"Unexpected error: {exc}")
            raise

        message = outcome.message or f"Submitted {len(outcome.uploaded_names)} file(s)"
        log.info("ktl.submission.success", uploaded=list(outcome.uploaded_names))
        return self._repository.complete_submission(job_id, message)

    async def generate_artifacts(self, snapshot: JobSnapshot) -> list[Artifact]:
        """Run snapshot, composite and archive generation in that order."""

        results: list[tuple[str, StageResult]] = [
            (
                "snapshot",
                await self._snapshot_renderer.render(
                    snapshot.entries, snapshot, self._snapshot_width
                ),
            ),
            ("composite", self._composer.compose(snapshot.photos, snapshot)),
            ("archive", self._packager.package(snapshot.photos, snapshot)),
        ]

        artifacts: list[Artifact] = []
        for stage, result in results:
            if isinstance(result, Ok):
                artifacts.append(result.artifact)
            elif isinstance(result, Skipped):
                logger.info("ktl.artifact.skipped", job_id=snapshot.job_id, stage=stage, reason=result.reason)
            elif isinstance(result, Failed):
                if isinstance(result.error, ArchiveError):
                    raise result.error
                logger.warning(
                    "ktl.artifact.omitted",
                    job_id=snapshot.job_id,
                    stage=stage,
                    error=str(result.error),
                )
        return artifacts

    def _map(
        self,
        snapshot: JobSnapshot,
        artifact_names: Sequence[str],
        operator: str | None,
    ) -> Payload:
        context = MappingContext.from_snapshot(
            snapshot,
            operator=operator if operator is not None else self._operator,
            secondary_identifiers=self._secondary_identifiers,
            naming_identifiers=self._naming_identifiers,
        )
        return map_payload(snapshot.entries, snapshot.selected_item, artifact_names, context)


__all__ = ["SubmissionService"]

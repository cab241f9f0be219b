"""Per-photo ZIP archive attached to a submission."""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Sequence

from ..domain.models import ArchiveMode, Artifact, ArtifactKind, JobSnapshot, Photo
from ..domain.results import Failed, Ok, Skipped, StageResult
from ..exceptions import ArchiveError, RenderError
from .artifact_naming import build_name, safe_name_with_ext
from .composite_image import stamp_details_for
from .photo_stamping import stamp_photo

logger = logging.getLogger(__name__)

# Fixed member timestamp so identical inputs give identical bytes.
MEMBER_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class ArchivePackager:
    """Bundle job photos, stamped or raw, into one ZIP in photo order."""

    def __init__(
        self,
        *,
        mode: ArchiveMode = ArchiveMode.STAMPED,
        font_path: str | None = None,
    ) -> None:
        self._mode = ArchiveMode(mode)
        self._font_path = font_path

    @property
    def mode(self) -> ArchiveMode:
        return self._mode

    def member_names(self, photos: Sequence[Photo], job: JobSnapshot) -> list[str]:
        names: list[str] = []
        for index, photo in enumerate(photos, start=1):
            if self._mode is ArchiveMode.STAMPED:
                names.append(
                    build_name(
                        ArtifactKind.ARCHIVE_MEMBER,
                        job.receipt_number,
                        job.site_location,
                        job.selected_item,
                        index,
                        extension="png",
                    )
                )
            else:
                names.append(f"{index:02d}_{safe_name_with_ext(photo.name, photo.mime_type)}")
        return names

    def package(self, photos: Sequence[Photo], job: JobSnapshot) -> StageResult:
        photos = tuple(photos)
        if not photos:
            return Skipped("no photos attached")

        try:
            data = self._build(photos, job)
        except (ArchiveError, RenderError, OSError, ValueError, zipfile.BadZipFile) as exc:
            error = exc if isinstance(exc, ArchiveError) else ArchiveError(
                f"Archive could not be built: {exc}"
            )
            logger.error(
                "ktl.archive.failed",
                extra={"job_id": job.job_id, "mode": self._mode.value, "error": str(exc)},
            )
            return Failed(error)

        name = build_name(
            ArtifactKind.ARCHIVE, job.receipt_number, job.site_location, job.selected_item
        )
        logger.info(
            "ktl.archive.built",
            extra={
                "job_id": job.job_id,
                "artifact_name": name,
                "members": len(photos),
                "mode": self._mode.value,
            },
        )
        return Ok(Artifact(name=name, data=data, mime_type="application/zip", kind=ArtifactKind.ARCHIVE))

    def _build(self, photos: tuple[Photo, ...], job: JobSnapshot) -> bytes:
        details = stamp_details_for(job)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for photo, member in zip(photos, self.member_names(photos, job)):
                if self._mode is ArchiveMode.STAMPED:
                    content = stamp_photo(photo, details, font_path=self._font_path)
                else:
                    content = photo.data
                info = zipfile.ZipInfo(member, date_time=MEMBER_DATE_TIME)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                archive.writestr(info, content)
        return buffer.getvalue()


__all__ = ["ArchivePackager", "MEMBER_DATE_TIME"]

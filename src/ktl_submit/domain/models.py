"""Domain models for the KTL submission pipeline.

``Job`` is the caller-owned record being edited; everything the pipeline
derives from it (``JobSnapshot``, ``Artifact``, ``Payload``) is immutable and
lives for a single submission attempt only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping


class SubmissionStatus(StrEnum):
    """Per-job submission state surfaced to the caller."""

    IDLE = "idle"
    SENDING = "sending"
    SUCCESS = "success"
    ERROR = "error"


class SubmissionPhase(StrEnum):
    """Network phases of one submission, in execution order."""

    UPLOAD = "upload"
    ENV = "env"

    @property
    def label(self) -> str:
        return _PHASE_LABELS[self]


_PHASE_LABELS = {
    SubmissionPhase.UPLOAD: "File upload",
    SubmissionPhase.ENV: "JSON data send",
}


class JobCategory(StrEnum):
    """Record category; the values are the KTL wire prefixes."""

    WATER_QUALITY = "수질"
    FIELD_COUNT = "현장계수"
    DRINKING_WATER = "먹는물"


class ArtifactKind(StrEnum):
    DATATABLE = "datatable"
    COMPOSITE = "composite"
    ARCHIVE = "archive"
    ARCHIVE_MEMBER = "archive_member"


class ArchiveMode(StrEnum):
    """Content of archive members: original bytes or stamped PNG derivatives."""

    RAW = "raw"
    STAMPED = "stamped"


@dataclass(slots=True, frozen=True)
class Entry:
    """One transcribed reading.

    ``time`` is non-empty exactly when ``value`` or ``value_secondary`` holds
    something; :mod:`src.ktl_submit.jobs.entry_editing` keeps that true.
    """

    id: str
    identifier: str | None = None
    time: str = ""
    value: str = ""
    value_secondary: str | None = None

    @property
    def has_value(self) -> bool:
        return bool(self.value.strip()) or bool((self.value_secondary or "").strip())


@dataclass(slots=True, frozen=True)
class Photo:
    """Raw photo bytes as captured; never modified after capture."""

    data: bytes
    mime_type: str
    name: str
    last_modified: int | None = None
    comment: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def dedupe_key(self) -> tuple[str, int, int | None]:
        return (self.name, self.size, self.last_modified)


@dataclass(slots=True)
class Job:
    """Inspection record in progress, the unit of submission."""

    id: str
    receipt_number: str
    site_location: str
    selected_item: str
    details: str = ""
    decimal_places: int = 2
    decimal_places_secondary: int | None = None
    entries: list[Entry] = field(default_factory=list)
    photos: list[Photo] = field(default_factory=list)
    category: JobCategory | None = None
    inspection_start_date: str = ""
    submission_status: SubmissionStatus = SubmissionStatus.IDLE
    submission_message: str | None = None
    failed_phase: SubmissionPhase | None = None

    def snapshot(self) -> "JobSnapshot":
        """Freeze the submission-relevant state of the job."""

        return JobSnapshot(
            job_id=self.id,
            receipt_number=self.receipt_number,
            site_location=self.site_location,
            selected_item=self.selected_item,
            details=self.details,
            decimal_places=self.decimal_places,
            decimal_places_secondary=self.decimal_places_secondary,
            entries=tuple(self.entries),
            photos=tuple(self.photos),
            category=self.category,
            inspection_start_date=self.inspection_start_date,
        )


@dataclass(slots=True, frozen=True)
class JobSnapshot:
    """Immutable copy of a job taken at submission start."""

    job_id: str
    receipt_number: str
    site_location: str
    selected_item: str
    details: str
    decimal_places: int
    decimal_places_secondary: int | None
    entries: tuple[Entry, ...]
    photos: tuple[Photo, ...]
    category: JobCategory | None = None
    inspection_start_date: str = ""

    @property
    def site_with_details(self) -> str:
        return format_site(self.site_location, self.details)


@dataclass(slots=True, frozen=True)
class Artifact:
    """Generated file attached to one submission."""

    name: str
    data: bytes
    mime_type: str
    kind: ArtifactKind


@dataclass(slots=True, frozen=True)
class StampDetails:
    """Header lines stamped onto composite and per-photo images."""

    receipt_number: str
    site_location: str
    item: str
    inspection_start_date: str = ""


@dataclass(slots=True, frozen=True)
class Payload:
    """KTL wire object for one submission attempt.

    ``items`` holds identifier-derived and artifact keys only; ``fields`` holds
    scalars copied through from the job. Both end up in ``LABVIEW_ITEM``.
    """

    receipt_number: str
    category_tag: str
    operator: str
    comment: str
    items: Mapping[str, str]
    fields: Mapping[str, str]

    def item_object(self) -> dict[str, str]:
        merged = dict(self.items)
        merged.update(self.fields)
        return merged

    def to_wire(self) -> dict[str, Any]:
        from ..payload.payload_mapper import to_wire_envelope

        return to_wire_envelope(self)


def format_site(site: str, details: str | None = None) -> str:
    """Append free-text site details as ``site_(details)``."""

    site = (site or "").strip()
    details = (details or "").strip()
    return f"{site}_({details})" if details else site


__all__ = [
    "ArchiveMode",
    "Artifact",
    "ArtifactKind",
    "Entry",
    "Job",
    "JobCategory",
    "JobSnapshot",
    "Payload",
    "Photo",
    "StampDetails",
    "SubmissionPhase",
    "SubmissionStatus",
    "format_site",
]

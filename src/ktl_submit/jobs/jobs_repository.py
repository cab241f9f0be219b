"""In-memory job store: an arena of jobs indexed by id.

The store is the only place that mutates :class:`Job` records. Every edit goes
through it so that the entry ``time`` invariant holds and a finished submission
(``success`` or ``error``) is re-armed to ``idle`` by the next edit.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable
from uuid import uuid4

from ..domain.models import (
    Entry,
    Job,
    JobCategory,
    JobSnapshot,
    Photo,
    SubmissionPhase,
    SubmissionStatus,
)
from ..exceptions import InvalidJobStateError, JobBusyError, JobNotFoundError, JobStoreError
from . import entry_editing
from .entry_editing import ValueChannel

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset(
    {
        "receipt_number",
        "site_location",
        "selected_item",
        "details",
        "decimal_places",
        "decimal_places_secondary",
        "category",
        "inspection_start_date",
    }
)


class JobRepository:
    """Caller-owned arena of jobs with the submission status machine."""

    def __init__(self, *, clock: Callable[[], str] | None = None) -> None:
        self._jobs: dict[str, Job] = {}
        self._order: list[str] = []
        self._clock = clock or entry_editing.current_timestamp

    # ------------------------------------------------------------------
    # Arena
    # ------------------------------------------------------------------
    def create(
        self,
        *,
        receipt_number: str,
        site_location: str,
        selected_item: str,
        details: str = "",
        decimal_places: int = 2,
        decimal_places_secondary: int | None = None,
        category: JobCategory | None = None,
        inspection_start_date: str = "",
        job_id: str | None = None,
    ) -> Job:
        job = Job(
            id=job_id or uuid4().hex,
            receipt_number=receipt_number,
            site_location=site_location,
            selected_item=selected_item,
            details=details,
            decimal_places=decimal_places,
            decimal_places_secondary=decimal_places_secondary,
            category=category,
            inspection_start_date=inspection_start_date,
        )
        return self.add(job)

    def add(self, job: Job) -> Job:
        if job.id in self._jobs:
            raise JobStoreError(f"Job {job.id} already exists")
        self._jobs[job.id] = job
        self._order.append(job.id)
        return job

    def get(self, job_id: str) -> Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise JobNotFoundError(f"Job {job_id} not found") from None

    def list(self) -> list[Job]:
        return [self._jobs[job_id] for job_id in self._order]

    def delete(self, job_id: str) -> None:
        job = self.get(job_id)
        if job.submission_status is SubmissionStatus.SENDING:
            raise JobBusyError(f"Job {job_id} has a submission in flight")
        del self._jobs[job_id]
        self._order.remove(job_id)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------
    def update_job(self, job_id: str, **changes: object) -> Job:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields are not editable: {', '.join(sorted(unknown))}")
        job = self.get(job_id)
        coerced = {name: _coerce_field(name, value) for name, value in changes.items()}
        for name, value in coerced.items():
            setattr(job, name, value)
        self._touch(job)
        return job

    def add_entry(
        self,
        job_id: str,
        *,
        identifier: str | None = None,
        value: str = "",
        value_secondary: str | None = None,
        entry_id: str | None = None,
    ) -> Entry:
        job = self.get(job_id)
        entry = Entry(id=entry_id or uuid4().hex, identifier=identifier)
        if value:
            entry = entry_editing.set_entry_value(
                entry, ValueChannel.PRIMARY, value, clock=self._clock
            )
        if value_secondary is not None:
            entry = entry_editing.set_entry_value(
                entry, ValueChannel.SECONDARY, value_secondary, clock=self._clock
            )
        job.entries.append(entry)
        self._touch(job)
        return entry

    def set_entry_identifier(self, job_id: str, entry_id: str, identifier: str | None) -> Entry:
        job = self.get(job_id)
        return self._replace_entry(job, entry_id, lambda entry: replace(entry, identifier=identifier))

    def set_entry_value(
        self,
        job_id: str,
        entry_id: str,
        value: str,
        channel: ValueChannel = ValueChannel.PRIMARY,
    ) -> Entry:
        job = self.get(job_id)
        return self._replace_entry(
            job,
            entry_id,
            lambda entry: entry_editing.set_entry_value(entry, channel, value, clock=self._clock),
        )

    def blur_entry(
        self,
        job_id: str,
        entry_id: str,
        channel: ValueChannel = ValueChannel.PRIMARY,
    ) -> Entry:
        """Round the value the inspector just left to the job's decimal places."""

        job = self.get(job_id)
        return self._replace_entry(
            job,
            entry_id,
            lambda entry: entry_editing.format_entry_on_blur(job, entry, channel),
        )

    def clear_entry(self, job_id: str, entry_id: str) -> Entry:
        job = self.get(job_id)
        return self._replace_entry(job, entry_id, entry_editing.clear_entry_values)

    def remove_entry(self, job_id: str, entry_id: str) -> None:
        job = self.get(job_id)
        index = self._entry_index(job, entry_id)
        del job.entries[index]
        self._touch(job)

    def add_photos(self, job_id: str, photos: Iterable[Photo]) -> list[Photo]:
        """Append photos, skipping ones already attached (same name, size, mtime)."""

        job = self.get(job_id)
        seen = {photo.dedupe_key for photo in job.photos}
        added: list[Photo] = []
        for photo in photos:
            if photo.dedupe_key in seen:
                logger.info(
                    "ktl.job.photo_duplicate",
                    extra={"job_id": job_id, "photo_name": photo.name},
                )
                continue
            seen.add(photo.dedupe_key)
            job.photos.append(photo)
            added.append(photo)
        if added:
            self._touch(job)
        return added

    def remove_photo(self, job_id: str, index: int) -> Photo:
        job = self.get(job_id)
        try:
            photo = job.photos.pop(index)
        except IndexError:
            raise JobStoreError(f"Job {job_id} has no photo at index {index}") from None
        self._touch(job)
        return photo

    # ------------------------------------------------------------------
    # Submission status machine
    # ------------------------------------------------------------------
    def rearm(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job.submission_status is SubmissionStatus.SENDING:
            raise JobBusyError(f"Job {job_id} has a submission in flight")
        self._reset_status(job)
        return job

    def begin_submission(self, job_id: str) -> JobSnapshot:
        """Move ``idle -> sending`` and capture the data of this attempt."""

        job = self.get(job_id)
        if job.submission_status is SubmissionStatus.SENDING:
            raise JobBusyError(f"Job {job_id} has a submission in flight")
        if job.submission_status is not SubmissionStatus.IDLE:
            raise InvalidJobStateError(
                f"Job {job_id} is {job.submission_status.value}; re-arm it before submitting again"
            )
        job.submission_status = SubmissionStatus.SENDING
        job.submission_message = None
        job.failed_phase = None
        return job.snapshot()

    def complete_submission(self, job_id: str, message: str | None = None) -> Job:
        job = self._require_sending(job_id)
        job.submission_status = SubmissionStatus.SUCCESS
        job.submission_message = message
        return job

    def fail_submission(
        self,
        job_id: str,
        message: str,
        *,
        phase: SubmissionPhase | None = None,
    ) -> Job:
        job = self._require_sending(job_id)
        job.submission_status = SubmissionStatus.ERROR
        job.submission_message = message
        job.failed_phase = phase
        return job

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_sending(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job.submission_status is not SubmissionStatus.SENDING:
            raise InvalidJobStateError(
                f"Job {job_id} is {job.submission_status.value}, not sending"
            )
        return job

    def _replace_entry(
        self,
        job: Job,
        entry_id: str,
        change: Callable[[Entry], Entry],
    ) -> Entry:
        index = self._entry_index(job, entry_id)
        updated = change(job.entries[index])
        job.entries[index] = updated
        self._touch(job)
        return updated

    @staticmethod
    def _entry_index(job: Job, entry_id: str) -> int:
        for index, entry in enumerate(job.entries):
            if entry.id == entry_id:
                return index
        raise JobStoreError(f"Job {job.id} has no entry {entry_id}")

    def _touch(self, job: Job) -> None:
        # Edits during flight only affect the next attempt.
        if job.submission_status in (SubmissionStatus.SUCCESS, SubmissionStatus.ERROR):
            self._reset_status(job)

    @staticmethod
    def _reset_status(job: Job) -> None:
        if job.submission_status is not SubmissionStatus.IDLE:
            logger.info(
                "ktl.job.rearmed",
                extra={"job_id": job.id, "previous_status": job.submission_status.value},
            )
        job.submission_status = SubmissionStatus.IDLE
        job.submission_message = None
        job.failed_phase = None


def _coerce_field(name: str, value: object) -> object:
    """Convert an edited value to the type :class:`Job` stores for ``name``."""

    if name == "category":
        if value is None or value == "":
            return None
        return JobCategory(value)
    if name in ("decimal_places", "decimal_places_secondary"):
        if value is None and name == "decimal_places_secondary":
            return None
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        try:
            places = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{name} must be an integer, got {value!r}") from exc
        if places < 0:
            raise ValueError(f"{name} must not be negative, got {places}")
        return places
    return "" if value is None else str(value)


__all__ = ["JobRepository"]

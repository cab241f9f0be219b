from __future__ import annotations

import pytest

from src.ktl_submit.domain.models import JobCategory, SubmissionPhase, SubmissionStatus
from src.ktl_submit.exceptions import (
    InvalidJobStateError,
    JobBusyError,
    JobNotFoundError,
    JobStoreError,
)
from src.ktl_submit.jobs.entry_editing import ValueChannel
from src.ktl_submit.jobs.jobs_repository import JobRepository


@pytest.fixture
def repository() -> JobRepository:
    return JobRepository(clock=lambda: "2025-03-01T10:00")


@pytest.fixture
def job_id(repository: JobRepository) -> str:
    job = repository.create(
        receipt_number="25-000123-01-1",
        site_location="정수장",
        selected_item="TU/CL",
        decimal_places=2,
        decimal_places_secondary=3,
        job_id="job-1",
    )
    return job.id


def test_create_get_list_delete(repository: JobRepository, job_id: str):
    second = repository.create(receipt_number="2", site_location="s", selected_item="COD")

    assert repository.get(job_id).receipt_number == "25-000123-01-1"
    assert [job.id for job in repository.list()] == [job_id, second.id]
    assert job_id in repository

    repository.delete(job_id)

    assert len(repository) == 1
    with pytest.raises(JobNotFoundError):
        repository.get(job_id)


def test_duplicate_job_id_is_rejected(repository: JobRepository, job_id: str):
    with pytest.raises(JobStoreError):
        repository.create(receipt_number="x", site_location="y", selected_item="TU", job_id=job_id)


def test_entry_edits_keep_time_invariant(repository: JobRepository, job_id: str):
    entry = repository.add_entry(job_id, identifier="Z1")
    assert entry.time == ""

    entry = repository.set_entry_value(job_id, entry.id, "1.2345")
    assert entry.time == "2025-03-01T10:00"

    entry = repository.set_entry_value(job_id, entry.id, "0.5", ValueChannel.SECONDARY)
    entry = repository.set_entry_value(job_id, entry.id, "")
    assert entry.time == "2025-03-01T10:00"

    entry = repository.set_entry_value(job_id, entry.id, "", ValueChannel.SECONDARY)
    assert entry.time == ""


def test_blur_formats_stored_value(repository: JobRepository, job_id: str):
    entry = repository.add_entry(job_id, identifier="Z1", value="1.2345", value_secondary="0.12345")

    repository.blur_entry(job_id, entry.id)
    repository.blur_entry(job_id, entry.id, ValueChannel.SECONDARY)

    stored = repository.get(job_id).entries[0]
    assert stored.value == "1.23"
    assert stored.value_secondary == "0.123"


def test_clear_and_remove_entry(repository: JobRepository, job_id: str):
    entry = repository.add_entry(job_id, identifier="Z1", value="1")

    cleared = repository.clear_entry(job_id, entry.id)
    assert cleared.value == "" and cleared.time == ""

    repository.remove_entry(job_id, entry.id)
    assert repository.get(job_id).entries == []
    with pytest.raises(JobStoreError):
        repository.set_entry_value(job_id, entry.id, "2")


def test_add_photos_deduplicates_by_name_size_and_mtime(repository: JobRepository, job_id: str, make_photo):
    photo = make_photo("a.png")
    same = make_photo("a.png")
    newer = make_photo("a.png", last_modified=1)

    added = repository.add_photos(job_id, [photo, same, newer])

    assert added == [photo, newer]
    assert repository.add_photos(job_id, [same]) == []
    assert len(repository.get(job_id).photos) == 2

    removed = repository.remove_photo(job_id, 0)
    assert removed == photo
    with pytest.raises(JobStoreError):
        repository.remove_photo(job_id, 5)


def test_update_job_rejects_unknown_fields(repository: JobRepository, job_id: str):
    repository.update_job(job_id, details="2호기", decimal_places=1)

    assert repository.get(job_id).details == "2호기"
    with pytest.raises(ValueError):
        repository.update_job(job_id, submission_status=SubmissionStatus.SUCCESS)


def test_sending_acts_as_mutex(repository: JobRepository, job_id: str):
    repository.begin_submission(job_id)

    with pytest.raises(JobBusyError):
        repository.begin_submission(job_id)
    with pytest.raises(JobBusyError):
        repository.rearm(job_id)
    with pytest.raises(JobBusyError):
        repository.delete(job_id)


def test_edits_in_flight_do_not_touch_snapshot_or_status(repository: JobRepository, job_id: str):
    entry = repository.add_entry(job_id, identifier="Z1", value="1")
    snapshot = repository.begin_submission(job_id)

    repository.set_entry_value(job_id, entry.id, "9")

    assert snapshot.entries[0].value == "1"
    assert repository.get(job_id).submission_status is SubmissionStatus.SENDING


def test_error_requires_rearm_and_edit_rearms(repository: JobRepository, job_id: str):
    entry = repository.add_entry(job_id, identifier="Z1", value="1")
    repository.begin_submission(job_id)
    job = repository.fail_submission(job_id, "invalid schema", phase=SubmissionPhase.ENV)

    assert job.submission_status is SubmissionStatus.ERROR
    assert job.failed_phase is SubmissionPhase.ENV
    with pytest.raises(InvalidJobStateError):
        repository.begin_submission(job_id)

    repository.set_entry_value(job_id, entry.id, "2")

    job = repository.get(job_id)
    assert job.submission_status is SubmissionStatus.IDLE
    assert job.submission_message is None
    assert job.failed_phase is None


def test_success_then_explicit_rearm(repository: JobRepository, job_id: str):
    repository.begin_submission(job_id)
    repository.complete_submission(job_id, "ok")

    assert repository.get(job_id).submission_status is SubmissionStatus.SUCCESS

    repository.rearm(job_id)
    repository.begin_submission(job_id)
    assert repository.get(job_id).submission_status is SubmissionStatus.SENDING


def test_completion_requires_sending(repository: JobRepository, job_id: str):
    with pytest.raises(InvalidJobStateError):
        repository.complete_submission(job_id)
    with pytest.raises(InvalidJobStateError):
        repository.fail_submission(job_id, "boom")


def test_update_job_coerces_edited_values(repository: JobRepository, job_id: str):
    job = repository.update_job(
        job_id, category="현장계수", decimal_places="3", decimal_places_secondary=None, details=None
    )

    assert job.category is JobCategory.FIELD_COUNT
    assert job.decimal_places == 3
    assert job.decimal_places_secondary is None
    assert job.details == ""

    repository.update_job(job_id, category="")
    assert repository.get(job_id).category is None


@pytest.mark.parametrize(
    "changes",
    [
        {"category": "하수"},
        {"decimal_places": "two"},
        {"decimal_places": -1},
        {"decimal_places": None},
        {"decimal_places_secondary": True},
    ],
)
def test_update_job_rejects_bad_values_without_partial_edits(
    repository: JobRepository, job_id: str, changes: dict
):
    with pytest.raises(ValueError):
        repository.update_job(job_id, details="changed", **changes)

    job = repository.get(job_id)
    assert job.details == ""
    assert job.decimal_places == 2

"""Submit one inspection job described in a JSON file to KTL."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any

from src.ktl_submit.config import SubmissionSettings
from src.ktl_submit.domain.models import JobCategory, Photo, SubmissionStatus
from src.ktl_submit.exceptions import KtlSubmitError
from src.ktl_submit.jobs.jobs_repository import JobRepository
from src.ktl_submit.logging import configure_logging
from src.ktl_submit.payload.payload_mapper import render_preview
from src.ktl_submit.submission.submission_service import SubmissionService


def read_photo(path: Path, comment: str | None = None) -> Photo:
    stat = path.stat()
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return Photo(
        data=path.read_bytes(),
        mime_type=mime_type,
        name=path.name,
        last_modified=stat.st_mtime_ns // 1_000_000,
        comment=comment,
    )


def load_job(path: Path, repository: JobRepository, extra_photos: list[Path]) -> str:
    """Create the job described by ``path`` in ``repository`` and return its id."""

    document: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    category = document.get("category")
    job = repository.create(
        receipt_number=str(document["receipt_number"]),
        site_location=str(document.get("site_location", "")),
        selected_item=str(document["selected_item"]),
        details=str(document.get("details", "")),
        decimal_places=int(document.get("decimal_places", 2)),
        decimal_places_secondary=document.get("decimal_places_secondary"),
        category=JobCategory(category) if category else None,
        inspection_start_date=str(document.get("inspection_start_date", "")),
        job_id=document.get("id"),
    )
    for raw in document.get("entries", []):
        entry = repository.add_entry(
            job.id,
            identifier=raw.get("identifier"),
            value=str(raw.get("value", "")),
            value_secondary=raw.get("value_secondary"),
        )
        repository.blur_entry(job.id, entry.id)

    base_dir = path.parent
    photos = [
        read_photo(base_dir / item["path"], item.get("comment"))
        for item in document.get("photos", [])
    ]
    photos.extend(read_photo(photo_path) for photo_path in extra_photos)
    repository.add_photos(job.id, photos)
    return job.id


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Submit an inspection job to KTL.")
    parser.add_argument("job_file", type=Path, help="JSON file describing the job.")
    parser.add_argument("--photo", type=Path, action="append", default=[], help="Additional photo file.")
    parser.add_argument("--operator", help="Name written to UPDATE_USER (defaults to KTL_OPERATOR).")
    parser.add_argument(
        "--secondary-identifier",
        action="append",
        default=[],
        help="Identifier whose secondary value is mapped (dual-mode items).",
    )
    parser.add_argument("--preview", action="store_true", help="Print artifact names and payload without sending.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    settings = SubmissionSettings.build_default()
    repository = JobRepository()
    try:
        job_id = load_job(args.job_file, repository, args.photo)
    except (OSError, ValueError, KeyError, TypeError, KtlSubmitError) as exc:
        print(f"invalid job file: {exc}", file=sys.stderr)
        return 2

    service = SubmissionService.build_default(
        repository,
        settings,
        secondary_identifiers=args.secondary_identifier,
    )

    if args.preview:
        for name in service.preview_artifact_names(job_id):
            print(name, file=sys.stdout)
        print(render_preview(service.preview_payload(job_id, operator=args.operator)), file=sys.stdout)
        return 0

    job = asyncio.run(service.submit(job_id, operator=args.operator))
    if job.submission_status is SubmissionStatus.SUCCESS:
        print(f"submission succeeded: {job.submission_message}", file=sys.stdout)
        return 0
    print(f"submission failed: {job.submission_message}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))

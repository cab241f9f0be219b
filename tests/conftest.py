from __future__ import annotations

import io
import os
from typing import Callable

import pytest
from PIL import Image

from src.ktl_submit.domain.models import Entry, Job, Photo

os.environ.setdefault("KTL_OPERATOR", "tester")


def encode_image(size: tuple[int, int], color: str = "steelblue", image_format: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def make_photo() -> Callable[..., Photo]:
    def factory(
        name: str = "photo.png",
        size: tuple[int, int] = (64, 48),
        color: str = "steelblue",
        comment: str | None = None,
        last_modified: int | None = 1_700_000_000_000,
    ) -> Photo:
        image_format = "JPEG" if name.lower().endswith((".jpg", ".jpeg")) else "PNG"
        mime_type = "image/jpeg" if image_format == "JPEG" else "image/png"
        return Photo(
            data=encode_image(size, color, image_format),
            mime_type=mime_type,
            name=name,
            last_modified=last_modified,
            comment=comment,
        )

    return factory


@pytest.fixture
def job() -> Job:
    return Job(
        id="job-1",
        receipt_number="25-000123-01-1",
        site_location="정수장",
        selected_item="TU",
        decimal_places=2,
        entries=[
            Entry(id="e1", identifier="Z1", time="2025-03-01T09:00", value="1.23"),
            Entry(id="e2", identifier="S1", time="2025-03-01T09:05", value="0.87"),
        ],
    )

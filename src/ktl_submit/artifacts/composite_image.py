"""Contact sheet of all job photos with the job details stamped on it."""

from __future__ import annotations

import io
import logging
import math
from typing import Sequence

from PIL import Image, ImageDraw

from ..domain.models import Artifact, ArtifactKind, JobSnapshot, Photo, StampDetails
from ..domain.results import Failed, Ok, Skipped, StageResult
from ..exceptions import RenderError
from .artifact_naming import build_name
from .fonts import FontType, drawable, load_font, text_size, truncate_to_width
from .photo_stamping import draw_stamp_block, open_photo, stamp_lines

logger = logging.getLogger(__name__)

MIN_CELL_SIZE = (300, 200)
CELL_PADDING = 10
COMMENT_FOREGROUND = (250, 204, 21, 255)
COMMENT_BACKGROUND = (0, 0, 0, 150)


def grid_shape(count: int) -> tuple[int, int]:
    """Return ``(columns, rows)`` for ``count`` photos."""

    if count <= 0:
        return 0, 0
    if count == 3:
        return 3, 1
    columns = math.ceil(math.sqrt(count))
    return columns, math.ceil(count / columns)


def stamp_details_for(job: JobSnapshot) -> StampDetails:
    return StampDetails(
        receipt_number=job.receipt_number,
        site_location=job.site_with_details,
        item=job.selected_item,
        inspection_start_date=job.inspection_start_date,
    )


class CompositeImageComposer:
    """Lay out photos on one canvas and encode it as JPEG."""

    def __init__(
        self,
        *,
        quality: int = 90,
        max_dimension: int = 3000,
        font_path: str | None = None,
    ) -> None:
        self._quality = quality
        self._max_dimension = max_dimension
        self._font_path = font_path

    def compose(self, photos: Sequence[Photo], job: JobSnapshot) -> StageResult:
        photos = tuple(photos)
        if not photos:
            return Skipped("no photos attached")

        try:
            data = self._render(photos, stamp_details_for(job))
        except RenderError as exc:
            logger.warning("ktl.composite.failed", extra={"job_id": job.job_id, "error": str(exc)})
            return Failed(exc)
        except (OSError, ValueError) as exc:
            logger.warning("ktl.composite.failed", extra={"job_id": job.job_id, "error": str(exc)})
            return Failed(RenderError(f"Composite image could not be rendered: {exc}"))

        name = build_name(
            ArtifactKind.COMPOSITE, job.receipt_number, job.site_location, job.selected_item
        )
        logger.info(
            "ktl.composite.rendered",
            extra={"job_id": job.job_id, "artifact_name": name, "photos": len(photos)},
        )
        return Ok(Artifact(name=name, data=data, mime_type="image/jpeg", kind=ArtifactKind.COMPOSITE))

    def _render(self, photos: tuple[Photo, ...], details: StampDetails) -> bytes:
        images = [open_photo(photo) for photo in photos]
        columns, rows = grid_shape(len(images))

        cell_width = max(MIN_CELL_SIZE[0], *(image.width for image in images))
        cell_height = max(MIN_CELL_SIZE[1], *(image.height for image in images))
        full_width = columns * cell_width + (columns + 1) * CELL_PADDING
        full_height = rows * cell_height + (rows + 1) * CELL_PADDING
        scale = min(1.0, self._max_dimension / full_width, self._max_dimension / full_height)

        canvas_size = (
            min(self._max_dimension, max(1, round(full_width * scale))),
            min(self._max_dimension, max(1, round(full_height * scale))),
        )
        cell = (cell_width * scale, cell_height * scale)
        padding = CELL_PADDING * scale

        canvas = Image.new("RGB", canvas_size, "white")
        overlay = Image.new("RGBA", canvas_size, (0, 0, 0, 0))
        overlay_draw = ImageDraw.Draw(overlay)
        font_size = max(12, round(min(canvas_size) * 0.03))
        font = load_font(font_size, self._font_path)

        for index, (photo, image) in enumerate(zip(photos, images)):
            column, row = index % columns, index // columns
            cell_left = padding + column * (cell[0] + padding)
            cell_top = padding + row * (cell[1] + padding)

            ratio = min(cell[0] / image.width, cell[1] / image.height)
            fitted = image.resize(
                (max(1, round(image.width * ratio)), max(1, round(image.height * ratio))),
                Image.Resampling.LANCZOS,
            )
            offset = (
                round(cell_left + (cell[0] - fitted.width) / 2),
                round(cell_top + (cell[1] - fitted.height) / 2),
            )
            canvas.paste(fitted, offset)

            if photo.comment and photo.comment.strip():
                self._draw_comment(overlay_draw, photo.comment.strip(), font, font_size, cell_left, cell_top, cell[0])

        canvas = Image.alpha_composite(canvas.convert("RGBA"), overlay)
        stamped = draw_stamp_block(canvas, stamp_lines(details), font, font_size)

        buffer = io.BytesIO()
        stamped.save(buffer, format="JPEG", quality=self._quality)
        return buffer.getvalue()

    @staticmethod
    def _draw_comment(
        draw: ImageDraw.ImageDraw,
        comment: str,
        font: FontType,
        font_size: int,
        left: float,
        top: float,
        cell_width: float,
    ) -> None:
        padding = font_size * 0.5
        text = truncate_to_width(draw, comment, font, round(cell_width - 3 * padding))
        if not text:
            return
        width, _ = text_size(draw, text, font)
        box = (
            round(left + padding / 2),
            round(top + padding / 2),
            round(left + padding / 2 + width + 2 * padding),
            round(top + padding / 2 + font_size * 1.4 + padding / 2),
        )
        draw.rectangle(box, fill=COMMENT_BACKGROUND)
        draw.text(
            (round(box[0] + padding), round(box[1] + padding / 4)),
            drawable(text, font),
            font=font,
            fill=COMMENT_FOREGROUND,
        )


__all__ = ["CompositeImageComposer", "grid_shape", "stamp_details_for"]

"""Stamp job details onto photos."""

from __future__ import annotations

import io

from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError

from ..domain.models import Photo, StampDetails
from ..exceptions import RenderError
from .fonts import FontType, drawable, load_font, text_size

STAMP_BACKGROUND = (0, 0, 0, 178)
STAMP_FOREGROUND = (255, 255, 255, 255)
LINE_HEIGHT_RATIO = 1.4


def stamp_lines(details: StampDetails) -> list[str]:
    lines: list[str] = []
    if details.receipt_number.strip():
        lines.append(f"접수번호: {details.receipt_number.strip()}")
    if details.site_location.strip():
        lines.append(f"현장: {details.site_location.strip()}")
    if details.item.strip():
        lines.append(f"항목: {details.item.strip()}")
    if details.inspection_start_date.strip():
        lines.append(f"검사시작일: {details.inspection_start_date.strip()}")
    return lines


def open_photo(photo: Photo) -> Image.Image:
    """Decode ``photo`` upright in RGB."""

    try:
        with Image.open(io.BytesIO(photo.data)) as source:
            source.load()
            image = ImageOps.exif_transpose(source) or source
            return image.convert("RGB")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise RenderError(f"Photo {photo.name!r} could not be decoded: {exc}") from exc


def draw_stamp_block(
    image: Image.Image,
    lines: list[str],
    font: FontType,
    font_size: int,
) -> Image.Image:
    """Draw ``lines`` bottom-left on a translucent backing; returns RGB."""

    if not lines:
        return image.convert("RGB")

    base = image.convert("RGBA")
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    padding = font_size * 0.5
    line_height = font_size * LINE_HEIGHT_RATIO
    max_width = max(text_size(draw, line, font)[0] for line in lines)
    block_width = max_width + padding * 2
    block_height = len(lines) * line_height - (line_height - font_size) + padding
    left = padding / 2
    top = base.height - block_height - padding / 2

    draw.rectangle(
        [(round(left), round(top)), (round(left + block_width), round(top + block_height))],
        fill=STAMP_BACKGROUND,
    )
    for index, line in enumerate(lines):
        y = top + index * line_height + padding / 2
        draw.text((round(left + padding), round(y)), drawable(line, font), font=font, fill=STAMP_FOREGROUND)

    return Image.alpha_composite(base, overlay).convert("RGB")


def stamp_photo(photo: Photo, details: StampDetails, *, font_path: str | None = None) -> bytes:
    """Return ``photo`` as PNG bytes with the detail block stamped on it."""

    image = open_photo(photo)
    font_size = max(16, round(min(image.width / 35, image.height / 25)))
    font = load_font(font_size, font_path)
    stamped = draw_stamp_block(image, stamp_lines(details), font, font_size)

    buffer = io.BytesIO()
    stamped.save(buffer, format="PNG")
    return buffer.getvalue()


__all__ = ["draw_stamp_block", "open_photo", "stamp_lines", "stamp_photo"]

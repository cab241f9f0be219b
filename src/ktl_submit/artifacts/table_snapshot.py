"""Raster snapshot of the entry table.

:class:`TableSnapshotRenderer` is the contract any host can satisfy. The
bundled :class:`PillowTableSnapshotRenderer` draws the table headlessly; it
still waits for an explicit "render settled" condition (two successive layout
passes reporting the same geometry) before it rasterizes.
"""

from __future__ import annotations

import abc
import asyncio
import inspect
import io
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from PIL import Image, ImageDraw

from ..domain.models import Artifact, ArtifactKind, Entry, JobSnapshot
from ..domain.results import Failed, Ok, Skipped, StageResult
from ..exceptions import RenderError
from ..payload.payload_rules import dual_mode_rule, resolve_category
from .artifact_naming import build_name
from .fonts import FontType, drawable, load_font, text_size, truncate_to_width

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 800
DEFAULT_SCALE = 1.5
PLACEHOLDER = "-"

BACKGROUND = "#0f172a"
SURFACE = "#1e293b"
BORDER = "#334155"
TEXT = "#e2e8f0"
VALUE_TEXT = "#cbd5e1"
MUTED_TEXT = "#94a3b8"
ACCENT = "#38bdf8"

# CSS pixel metrics, multiplied by the scale factor when drawing.
_OUTER_PADDING = 24
_TITLE_FONT = 20
_TITLE_PADDING = (12, 16)
_TITLE_MARGIN = 24
_TABLE_FONT = 14
_CELL_PADDING = (10, 12)
_LINE_HEIGHT = 1.5
_RADIUS = 8
_ACCENT_WIDTH = 4


class TableSnapshotRenderer(abc.ABC):
    """Produce the ``datatable`` PNG for a job's entries."""

    @abc.abstractmethod
    async def render(
        self,
        entries: Sequence[Entry],
        job: JobSnapshot,
        width: int = DEFAULT_WIDTH,
    ) -> StageResult:
        """Return ``Ok`` with the PNG artifact, ``Skipped`` or ``Failed``."""


class UnmountedSnapshotRenderer(TableSnapshotRenderer):
    """Stand-in for hosts that cannot mount a renderer."""

    async def render(
        self,
        entries: Sequence[Entry],
        job: JobSnapshot,
        width: int = DEFAULT_WIDTH,
    ) -> StageResult:
        return Skipped("no snapshot renderer is mounted")


@dataclass(slots=True, frozen=True)
class TableContent:
    title: str
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    # Per column: "center" or "left".
    aligns: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class TableGeometry:
    canvas_width: int
    canvas_height: int
    title_height: int
    row_height: int
    column_widths: tuple[int, ...]


def build_table_content(entries: Sequence[Entry], job: JobSnapshot) -> TableContent:
    dual = dual_mode_rule(job.selected_item)
    category = resolve_category(job.selected_item, job.category)
    title = f"{category.value} 분석 데이터: {job.receipt_number} / {job.site_with_details}"

    if dual is None:
        value_headers: tuple[str, ...] = ("측정치",)
    else:
        value_headers = (f"{dual.primary_label} 측정치", f"{dual.secondary_label} 측정치")
    headers = ("No.", "구분", *value_headers, "최종 저장 시간")
    aligns = ("center", "left", *("center" for _ in value_headers), "center")

    rows = []
    for index, entry in enumerate(entries, start=1):
        values: tuple[str, ...] = (entry.value.strip() or PLACEHOLDER,)
        if dual is not None:
            values += ((entry.value_secondary or "").strip() or PLACEHOLDER,)
        rows.append((str(index), entry.identifier or "", *values, entry.time or PLACEHOLDER))
    return TableContent(title=title, headers=headers, rows=tuple(rows), aligns=aligns)


class PillowTableSnapshotRenderer(TableSnapshotRenderer):
    """Draw the entry table with Pillow in the dark report palette."""

    def __init__(
        self,
        *,
        scale: float = DEFAULT_SCALE,
        font_path: str | None = None,
        max_settle_passes: int = 4,
        yield_control: Callable[[float], Any] | None = None,
    ) -> None:
        self._scale = scale
        self._font_path = font_path
        self._max_settle_passes = max(2, max_settle_passes)
        self._yield = self._wrap_yield(yield_control)

    @staticmethod
    def _wrap_yield(
        yield_control: Callable[[float], Any] | None,
    ) -> Callable[[float], Awaitable[None]]:
        if yield_control is None:
            return asyncio.sleep

        async def _async_yield(seconds: float) -> None:
            result = yield_control(seconds)
            if inspect.isawaitable(result):
                await result

        return _async_yield

    async def render(
        self,
        entries: Sequence[Entry],
        job: JobSnapshot,
        width: int = DEFAULT_WIDTH,
    ) -> StageResult:
        entries = tuple(entries)
        if not any(entry.has_value for entry in entries):
            return Skipped("all entries are empty")

        content = build_table_content(entries, job)
        try:
            geometry = await self.wait_until_settled(content, width)
            data = self._rasterize(content, geometry)
        except RenderError as exc:
            logger.warning("ktl.snapshot.failed", extra={"job_id": job.job_id, "error": str(exc)})
            return Failed(exc)
        except (OSError, ValueError) as exc:
            logger.warning("ktl.snapshot.failed", extra={"job_id": job.job_id, "error": str(exc)})
            return Failed(RenderError(f"Table snapshot could not be rendered: {exc}"))

        name = build_name(
            ArtifactKind.DATATABLE, job.receipt_number, job.site_location, job.selected_item
        )
        logger.info(
            "ktl.snapshot.rendered",
            extra={"job_id": job.job_id, "artifact_name": name, "rows": len(entries)},
        )
        return Ok(Artifact(name=name, data=data, mime_type="image/png", kind=ArtifactKind.DATATABLE))

    async def wait_until_settled(self, content: TableContent, width: int) -> TableGeometry:
        """Repeat layout passes until two in a row agree."""

        previous: TableGeometry | None = None
        for _ in range(self._max_settle_passes):
            geometry = self.layout(content, width)
            if geometry == previous:
                return geometry
            previous = geometry
            await self._yield(0)
        raise RenderError(
            f"Table layout did not settle after {self._max_settle_passes} passes"
        )

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _px(self, css_pixels: float) -> int:
        return round(css_pixels * self._scale)

    def _fonts(self) -> tuple[FontType, FontType]:
        return (
            load_font(self._px(_TITLE_FONT), self._font_path),
            load_font(self._px(_TABLE_FONT), self._font_path),
        )

    def layout(self, content: TableContent, width: int) -> TableGeometry:
        title_font, table_font = self._fonts()
        scratch = ImageDraw.Draw(Image.new("RGB", (1, 1)))

        canvas_width = self._px(width)
        table_width = canvas_width - 2 * self._px(_OUTER_PADDING)
        cell_x = self._px(_CELL_PADDING[1])

        natural = [text_size(scratch, header, table_font)[0] + 2 * cell_x for header in content.headers]
        for row in content.rows:
            for column, cell in enumerate(row):
                natural[column] = max(natural[column], text_size(scratch, cell, table_font)[0] + 2 * cell_x)

        widths = _fit_columns(natural, table_width)
        row_height = self._px(_TABLE_FONT * _LINE_HEIGHT + 2 * _CELL_PADDING[0])
        title_height = self._px(_TITLE_FONT * _LINE_HEIGHT + 2 * _TITLE_PADDING[0])
        canvas_height = (
            2 * self._px(_OUTER_PADDING)
            + title_height
            + self._px(_TITLE_MARGIN)
            + row_height * (len(content.rows) + 1)
        )
        return TableGeometry(
            canvas_width=canvas_width,
            canvas_height=canvas_height,
            title_height=title_height,
            row_height=row_height,
            column_widths=tuple(widths),
        )

    # ------------------------------------------------------------------
    # Raster
    # ------------------------------------------------------------------
    def _rasterize(self, content: TableContent, geometry: TableGeometry) -> bytes:
        title_font, table_font = self._fonts()
        image = Image.new("RGB", (geometry.canvas_width, geometry.canvas_height), BACKGROUND)
        draw = ImageDraw.Draw(image)

        outer = self._px(_OUTER_PADDING)
        right = geometry.canvas_width - outer
        radius = self._px(_RADIUS)

        title_box = (outer, outer, right, outer + geometry.title_height)
        draw.rounded_rectangle(title_box, radius=radius, fill=SURFACE)
        draw.rectangle(
            (outer, outer, outer + self._px(_ACCENT_WIDTH), title_box[3]),
            fill=ACCENT,
        )
        title_left = outer + self._px(_ACCENT_WIDTH) + self._px(_TITLE_PADDING[1])
        title = truncate_to_width(draw, content.title, title_font, right - title_left - self._px(_TITLE_PADDING[1]))
        _draw_text(draw, title, title_font, (title_left, title_box[1], right, title_box[3]), "left", TEXT)

        table_top = title_box[3] + self._px(_TITLE_MARGIN)
        table_bottom = table_top + geometry.row_height * (len(content.rows) + 1)
        draw.rectangle((outer, table_top, right, table_top + geometry.row_height), fill=SURFACE)
        for index in range(len(content.rows)):
            if index % 2 == 0:
                top = table_top + geometry.row_height * (index + 1)
                draw.rectangle((outer, top, right, top + geometry.row_height), fill=SURFACE)

        cell_x = self._px(_CELL_PADDING[1])
        all_rows = (content.headers, *content.rows)
        for row_index, row in enumerate(all_rows):
            top = table_top + geometry.row_height * row_index
            if row_index:
                draw.line((outer, top, right, top), fill=BORDER, width=max(1, self._px(1)))
            left = outer
            for column, cell in enumerate(row):
                column_width = geometry.column_widths[column]
                text = truncate_to_width(draw, cell, table_font, column_width - 2 * cell_x)
                fill = TEXT
                if row_index:
                    if column == 0 or column == len(row) - 1:
                        fill = MUTED_TEXT
                    elif column >= 2:
                        fill = VALUE_TEXT
                box = (left + cell_x, top, left + column_width - cell_x, top + geometry.row_height)
                _draw_text(draw, text, table_font, box, content.aligns[column], fill)
                left += column_width

        draw.rounded_rectangle(
            (outer, table_top, right, table_bottom),
            radius=radius,
            outline=BORDER,
            width=max(1, self._px(1)),
        )

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


def _fit_columns(natural: list[int], total: int) -> list[int]:
    """Stretch or shrink the natural column widths to exactly ``total``."""

    widths = list(natural)
    extra = total - sum(widths)
    if extra >= 0:
        share, remainder = divmod(extra, len(widths))
        widths = [width + share for width in widths]
        widths[-1] += remainder
        return widths

    # Shrink the widest columns first; text is truncated to fit.
    deficit = -extra
    while deficit > 0:
        widest = max(range(len(widths)), key=lambda column: widths[column])
        step = min(deficit, max(1, widths[widest] // 10))
        if widths[widest] - step < 1:
            raise RenderError("Table does not fit the layout width")
        widths[widest] -= step
        deficit -= step
    return widths


def _draw_text(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: FontType,
    box: tuple[int, int, int, int],
    align: str,
    fill: str,
) -> None:
    if not text:
        return
    text = drawable(text, font)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    text_width, text_height = right - left, bottom - top
    if align == "center":
        x = box[0] + (box[2] - box[0] - text_width) / 2 - left
    else:
        x = box[0] - left
    y = box[1] + (box[3] - box[1] - text_height) / 2 - top
    draw.text((round(x), round(y)), text, font=font, fill=fill)


__all__ = [
    "DEFAULT_SCALE",
    "DEFAULT_WIDTH",
    "PillowTableSnapshotRenderer",
    "TableContent",
    "TableGeometry",
    "TableSnapshotRenderer",
    "UnmountedSnapshotRenderer",
    "build_table_content",
]

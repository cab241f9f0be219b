"""Font loading and text measurement for the Pillow renderers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import PIL
from PIL import ImageDraw, ImageFont

from ..exceptions import RenderError

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont

# Hangul capable fonts first; stamps and table headers are Korean.
_SYSTEM_CANDIDATES: tuple[str, ...] = (
    "/usr/share/fonts/truetype/nanum/NanumGothic.ttf",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/google-noto-cjk/NotoSansCJK-Regular.ttc",
    "/System/Library/Fonts/AppleSDGothicNeo.ttc",
    r"C:\Windows\Fonts\malgun.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
)


def _candidates() -> list[str]:
    pil_dir = Path(PIL.__file__).resolve().parent
    return [
        *_SYSTEM_CANDIDATES,
        str(pil_dir / "fonts" / "DejaVuSans.ttf"),
        str(pil_dir / "DejaVuSans.ttf"),
    ]


@lru_cache(maxsize=64)
def load_font(size_px: int, font_path: str | None = None) -> FontType:
    """Return a font of ``size_px`` pixels.

    An explicit ``font_path`` must load; otherwise the first available system
    font is used, then Pillow's built-in default.
    """

    size_px = max(1, int(size_px))
    if font_path is not None:
        try:
            return ImageFont.truetype(font_path, size_px)
        except OSError as exc:
            raise RenderError(f"Failed to load font from {font_path!r}: {exc}") from exc

    for candidate in _candidates():
        if not Path(candidate).is_file():
            continue
        try:
            return ImageFont.truetype(candidate, size_px)
        except OSError:
            continue
    return ImageFont.load_default(size=size_px)


def drawable(text: str, font: FontType) -> str:
    """Make ``text`` encodable by ``font``.

    Bitmap fonts only cover Latin-1; other characters become ``?``.
    """

    if isinstance(font, ImageFont.FreeTypeFont):
        return text
    return text.encode("latin-1", "replace").decode("latin-1")


def text_size(draw: ImageDraw.ImageDraw, text: str, font: FontType) -> tuple[int, int]:
    if not text:
        return 0, 0
    left, top, right, bottom = draw.textbbox((0, 0), drawable(text, font), font=font)
    return right - left, bottom - top


def truncate_to_width(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: FontType,
    max_width: int,
) -> str:
    """Cut ``text`` with an ellipsis so it fits ``max_width`` pixels."""

    if text_size(draw, text, font)[0] <= max_width:
        return text
    ellipsis = "…" if isinstance(font, ImageFont.FreeTypeFont) else "..."
    trimmed = text
    while trimmed and text_size(draw, trimmed + ellipsis, font)[0] > max_width:
        trimmed = trimmed[:-1]
    return trimmed + ellipsis if trimmed else ""


__all__ = ["FontType", "drawable", "load_font", "text_size", "truncate_to_width"]

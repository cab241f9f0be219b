"""Deterministic, filesystem-safe artifact names.

The same inputs always give the same name, so names shown in a preflight
preview are exactly the names used on send.
"""

from __future__ import annotations

import re

from ..domain.models import ArtifactKind

_RESERVED = re.compile(r'[/\\:?*"<>|\x00-\x1f\x7f]')
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")
_REPEATED_DOT = re.compile(r"\.{2,}")
_COMPOSITE_NAME = re.compile(r"_composite(?:_(\d+))?\.(?:jpg|jpeg|png)$", re.IGNORECASE)

_KNOWN_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif"}
_MIME_EXTENSIONS = (
    ("image/jpeg", "jpg"),
    ("image/jpg", "jpg"),
    ("image/png", "png"),
    ("image/webp", "webp"),
    ("image/gif", "gif"),
)

FALLBACK_BASE = "untitled"


def sanitize_component(component: str | None) -> str:
    """Strip reserved characters and collapse repeated separators."""

    if not component:
        return ""
    cleaned = _RESERVED.sub("", str(component).strip())
    cleaned = _REPEATED_UNDERSCORE.sub("_", cleaned)
    cleaned = _REPEATED_DOT.sub(".", cleaned)
    return cleaned.strip("._ ")


def base_name(receipt_number: str, site: str, item: str) -> str:
    item_component = (item or "").replace("/", "_")
    parts = [
        sanitize_component(part)
        for part in (receipt_number, site, item_component)
    ]
    joined = "_".join(part for part in parts if part)
    joined = _REPEATED_UNDERSCORE.sub("_", joined)
    return joined or FALLBACK_BASE


def build_name(
    kind: ArtifactKind | str,
    receipt_number: str,
    site: str,
    item: str,
    index: int | None = None,
    *,
    extension: str = "png",
) -> str:
    """Return the artifact filename for ``kind``; never raises on odd input."""

    base = base_name(receipt_number, site, item)
    kind = ArtifactKind(kind)
    if kind is ArtifactKind.DATATABLE:
        return f"{base}_datatable.png"
    if kind is ArtifactKind.COMPOSITE:
        if index is None:
            return f"{base}_composite.jpg"
        return f"{base}_composite_{index:02d}.jpg"
    if kind is ArtifactKind.ARCHIVE:
        return f"{base}_Compression.zip"
    ext = sanitize_component(extension).lower() or "png"
    return f"{base}_{index if index is not None else 1}.{ext}"


def extension_for_mime(mime_type: str | None) -> str:
    lowered = (mime_type or "").lower()
    for prefix, ext in _MIME_EXTENSIONS:
        if prefix in lowered:
            return ext
    return "bin"


def safe_name_with_ext(original_name: str, mime_type: str) -> str:
    """Safe member name for a raw photo, keeping a usable image extension."""

    stem, dot, ext = (original_name or "").rpartition(".")
    if not dot or not stem:
        stem, ext = original_name or "", ""
    ext = ext.lower()
    if ext in _KNOWN_EXTENSIONS:
        ext = "jpg" if ext == "jpeg" else ext
    else:
        ext = extension_for_mime(mime_type)
    if ext == "bin":
        ext = "jpg"
    return f"{sanitize_component(stem) or 'image'}.{ext}"


def classify_name(name: str) -> ArtifactKind | None:
    """Recover the artifact kind from a produced filename."""

    lowered = name.lower()
    if _COMPOSITE_NAME.search(name):
        return ArtifactKind.COMPOSITE
    if lowered.endswith(".zip"):
        return ArtifactKind.ARCHIVE
    if "datatable" in lowered and lowered.endswith(".png"):
        return ArtifactKind.DATATABLE
    return None


def composite_number(name: str) -> int:
    match = _COMPOSITE_NAME.search(name)
    if match is None or match.group(1) is None:
        return 0
    return int(match.group(1))


__all__ = [
    "FALLBACK_BASE",
    "base_name",
    "build_name",
    "classify_name",
    "composite_number",
    "extension_for_mime",
    "safe_name_with_ext",
    "sanitize_component",
]

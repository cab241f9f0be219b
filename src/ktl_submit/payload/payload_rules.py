"""Declarative identifier rules of the KTL labview item schema.

Everything the mapper needs to know about identifiers lives here as data:
channel suffixes of dual-mode items, reserved "response" identifiers, section
dividers, repeated-identifier re-keying and the fixed artifact keys. The
mapper itself only walks these tables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from ..domain.models import JobCategory

# Leading numeric token: optional sign, digits, optional decimal fraction.
NUMERIC_TOKEN = re.compile(r"[+-]?\d+(?:\.\d+)?")

# Values starting with this marker are encoded multi-component readings.
COMPOSITE_VALUE_MARKER = "["


@dataclass(slots=True, frozen=True)
class DualModeRule:
    """Second value channel of an item such as ``TU/CL``."""

    item: str
    primary_label: str
    secondary_label: str
    secondary_suffix: str


DUAL_MODE_ITEMS: Mapping[str, DualModeRule] = {
    "TU/CL": DualModeRule("TU/CL", primary_label="TU", secondary_label="Cl", secondary_suffix="C"),
    "TN/TP": DualModeRule("TN/TP", primary_label="TN", secondary_label="TP", secondary_suffix="P"),
}


@dataclass(slots=True, frozen=True)
class ResponseRule:
    """Reserved identifier prefix whose values are bracketed component lists."""

    prefix: str
    component_keys: tuple[str, ...]


RESPONSE_RULES: tuple[ResponseRule, ...] = (
    ResponseRule("응답", ("응답시간_초", "응답시간_분", "응답시간_길이")),
)

# Section separators of the drinking water sheet; they never carry readings.
DIVIDER_IDENTIFIERS = frozenset({"Z 2시간 시작 - 종료", "드리프트 완료", "반복성 완료"})

DRINKING_WATER_ITEMS = frozenset({"TU", "Cl", "TU/CL"})

# Repeated identifiers are re-keyed in order of appearance (second Z1 -> Z3).
IDENTIFIER_REMAPPING: Mapping[str, tuple[str, ...]] = {
    "Z1": ("Z1", "Z3", "Z5", "Z7"),
    "Z2": ("Z2", "Z4", "Z6"),
    "S1": ("S1", "S3", "S5", "S7"),
    "S2": ("S2", "S4", "S6"),
    "현장1": ("현장1", "현장2"),
    "Z1P": ("Z1P", "Z3P", "Z5P", "Z7P"),
    "Z2P": ("Z2P", "Z4P", "Z6P"),
    "S1P": ("S1P", "S3P", "S5P", "S7P"),
    "S2P": ("S2P", "S4P", "S6P"),
    "현장1P": ("현장1P", "현장2P"),
}
REMAPPED_CATEGORIES = frozenset({JobCategory.WATER_QUALITY, JobCategory.FIELD_COUNT})

# Default identifier-naming order used to pair identifiers with photo artifacts.
PHOTO_KEY_ORDER: tuple[str, ...] = (
    "M1", "M2", "M3",
    "Z1", "Z2",
    "S1", "S2", "S3", "S4", "S5", "S6", "S7", "S8", "S9", "S10",
)
PHOTO_LINK_SUFFIX = "_사진"

KEY_FIRST_COMPOSITE = "PHOTO_사진"
KEY_ARCHIVE = "PHOTO_압축"
KEY_DATATABLE = "PHOTO_데이터테이블"

FIELD_DECIMAL_PLACES = "소수점"
FIELD_DECIMAL_PLACES_SECONDARY = "소수점C"
FIELD_OPERATOR = "시험자"
FIELD_SITE = "현장"
FIELD_ADDRESS = "주소"
FIELD_SEQUENCE = "sequence_code"

WIRE_KEY_ORDER: tuple[str, ...] = (
    "LABVIEW_GUBN",
    "LABVIEW_DESC",
    "LABVIEW_RECEIPTNO",
    "UPDATE_USER",
    "LABVIEW_ITEM",
)


def dual_mode_rule(item: str) -> DualModeRule | None:
    return DUAL_MODE_ITEMS.get((item or "").strip())


def response_rule(identifier: str | None) -> ResponseRule | None:
    if not identifier:
        return None
    for rule in RESPONSE_RULES:
        if identifier.startswith(rule.prefix):
            return rule
    return None


def is_divider(identifier: str | None) -> bool:
    return identifier in DIVIDER_IDENTIFIERS


def resolve_category(item: str, explicit: JobCategory | None = None) -> JobCategory:
    """Pick the record category: explicit value first, then the item group."""

    if explicit is not None:
        return explicit
    if (item or "").strip() in DRINKING_WATER_ITEMS:
        return JobCategory.DRINKING_WATER
    return JobCategory.WATER_QUALITY


def leading_numeric_token(value: str | None) -> str | None:
    if not value:
        return None
    match = NUMERIC_TOKEN.match(value.strip())
    return match.group(0) if match else None


def is_composite_value(value: str | None) -> bool:
    return bool(value) and value.strip().startswith(COMPOSITE_VALUE_MARKER)


def photo_naming_order(identifiers: Iterable[str]) -> tuple[str, ...]:
    """Order allow-listed identifiers for photo linking.

    Identifiers known to :data:`PHOTO_KEY_ORDER` keep that order; any others
    follow in sorted order.
    """

    wanted = set(identifiers)
    known = tuple(key for key in PHOTO_KEY_ORDER if key in wanted)
    return known + tuple(sorted(wanted - set(known)))


__all__ = [
    "COMPOSITE_VALUE_MARKER",
    "DIVIDER_IDENTIFIERS",
    "DRINKING_WATER_ITEMS",
    "DUAL_MODE_ITEMS",
    "DualModeRule",
    "IDENTIFIER_REMAPPING",
    "KEY_ARCHIVE",
    "KEY_DATATABLE",
    "KEY_FIRST_COMPOSITE",
    "NUMERIC_TOKEN",
    "PHOTO_KEY_ORDER",
    "PHOTO_LINK_SUFFIX",
    "REMAPPED_CATEGORIES",
    "RESPONSE_RULES",
    "ResponseRule",
    "WIRE_KEY_ORDER",
    "dual_mode_rule",
    "is_composite_value",
    "is_divider",
    "leading_numeric_token",
    "photo_naming_order",
    "resolve_category",
    "response_rule",
]

"""Editing rules for transcribed entries.

Two rules apply to every edit: ``time`` is stamped when an entry first gets a
value and cleared when both values are emptied, and values are rounded to the
job's decimal places when the inspector leaves the field ("blur").
"""

from __future__ import annotations

import math
import re
from dataclasses import replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, localcontext
from enum import StrEnum
from typing import Callable

from ..domain.models import Entry, Job
from ..payload.payload_rules import dual_mode_rule, response_rule

# Same prefix grammar as JavaScript ``parseFloat``.
_FLOAT_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M"


class ValueChannel(StrEnum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


def current_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def format_value(value: str | None, places: int) -> str:
    """Round ``value`` to ``places`` decimals like ``Number(v).toFixed(p)``.

    Empty input gives ``""`` and input without a numeric prefix is returned
    unchanged. Rounding is half away from zero on the exact binary value, so
    the function is idempotent.
    """

    if value is None or not value.strip():
        return ""
    match = _FLOAT_PREFIX.match(value.strip())
    if match is None:
        return value
    number = float(match.group(0))
    if not math.isfinite(number):
        return value
    places = max(0, int(places))
    with localcontext() as ctx:
        ctx.prec = 400 + places
        rounded = Decimal(number).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return format(rounded, "f")


def set_entry_value(
    entry: Entry,
    channel: ValueChannel,
    new_value: str,
    *,
    clock: Callable[[], str] = current_timestamp,
) -> Entry:
    """Return ``entry`` with one value replaced and ``time`` kept consistent.

    The secondary channel carries no timestamp of its own; both channels share
    the entry's single ``time``.
    """

    if channel is ValueChannel.PRIMARY:
        updated = replace(entry, value=new_value)
    else:
        updated = replace(entry, value_secondary=new_value)

    if updated.has_value:
        if not entry.time:
            updated = replace(updated, time=clock())
    else:
        updated = replace(updated, time="")
    return updated


def format_entry_on_blur(job: Job, entry: Entry, channel: ValueChannel) -> Entry:
    """Apply decimal formatting when the inspector leaves a value field.

    Response-time entries hold bracketed component lists and are left as is;
    the secondary channel is formatted only for dual-mode items.
    """

    if response_rule(entry.identifier) is not None:
        return entry
    if channel is ValueChannel.PRIMARY:
        return replace(entry, value=format_value(entry.value, job.decimal_places))
    if dual_mode_rule(job.selected_item) is None:
        return entry
    places = job.decimal_places_secondary
    if places is None:
        places = job.decimal_places
    return replace(entry, value_secondary=format_value(entry.value_secondary, places))


def clear_entry_values(entry: Entry) -> Entry:
    secondary = "" if entry.value_secondary is not None else None
    return replace(entry, value="", value_secondary=secondary, time="")


__all__ = [
    "TIMESTAMP_FORMAT",
    "ValueChannel",
    "clear_entry_values",
    "current_timestamp",
    "format_entry_on_blur",
    "format_value",
    "set_entry_value",
]

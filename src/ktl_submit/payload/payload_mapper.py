"""Map job entries and produced artifact names to the KTL wire schema."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from ..artifacts.artifact_naming import classify_name, composite_number
from ..domain.models import ArtifactKind, Entry, JobCategory, JobSnapshot, Payload
from . import payload_rules as rules


@dataclass(slots=True, frozen=True)
class MappingContext:
    """Job metadata the mapper needs besides the entries themselves."""

    receipt_number: str
    site_location: str
    operator: str
    decimal_places: int | None = None
    decimal_places_secondary: int | None = None
    category: JobCategory | None = None
    site_for_description: str | None = None
    naming_identifiers: Sequence[str] = rules.PHOTO_KEY_ORDER
    secondary_identifiers: frozenset[str] = field(default_factory=frozenset)
    address: str | None = None
    identifier_sequence: str | None = None

    @classmethod
    def from_snapshot(
        cls,
        snapshot: JobSnapshot,
        *,
        operator: str,
        secondary_identifiers: Iterable[str] = (),
        naming_identifiers: Sequence[str] | None = None,
        address: str | None = None,
    ) -> "MappingContext":
        """Build the context for ``snapshot``.

        Without an explicit ``naming_identifiers`` list, the allow-listed
        identifiers in photo key order pair with the produced composites.
        """

        allow_list = frozenset(secondary_identifiers)
        if naming_identifiers:
            naming = tuple(naming_identifiers)
        else:
            naming = rules.photo_naming_order(allow_list) or rules.PHOTO_KEY_ORDER
        return cls(
            receipt_number=snapshot.receipt_number,
            site_location=snapshot.site_with_details,
            operator=operator,
            decimal_places=snapshot.decimal_places,
            decimal_places_secondary=snapshot.decimal_places_secondary,
            category=snapshot.category,
            naming_identifiers=naming,
            secondary_identifiers=allow_list,
            address=address,
        )


def map_payload(
    entries: Sequence[Entry],
    item: str,
    artifact_names: Sequence[str],
    context: MappingContext,
) -> Payload:
    """Build the immutable :class:`Payload` for one submission attempt.

    Pure: no I/O, and the same arguments always give an equal payload.
    """

    dual = rules.dual_mode_rule(item)
    category = rules.resolve_category(item, context.category)
    items: dict[str, str] = {}
    counters: dict[str, int] = {}
    linked: list[str] = []

    for entry in entries:
        identifier = (entry.identifier or "").strip()
        if not identifier or rules.is_divider(identifier):
            continue

        response = rules.response_rule(identifier)
        if response is not None and rules.is_composite_value(entry.value):
            _map_composite(items, identifier, entry.value, response, suffix="")
        else:
            token = rules.leading_numeric_token(entry.value)
            if token is not None:
                items[_next_key(identifier, category, counters)] = token

        if dual is None or identifier not in context.secondary_identifiers:
            continue
        secondary = entry.value_secondary
        secondary_key = f"{identifier}{dual.secondary_suffix}"
        if response is not None and rules.is_composite_value(secondary):
            _map_composite(items, secondary_key, secondary, response, suffix=dual.secondary_suffix)
        else:
            token = rules.leading_numeric_token(secondary)
            if token is None:
                continue
            items[secondary_key] = token
        if identifier not in linked:
            linked.append(identifier)

    _map_artifacts(items, artifact_names, linked, context.naming_identifiers)

    fields = _scalar_fields(context, dual is not None)
    return Payload(
        receipt_number=context.receipt_number,
        category_tag=f"{category.value}_{(item or '').replace('/', '_')}",
        operator=context.operator,
        comment=_description(category, item, context),
        items=MappingProxyType(items),
        fields=MappingProxyType(fields),
    )


def _next_key(identifier: str, category: JobCategory, counters: dict[str, int]) -> str:
    if category not in rules.REMAPPED_CATEGORIES:
        return identifier
    targets = rules.IDENTIFIER_REMAPPING.get(identifier)
    if not targets:
        return identifier
    count = counters.get(identifier, 0)
    counters[identifier] = count + 1
    return targets[count] if count < len(targets) else identifier


def _map_composite(
    items: dict[str, str],
    key: str,
    raw: str,
    rule: rules.ResponseRule,
    *,
    suffix: str,
) -> None:
    value = raw.strip()
    items[key] = value
    try:
        components = json.loads(value)
    except ValueError:
        return
    if not isinstance(components, list):
        return
    for component_key, component in zip(rule.component_keys, components):
        text = "" if component is None else str(component).strip()
        if text:
            items[f"{component_key}{suffix}"] = text


def _map_artifacts(
    items: dict[str, str],
    artifact_names: Sequence[str],
    linked: Sequence[str],
    naming_identifiers: Sequence[str],
) -> None:
    composites: list[str] = []
    archive: str | None = None
    datatable: str | None = None
    for name in artifact_names:
        kind = classify_name(name)
        if kind is ArtifactKind.COMPOSITE:
            composites.append(name)
        elif kind is ArtifactKind.ARCHIVE and archive is None:
            archive = name
        elif kind is ArtifactKind.DATATABLE and datatable is None:
            datatable = name
    composites.sort(key=composite_number)

    naming = list(naming_identifiers)
    for identifier in linked:
        if identifier not in naming:
            continue
        position = naming.index(identifier)
        if position < len(composites):
            items[f"{identifier}{rules.PHOTO_LINK_SUFFIX}"] = composites[position]

    if composites:
        items[rules.KEY_FIRST_COMPOSITE] = composites[0]
    if archive:
        items[rules.KEY_ARCHIVE] = archive
    if datatable:
        items[rules.KEY_DATATABLE] = datatable


def _scalar_fields(context: MappingContext, dual_mode: bool) -> dict[str, str]:
    fields: dict[str, str] = {}
    if context.identifier_sequence:
        fields[rules.FIELD_SEQUENCE] = context.identifier_sequence
    if context.decimal_places is not None and context.decimal_places >= 0:
        fields[rules.FIELD_DECIMAL_PLACES] = str(context.decimal_places)
    if (
        dual_mode
        and context.decimal_places_secondary is not None
        and context.decimal_places_secondary >= 0
    ):
        fields[rules.FIELD_DECIMAL_PLACES_SECONDARY] = str(context.decimal_places_secondary)
    if context.operator:
        fields[rules.FIELD_OPERATOR] = context.operator
    if context.site_location:
        fields[rules.FIELD_SITE] = context.site_location
    if context.address:
        fields[rules.FIELD_ADDRESS] = context.address
    return fields


def _description(category: JobCategory, item: str, context: MappingContext) -> str:
    site = context.site_for_description or context.site_location
    if category is JobCategory.DRINKING_WATER and " / " in site:
        parts = [part.strip() for part in site.split(" / ") if part.strip()]
        if len(parts) > 1:
            site = f"{parts[0]}_({' / '.join(parts[1:])})"
    return f"{category.value} (항목: {item}, 현장: {site})"


def to_wire_envelope(payload: Payload) -> dict[str, Any]:
    """Return the ``/env`` request body in the fixed KTL key order."""

    values: Mapping[str, Any] = {
        "LABVIEW_GUBN": payload.category_tag,
        "LABVIEW_DESC": json.dumps({"comment": payload.comment}, ensure_ascii=False),
        "LABVIEW_RECEIPTNO": payload.receipt_number,
        "UPDATE_USER": payload.operator,
        "LABVIEW_ITEM": json.dumps(payload.item_object(), ensure_ascii=False),
    }
    return {key: values[key] for key in rules.WIRE_KEY_ORDER}


def render_preview(payload: Payload) -> str:
    """Pretty JSON of the wire envelope for preflight display."""

    return json.dumps(to_wire_envelope(payload), ensure_ascii=False, indent=2)


__all__ = ["MappingContext", "map_payload", "render_preview", "to_wire_envelope"]

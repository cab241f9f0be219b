from __future__ import annotations

import json

import pytest

from src.ktl_submit.domain.models import Entry, Job, JobCategory
from src.ktl_submit.payload.payload_mapper import (
    MappingContext,
    map_payload,
    render_preview,
    to_wire_envelope,
)
from src.ktl_submit.payload.payload_rules import WIRE_KEY_ORDER


def _context(**overrides) -> MappingContext:
    values = {
        "receipt_number": "25-000123-01-1",
        "site_location": "정수장",
        "operator": "홍길동",
        "decimal_places": 2,
    }
    values.update(overrides)
    return MappingContext(**values)


def _entry(identifier, value="", secondary=None, entry_id=None):
    return Entry(
        id=entry_id or f"id-{identifier}-{value}",
        identifier=identifier,
        time="2025-03-01T09:00" if value or secondary else "",
        value=value,
        value_secondary=secondary,
    )


def test_numeric_entry_maps_under_identifier():
    payload = map_payload([_entry("Z1", "1.23")], "TU", [], _context())

    assert dict(payload.items) == {"Z1": "1.23"}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1.5", "1.5"),
        (" -3.25 ", "-3.25"),
        ("+7", "+7"),
        ("12abc", "12"),
        ("0.5 mg/L", "0.5"),
        ("abc", None),
        ("", None),
        ("N/A", None),
        (".5", None),
    ],
)
def test_identifier_maps_iff_leading_numeric_token(value, expected):
    payload = map_payload([_entry("M1", value)], "COD", [], _context())

    assert payload.items.get("M1") == expected
    assert ("M1" in payload.items) is (expected is not None)


def test_entries_without_identifier_or_dividers_never_map():
    entries = [
        _entry(None, "1.0"),
        _entry("", "2.0"),
        _entry("드리프트 완료", "3.0"),
    ]

    payload = map_payload(entries, "TU", [], _context())

    assert dict(payload.items) == {}


def test_response_composite_value_is_kept_verbatim_and_expanded():
    payload = map_payload([_entry("응답", "[10, 2, 30]")], "TU", [], _context())

    assert payload.items["응답"] == "[10, 2, 30]"
    assert payload.items["응답시간_초"] == "10"
    assert payload.items["응답시간_분"] == "2"
    assert payload.items["응답시간_길이"] == "30"


def test_bracket_value_outside_response_prefix_is_dropped():
    payload = map_payload([_entry("Z1", "[1, 2]")], "TU", [], _context())

    assert "Z1" not in payload.items


def test_unparseable_response_value_still_maps_verbatim():
    payload = map_payload([_entry("응답", "[10초")], "TU", [], _context())

    assert dict(payload.items) == {"응답": "[10초"}


def test_repeated_identifiers_are_rekeyed_in_water_quality():
    entries = [_entry("Z1", "1"), _entry("Z1", "2"), _entry("Z1", "3"), _entry("S1", "4")]

    payload = map_payload(entries, "COD", [], _context())

    assert dict(payload.items) == {"Z1": "1", "Z3": "2", "Z5": "3", "S1": "4"}


def test_repeated_identifiers_are_not_rekeyed_for_drinking_water():
    entries = [_entry("Z1", "1"), _entry("Z1", "2")]

    payload = map_payload(entries, "TU", [], _context())

    assert dict(payload.items) == {"Z1": "2"}


def test_secondary_value_ignored_without_allow_list():
    entry = _entry("Z1", "10", secondary="0.5")

    payload = map_payload([entry], "TU/CL", [], _context())

    assert dict(payload.items) == {"Z1": "10"}


def test_allow_listed_secondary_maps_and_links_photo_by_position():
    entries = [_entry("Z2", "10", secondary="0.5"), _entry("Z1", "11", secondary="0.7")]
    names = [
        "R_S_TU_CL_composite_02.jpg",
        "R_S_TU_CL_Compression.zip",
        "R_S_TU_CL_composite_01.jpg",
        "R_S_TU_CL_datatable.png",
    ]
    context = _context(
        secondary_identifiers=frozenset({"Z1", "Z2"}),
        naming_identifiers=("Z1", "Z2"),
    )

    payload = map_payload(entries, "TU/CL", names, context)

    assert payload.items["Z1C"] == "0.7"
    assert payload.items["Z2C"] == "0.5"
    assert payload.items["Z1_사진"] == "R_S_TU_CL_composite_01.jpg"
    assert payload.items["Z2_사진"] == "R_S_TU_CL_composite_02.jpg"
    assert payload.items["PHOTO_사진"] == "R_S_TU_CL_composite_01.jpg"
    assert payload.items["PHOTO_압축"] == "R_S_TU_CL_Compression.zip"
    assert payload.items["PHOTO_데이터테이블"] == "R_S_TU_CL_datatable.png"


def test_linking_without_matching_artifact_position_is_skipped():
    context = _context(secondary_identifiers=frozenset({"Z2"}), naming_identifiers=("Z1", "Z2"))

    payload = map_payload(
        [_entry("Z2", "1", secondary="2")], "TU/CL", ["R_S_TU_CL_composite.jpg"], context
    )

    assert payload.items["Z2C"] == "2"
    assert "Z2_사진" not in payload.items


def test_scalar_fields_and_envelope_scalars_copy_through():
    context = _context(decimal_places_secondary=3, address="서울시 중구")

    payload = map_payload([], "TU/CL", [], context)

    assert dict(payload.items) == {}
    assert dict(payload.fields) == {
        "소수점": "2",
        "소수점C": "3",
        "시험자": "홍길동",
        "현장": "정수장",
        "주소": "서울시 중구",
    }
    assert payload.receipt_number == "25-000123-01-1"
    assert payload.operator == "홍길동"
    assert payload.category_tag == "먹는물_TU_CL"
    assert payload.comment == "먹는물 (항목: TU/CL, 현장: 정수장)"


def test_explicit_category_wins_over_item_group():
    payload = map_payload([], "TU", [], _context(category=JobCategory.FIELD_COUNT))

    assert payload.category_tag == "현장계수_TU"
    assert payload.comment.startswith("현장계수 (항목: TU")


def test_drinking_water_comment_groups_site_parts():
    payload = map_payload([], "Cl", [], _context(site_location="정수장 / 1호기 / 출구"))

    assert payload.comment == "먹는물 (항목: Cl, 현장: 정수장_(1호기 / 출구))"


def test_mapping_is_pure():
    entries = [_entry("Z1", "1.5"), _entry("응답", "[1,2,3]")]
    context = _context()

    first = map_payload(entries, "COD", ["R_datatable.png"], context)
    second = map_payload(entries, "COD", ["R_datatable.png"], context)

    assert first.item_object() == second.item_object()
    assert to_wire_envelope(first) == to_wire_envelope(second)


def test_payload_is_read_only():
    payload = map_payload([_entry("Z1", "1")], "COD", [], _context())

    with pytest.raises(TypeError):
        payload.items["Z2"] = "2"  # type: ignore[index]


def test_wire_envelope_key_order_and_encoding():
    payload = map_payload([_entry("Z1", "1.23")], "COD", ["R_Compression.zip"], _context())

    envelope = payload.to_wire()

    assert tuple(envelope) == WIRE_KEY_ORDER
    assert envelope["LABVIEW_GUBN"] == "수질_COD"
    assert envelope["LABVIEW_RECEIPTNO"] == "25-000123-01-1"
    assert envelope["UPDATE_USER"] == "홍길동"
    assert json.loads(envelope["LABVIEW_DESC"]) == {"comment": "수질 (항목: COD, 현장: 정수장)"}
    item = json.loads(envelope["LABVIEW_ITEM"])
    assert item["Z1"] == "1.23"
    assert item["PHOTO_압축"] == "R_Compression.zip"
    assert item["시험자"] == "홍길동"
    assert "홍길동" in envelope["LABVIEW_ITEM"]


def test_render_preview_is_pretty_json_of_envelope():
    payload = map_payload([_entry("Z1", "1")], "COD", [], _context())

    preview = render_preview(payload)

    assert json.loads(preview) == to_wire_envelope(payload)
    assert preview.startswith('{\n  "LABVIEW_GUBN"')


def test_context_orders_allow_list_for_photo_links_by_default():
    snapshot = Job(id="j", receipt_number="R", site_location="S", selected_item="TU/CL").snapshot()

    context = MappingContext.from_snapshot(snapshot, operator="op", secondary_identifiers=["S1", "Z2", "X9", "M1"])
    payload = map_payload(
        [_entry("Z2", "1", secondary="2")],
        "TU/CL",
        ["R_S_TU_CL_composite_01.jpg", "R_S_TU_CL_composite_02.jpg"],
        context,
    )

    assert context.naming_identifiers == ("M1", "Z2", "S1", "X9")
    assert payload.items["Z2_사진"] == "R_S_TU_CL_composite_02.jpg"


def test_context_keeps_explicit_naming_list():
    snapshot = Job(id="j", receipt_number="R", site_location="S", selected_item="TU/CL").snapshot()

    context = MappingContext.from_snapshot(
        snapshot, operator="op", secondary_identifiers=["Z1"], naming_identifiers=["Z2", "Z1"]
    )

    assert context.naming_identifiers == ("Z2", "Z1")

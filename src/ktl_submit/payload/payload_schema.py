"""JSON Schema validation of the KTL ``/env`` envelope."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from jsonschema import Draft202012Validator

from ..exceptions import ValidationError

_SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "ktl_envelope.json"


class EnvelopeValidator:
    """Validate ``/env`` envelopes against the KTL contract before sending."""

    def __init__(self, schema_path: Path | None = None) -> None:
        self._schema_path = schema_path or _SCHEMA_PATH
        self._validator: Draft202012Validator | None = None
        self._item_validator: Draft202012Validator | None = None
        self._description_validator: Draft202012Validator | None = None

    def _ensure_validator(self) -> None:
        if self._validator is not None:
            return

        try:
            raw_schema = self._schema_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise RuntimeError(
                "KTL envelope schema is not available; reinstall the package data."
            ) from exc

        schema = json.loads(raw_schema)
        definitions = schema.get("$defs", {})
        self._validator = Draft202012Validator(schema)
        self._item_validator = Draft202012Validator(definitions["item"])
        self._description_validator = Draft202012Validator(definitions["description"])

    def validate(self, envelope: Mapping[str, Any]) -> None:
        self._ensure_validator()
        assert self._validator is not None  # satisfy type-checkers
        errors = sorted(self._validator.iter_errors(dict(envelope)), key=lambda err: list(err.path))
        if errors:
            details = "; ".join(_format_error(error) for error in errors)
            raise ValidationError(f"KTL envelope is invalid: {details}")

        self._validate_embedded(envelope, "LABVIEW_ITEM", self._item_validator)
        self._validate_embedded(envelope, "LABVIEW_DESC", self._description_validator)

    @staticmethod
    def _validate_embedded(
        envelope: Mapping[str, Any],
        key: str,
        validator: Draft202012Validator | None,
    ) -> None:
        assert validator is not None
        try:
            decoded = json.loads(envelope[key])
        except ValueError as exc:
            raise ValidationError(f"KTL envelope field {key} is not valid JSON") from exc
        errors = sorted(validator.iter_errors(decoded), key=lambda err: list(err.path))
        if errors:
            details = "; ".join(_format_error(error) for error in errors)
            raise ValidationError(f"KTL envelope field {key} is invalid: {details}")


def _format_error(error: Any) -> str:
    location = "/".join(str(part) for part in error.path) or "<root>"
    return f"{location}: {error.message}"


__all__ = ["EnvelopeValidator"]

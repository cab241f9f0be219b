"""KTL wire schema mapping."""

from .payload_mapper import MappingContext, map_payload, render_preview, to_wire_envelope
from .payload_schema import EnvelopeValidator

__all__ = [
    "EnvelopeValidator",
    "MappingContext",
    "map_payload",
    "render_preview",
    "to_wire_envelope",
]

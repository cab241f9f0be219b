"""Job store and entry editing rules."""

from .entry_editing import ValueChannel, format_value
from .jobs_repository import JobRepository

__all__ = ["JobRepository", "ValueChannel", "format_value"]

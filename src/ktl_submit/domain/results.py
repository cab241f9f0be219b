"""Result variants returned by the artifact generation stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .models import Artifact


@dataclass(slots=True, frozen=True)
class Ok:
    artifact: Artifact


@dataclass(slots=True, frozen=True)
class Skipped:
    reason: str


@dataclass(slots=True, frozen=True)
class Failed:
    error: Exception


StageResult = Union[Ok, Skipped, Failed]


__all__ = ["Failed", "Ok", "Skipped", "StageResult"]

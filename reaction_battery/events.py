from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from .cognitive_core import Phase


class PresentationEventType(str, Enum):
    ONSET = "onset"
    OFFSET = "offset"
    PHASE_CHANGE = "phase_change"


@dataclass(frozen=True, slots=True)
class PresentationEvent:
    type: PresentationEventType
    at_s: float
    phase: Phase
    cell: int | None = None


@dataclass(frozen=True, slots=True)
class ResponseEvent:
    """One pointer response, stamped by the engine when it arrives."""

    cell: int
    at_s: float
    wall_ms: int
    x: float | None = None
    y: float | None = None

    @property
    def has_pointer(self) -> bool:
        return self.x is not None and self.y is not None


class EventKind(str, Enum):
    START = "START"
    STIMULUS = "STIMULUS"
    SEQ_PRESENTED = "SEQ_PRESENTED"
    SET_START = "SET_START"
    CENTRAL_STIM = "CENTRAL_STIM"
    PERIPH_STIM = "PERIPH_STIM"
    HIT = "HIT"
    ERROR = "ERROR"
    ERROR_EMPTY = "ERROR_EMPTY"
    MISS = "MISS"
    ADAPT = "ADAPT"
    BLOCK_END = "BLOCK_END"
    END = "END"


@dataclass(frozen=True, slots=True)
class EngineEvent:
    """Fire-and-forget notification handed to the host's ``emit_event``."""

    type: EventKind
    ts: int
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "ts": int(self.ts), "data": dict(self.data)}

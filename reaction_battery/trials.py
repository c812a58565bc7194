from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .stimuli import GO_COLOR


class TrialKind(str, Enum):
    SEQUENCE = "sequence"
    SINGLE = "single"
    TARGET_SET = "target_set"
    CUED_TARGET = "cued_target"


@dataclass(frozen=True, slots=True)
class SequenceTrial:
    index: int
    block: str
    length: int
    cells: tuple[int, ...]
    on_ms: int
    gap_ms: int

    @property
    def kind(self) -> TrialKind:
        return TrialKind.SEQUENCE

    @property
    def difficulty(self) -> int:
        return self.length

    def stimulus_plan(self) -> tuple[tuple[int, int], ...]:
        """(cell, onset offset in ms) for each element."""

        step = self.on_ms + self.gap_ms
        return tuple((cell, i * step) for i, cell in enumerate(self.cells))

    def presentation_ms(self) -> int:
        return len(self.cells) * (self.on_ms + self.gap_ms)


@dataclass(frozen=True, slots=True)
class SingleStimulusTrial:
    index: int
    block: str
    reaction_window_ms: int
    cell: int
    color: str
    display_ms: int
    onset_delay_ms: int = 0

    @property
    def kind(self) -> TrialKind:
        return TrialKind.SINGLE

    @property
    def difficulty(self) -> int:
        return self.reaction_window_ms

    @property
    def is_go(self) -> bool:
        return self.color == GO_COLOR


@dataclass(frozen=True, slots=True)
class TargetSetTrial:
    index: int
    block: str
    cells: tuple[int, ...]
    color: str

    @property
    def kind(self) -> TrialKind:
        return TrialKind.TARGET_SET

    @property
    def difficulty(self) -> int:
        return len(self.cells)


@dataclass(frozen=True, slots=True)
class CuedTargetTrial:
    """A central cue, then the same color on one peripheral cell after ``cue_delay_ms``."""

    index: int
    block: str
    cell: int
    color: str
    quadrant: str
    cue_delay_ms: int

    @property
    def kind(self) -> TrialKind:
        return TrialKind.CUED_TARGET

    @property
    def difficulty(self) -> int:
        return self.cue_delay_ms


Trial = SequenceTrial | SingleStimulusTrial | TargetSetTrial | CuedTargetTrial

from __future__ import annotations

import math
import random
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

T = TypeVar("T")


class Phase(str, Enum):
    IDLE = "idle"
    BETWEEN = "between"
    PRESENT = "present"
    RESPOND = "respond"


class TrialOutcome(str, Enum):
    PENDING = "pending"
    CORRECT = "correct"
    INCORRECT = "incorrect"


class ResponseOutcome(str, Enum):
    """Classification of one scored response or expiry."""

    HIT = "hit"
    ERROR = "error"
    MISS = "miss"
    CORRECT_REJECTION = "correct_rejection"


@dataclass(frozen=True, slots=True)
class LitCell:
    cell: int
    color: str
    label: str = ""


@dataclass(frozen=True, slots=True)
class EngineSnapshot:
    """View model for the UI (pure data)."""

    title: str
    task_id: str
    phase: Phase
    running: bool
    prompt: str
    block: str | None
    trial_number: int
    trials_total: int
    lit_cells: tuple[LitCell, ...]
    hits: int
    errors: int
    misses: int
    difficulty_label: str = ""


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def random(self) -> float:
        return self._rng.random()

    def chance(self, p: float) -> bool:
        return self._rng.random() < p


def clamp_int(x: int, lo: int, hi: int) -> int:
    return lo if x < lo else hi if x > hi else int(x)


def round_half_up(x: float) -> int:
    # Halves round up, including for negatives.
    return int(math.floor(x + 0.5))


def mean_ms(values: Sequence[int]) -> int:
    """Rounded mean of a list of millisecond values, 0 when empty."""

    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def best_ms(values: Sequence[int]) -> int:
    return min(values) if values else 0

"""Task parameters and runtime settings.

Task configs are frozen and validated on construction. Runtime settings come
from ``REACTION_BATTERY_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .adaptation import SPAN_MAX, SPAN_MIN, SPAN_START, RateScope
from .stimuli import GridGeometry, Region

ENV_PREFIX = "REACTION_BATTERY_"

SPAN_MODALITIES = ("digits", "letters", "colors", "shapes")


@dataclass(frozen=True, slots=True)
class SpanTaskConfig:
    task_id: str = "central-peripheral-span"
    title: str = "Central-Peripheral Span"
    blocks: tuple[str, ...] = ("central", "peripheral")
    regions: tuple[Region, ...] = (Region.CENTRAL, Region.PERIPHERAL)
    seqs_per_block: int = 10
    start_len: int = SPAN_START
    min_len: int = SPAN_MIN
    max_len: int = SPAN_MAX
    on_ms: int = 600
    gap_ms: int = 400
    lead_in_ms: int = 500
    inter_trial_ms: int = 600
    inter_block_ms: int = 800
    with_stm_index: bool = False
    geometry: GridGeometry = GridGeometry()

    def __post_init__(self) -> None:
        if not self.blocks:
            raise ValueError("blocks must not be empty")
        if len(self.blocks) != len(self.regions):
            raise ValueError("blocks and regions must have the same length")
        if len(set(self.blocks)) != len(self.blocks):
            raise ValueError("block names must be unique")
        if self.seqs_per_block <= 0:
            raise ValueError("seqs_per_block must be > 0")
        if not (1 <= self.min_len <= self.start_len <= self.max_len):
            raise ValueError("expected 1 <= min_len <= start_len <= max_len")
        if self.on_ms <= 0:
            raise ValueError("on_ms must be > 0")
        for name in ("gap_ms", "lead_in_ms", "inter_trial_ms", "inter_block_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")


def span_blocks_config(**overrides: object) -> SpanTaskConfig:
    """Four-modality diagnostic: every block uses the whole grid."""

    params: dict[str, object] = {
        "task_id": "spamperception-blocks-v1",
        "title": "Span Blocks",
        "blocks": SPAN_MODALITIES,
        "regions": (Region.ALL,) * len(SPAN_MODALITIES),
        "lead_in_ms": 50,
        "inter_trial_ms": 0,
        "inter_block_ms": 600,
        "with_stm_index": True,
    }
    params.update(overrides)
    return SpanTaskConfig(**params)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class ColorReactionConfig:
    task_id: str = "color-reaction"
    title: str = "Color Reaction (Go/No-Go)"
    region: Region = Region.ALL
    total_stimuli: int = 50
    go_probability: float = 0.6
    display_min_ms: int = 500
    display_max_ms: int = 1500
    spawn_jitter_min_ms: int = 30
    spawn_jitter_max_ms: int = 120
    onset_delay_ms: int = 0
    initial_window_ms: int = 800
    window_floor_ms: int = 400
    window_ceiling_ms: int = 1200
    adapt_every: int = 10
    recent_count: int = 10
    rate_scope: RateScope = RateScope.WINDOWED
    near_probability: float = 0.5
    near_offset: int = 2
    geometry: GridGeometry = GridGeometry()

    def __post_init__(self) -> None:
        if self.total_stimuli <= 0:
            raise ValueError("total_stimuli must be > 0")
        if not (0.0 <= self.go_probability <= 1.0):
            raise ValueError("go_probability must be in [0.0, 1.0]")
        if not (0 < self.display_min_ms <= self.display_max_ms):
            raise ValueError("expected 0 < display_min_ms <= display_max_ms")
        if not (0 <= self.spawn_jitter_min_ms <= self.spawn_jitter_max_ms):
            raise ValueError("expected 0 <= spawn_jitter_min_ms <= spawn_jitter_max_ms")
        if self.onset_delay_ms < 0:
            raise ValueError("onset_delay_ms must be >= 0")
        if not (0 < self.window_floor_ms <= self.initial_window_ms <= self.window_ceiling_ms):
            raise ValueError("expected 0 < window_floor_ms <= initial_window_ms <= window_ceiling_ms")


def edge_color_reaction_config(**overrides: object) -> ColorReactionConfig:
    params: dict[str, object] = {
        "task_id": "color-reaction-edges",
        "title": "Edge Color Reaction",
        "region": Region.EDGES,
        "near_probability": 0.0,
    }
    params.update(overrides)
    return ColorReactionConfig(**params)  # type: ignore[arg-type]


FIVE_TARGET_COLORS = ("#4ADE80", "#60A5FA", "#F472B6", "#FACC15", "#FB923C", "#A78BFA")


@dataclass(frozen=True, slots=True)
class FiveTargetConfig:
    task_id: str = "five-target-reaction"
    title: str = "Five Target Reaction"
    total_sets: int = 10
    targets_per_set: int = 5
    colors: tuple[str, ...] = FIVE_TARGET_COLORS
    lead_in_ms: int = 0
    inter_set_ms: int = 300
    region: Region = Region.ALL
    geometry: GridGeometry = GridGeometry()

    def __post_init__(self) -> None:
        if self.total_sets <= 0:
            raise ValueError("total_sets must be > 0")
        if self.targets_per_set <= 0:
            raise ValueError("targets_per_set must be > 0")
        if not self.colors:
            raise ValueError("colors must not be empty")
        if self.lead_in_ms < 0 or self.inter_set_ms < 0:
            raise ValueError("delays must be >= 0")


WAIT_CUE_COLORS = ("#4ADE80", "#60A5FA")


@dataclass(frozen=True, slots=True)
class WaitReactionConfig:
    task_id: str = "central-peripheral-wait"
    title: str = "Central-Peripheral Wait"
    total_trials: int = 50
    cue_delay_ms: int = 800
    inter_trial_ms: int = 600
    lead_in_ms: int = 0
    cue_colors: tuple[str, ...] = WAIT_CUE_COLORS
    cue_region: Region = Region.CENTRAL
    target_region: Region = Region.PERIPHERAL
    geometry: GridGeometry = GridGeometry()

    def __post_init__(self) -> None:
        if self.total_trials <= 0:
            raise ValueError("total_trials must be > 0")
        if not self.cue_colors:
            raise ValueError("cue_colors must not be empty")
        for name in ("cue_delay_ms", "inter_trial_ms", "lead_in_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")


@dataclass(frozen=True, slots=True)
class Settings:
    log_level: int = logging.WARNING
    events_path: Path | None = None
    seed: int | None = None


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    raw_level = env.get(f"{ENV_PREFIX}LOG_LEVEL", "").strip().upper()
    level = logging.WARNING
    if raw_level:
        resolved = logging.getLevelName(raw_level)
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level {raw_level!r}")
        level = resolved

    raw_path = env.get(f"{ENV_PREFIX}EVENTS_PATH", "").strip()
    events_path = Path(raw_path).expanduser() if raw_path else None

    raw_seed = env.get(f"{ENV_PREFIX}SEED", "").strip()
    seed: int | None = None
    if raw_seed:
        try:
            seed = int(raw_seed)
        except ValueError:
            raise ValueError(f"{ENV_PREFIX}SEED must be an integer, got {raw_seed!r}") from None

    return Settings(log_level=level, events_path=events_path, seed=seed)

from __future__ import annotations

from dataclasses import dataclass

import pytest

from reaction_battery.cognitive_core import Phase
from reaction_battery.config import WAIT_CUE_COLORS, WaitReactionConfig
from reaction_battery.events import EventKind
from reaction_battery.matching import GridLayout
from reaction_battery.sinks import RecordingSink
from reaction_battery.stimuli import GridGeometry, Region
from reaction_battery.trials import CuedTargetTrial
from reaction_battery.wait_reaction import WaitReactionTask, build_wait_reaction_task


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def wall_ms(self) -> int:
        return 1_700_000_000_000 + int(round(self.t * 1000.0))

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _next_target(clock: FakeClock, engine: WaitReactionTask) -> CuedTargetTrial:
    for _ in range(1000):
        if engine.phase is Phase.RESPOND:
            trial = engine.current_trial
            assert trial is not None
            return trial
        clock.advance(0.05)
        engine.update()
    raise AssertionError("no target appeared")


def test_quadrants_split_the_grid_in_four() -> None:
    g = GridGeometry()
    assert [g.quadrant(c) for c in (0, 9, 90, 99)] == ["A", "B", "C", "D"]
    assert [g.quadrant(c) for c in (44, 45, 54, 55)] == ["A", "B", "C", "D"]


def test_config_validation() -> None:
    with pytest.raises(ValueError):
        WaitReactionConfig(total_trials=0)
    with pytest.raises(ValueError):
        WaitReactionConfig(cue_delay_ms=-1)
    with pytest.raises(ValueError):
        WaitReactionConfig(cue_colors=())


def test_cue_comes_first_and_target_follows_after_delay() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_wait_reaction_task(clock=clock, seed=1, emit_event=sink.emit_event)
    engine.start()
    engine.update()

    assert engine.phase is Phase.PRESENT
    trial = engine.current_trial
    assert trial is not None
    assert trial.color in WAIT_CUE_COLORS
    assert sink.of_kind(EventKind.CENTRAL_STIM)[0].data == {"color": trial.color}
    central = set(GridGeometry().cells(Region.CENTRAL))
    assert {c.cell for c in engine.snapshot().lit_cells} == central

    # Clicks during the cue are not responses.
    assert engine.submit_response(trial.cell) is False

    clock.advance(0.79)
    engine.update()
    assert engine.phase is Phase.PRESENT

    clock.advance(0.02)
    engine.update()
    assert engine.phase is Phase.RESPOND
    assert trial.cell not in central
    periph = sink.of_kind(EventKind.PERIPH_STIM)[0]
    assert periph.data == {"quadrant": trial.quadrant, "idx": trial.cell, "color": trial.color}
    assert trial.quadrant == GridGeometry().quadrant(trial.cell)
    assert trial.cell in {c.cell for c in engine.snapshot().lit_cells}


def test_target_waits_for_the_click() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_wait_reaction_task(clock=clock, seed=2, emit_event=sink.emit_event)
    engine.start()
    trial = _next_target(clock, engine)

    for _ in range(100):
        clock.advance(0.1)
        engine.update()
    assert engine.phase is Phase.RESPOND
    assert sink.of_kind(EventKind.MISS) == []

    assert engine.submit_response(trial.cell) is True
    hit = sink.of_kind(EventKind.HIT)[0]
    assert hit.data["reactionMs"] == 10000
    assert hit.data["idx"] == trial.cell
    assert engine.phase is Phase.BETWEEN


def test_wrong_click_is_error_and_next_trial_follows() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_wait_reaction_task(clock=clock, seed=3, emit_event=sink.emit_event)
    engine.start()
    trial = _next_target(clock, engine)

    wrong = next(c for c in range(100) if c != trial.cell)
    clock.advance(0.3)
    engine.submit_response(wrong)

    error = sink.of_kind(EventKind.ERROR)[0]
    assert error.data == {
        "quadrant": GridGeometry().quadrant(wrong),
        "idx": wrong,
        "expectedQuadrant": trial.quadrant,
        "expectedIdx": trial.cell,
        "reactionMs": 300,
    }
    assert engine.trials_done == 1
    assert engine.phase is Phase.BETWEEN
    assert engine.snapshot().lit_cells == ()

    clock.advance(0.59)
    engine.update()
    assert engine.phase is Phase.BETWEEN
    clock.advance(0.02)
    engine.update()
    assert engine.phase is Phase.PRESENT
    assert len(sink.of_kind(EventKind.CENTRAL_STIM)) == 2


def test_full_session_report() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_wait_reaction_task(
        clock=clock, seed=4, total_trials=4, emit_event=sink.emit_event, emit_score=sink.emit_score
    )
    layout = GridLayout(geometry=GridGeometry(), origin_x=0.0, origin_y=0.0, cell_px=40.0, gap_px=0.0)
    engine.set_layout(layout)
    engine.start()

    targets: list[CuedTargetTrial] = []
    for n in range(4):
        trial = _next_target(clock, engine)
        targets.append(trial)
        clock.advance(0.25)
        if n % 2 == 0:
            cx, cy = layout.cell_center(trial.cell)
            engine.submit_response(trial.cell, cx + 3.0, cy + 4.0)
        else:
            engine.submit_response(next(c for c in range(100) if c != trial.cell))

    assert not engine.running
    report = sink.reports[0]
    assert report.task_id == "central-peripheral-wait"
    assert set(report.metrics) == {
        "completionTimeSec",
        "hits",
        "errors",
        "accuracyPct",
        "reactionTimeAvgMs",
        "reactionTimeBestMs",
    }
    assert (report.metrics["hits"], report.metrics["errors"]) == (2, 2)
    assert report.metrics["accuracyPct"] == 50
    assert report.metrics["reactionTimeAvgMs"] == 250
    assert report.details["trials"] == 4
    assert report.details["distanceErrorPxList"] == (5, 5)

    per_quadrant = report.details["perQuadrant"]
    assert sum(q["hits"] for q in per_quadrant.values()) == 2
    assert sum(q["errors"] for q in per_quadrant.values()) == 2
    for n, trial in enumerate(targets):
        assert per_quadrant[trial.quadrant]["hits" if n % 2 == 0 else "errors"] >= 1

    assert sink.of_kind(EventKind.START)[0].data["totalTrials"] == 4
    assert sink.events[-1].type is EventKind.END


def test_host_stopping_on_hit_event_ends_cleanly() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    holder: list[WaitReactionTask] = []

    def emit(event) -> None:
        sink.emit_event(event)
        if event.type is EventKind.HIT:
            holder[0].stop()

    engine = build_wait_reaction_task(clock=clock, seed=5, emit_event=emit, emit_score=sink.emit_score)
    holder.append(engine)
    engine.start()
    trial = _next_target(clock, engine)
    clock.advance(0.2)
    engine.submit_response(trial.cell)

    assert not engine.running
    assert engine.trials_done == 0
    assert engine.pending_timers() == 0
    assert len(sink.reports) == 1
    assert sink.reports[0].metrics["hits"] == 1

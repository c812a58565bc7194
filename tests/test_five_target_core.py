from __future__ import annotations

from dataclasses import dataclass

from reaction_battery.cognitive_core import Phase
from reaction_battery.config import FIVE_TARGET_COLORS
from reaction_battery.events import EventKind
from reaction_battery.five_target import FiveTargetTask, build_five_target_task
from reaction_battery.matching import GridLayout
from reaction_battery.sinks import RecordingSink
from reaction_battery.stimuli import GridGeometry
from reaction_battery.trials import TargetSetTrial


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def wall_ms(self) -> int:
        return 1_700_000_000_000 + int(round(self.t * 1000.0))

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _next_set(clock: FakeClock, engine: FiveTargetTask) -> TargetSetTrial:
    for _ in range(1000):
        if engine.phase is Phase.RESPOND:
            trial = engine.current_trial
            assert trial is not None
            return trial
        clock.advance(0.05)
        engine.update()
    raise AssertionError("no target set appeared")


def test_first_set_appears_immediately() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_five_target_task(clock=clock, seed=1, emit_event=sink.emit_event)
    engine.start()
    engine.update()

    assert engine.phase is Phase.RESPOND
    trial = engine.current_trial
    assert trial is not None
    assert len(set(trial.cells)) == 5
    assert trial.color == FIVE_TARGET_COLORS[0]

    start = sink.of_kind(EventKind.SET_START)[0]
    assert start.data["indices"] == list(trial.cells)
    assert start.data["color"] == trial.color
    assert sorted(c.cell for c in engine.snapshot().lit_cells) == sorted(trial.cells)


def test_clicks_score_from_set_onset_and_repeats_are_ignored() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_five_target_task(clock=clock, seed=2, emit_event=sink.emit_event)
    engine.start()
    trial = _next_set(clock, engine)

    clock.advance(0.4)
    engine.submit_response(trial.cells[2])
    clock.advance(0.2)
    engine.submit_response(trial.cells[2])
    clock.advance(0.1)
    engine.submit_response(trial.cells[0])

    hits = sink.of_kind(EventKind.HIT)
    assert [h.data["reactionMs"] for h in hits] == [400, 700]
    assert [h.data["idx"] for h in hits] == [trial.cells[2], trial.cells[0]]
    assert len(engine.snapshot().lit_cells) == 3
    assert engine.stats()[0].hits == 2


def test_click_off_target_is_empty_error() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_five_target_task(clock=clock, seed=3, emit_event=sink.emit_event)
    engine.start()
    trial = _next_set(clock, engine)

    off = next(c for c in range(100) if c not in trial.cells)
    assert engine.submit_response(off) is True
    assert sink.of_kind(EventKind.ERROR_EMPTY)[0].data == {"idx": off}
    assert engine.stats()[0].errors == 1
    assert engine.phase is Phase.RESPOND


def test_completed_set_pauses_then_next_color() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_five_target_task(clock=clock, seed=4, emit_event=sink.emit_event)
    engine.start()
    first = _next_set(clock, engine)
    for cell in first.cells:
        clock.advance(0.1)
        engine.submit_response(cell)

    assert engine.phase is Phase.BETWEEN
    assert engine.sets_done == 1
    clock.advance(0.29)
    engine.update()
    assert engine.phase is Phase.BETWEEN

    clock.advance(0.02)
    engine.update()
    second = engine.current_trial
    assert engine.phase is Phase.RESPOND
    assert second is not None and second.index == 1
    assert second.color == FIVE_TARGET_COLORS[1]


def test_full_session_report() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_five_target_task(
        clock=clock, seed=5, total_sets=3, emit_event=sink.emit_event, emit_score=sink.emit_score
    )
    layout = GridLayout(geometry=GridGeometry(), origin_x=0.0, origin_y=0.0, cell_px=40.0, gap_px=0.0)
    engine.set_layout(layout)
    engine.start()

    for n in range(3):
        trial = _next_set(clock, engine)
        if n == 1:
            engine.submit_response(next(c for c in range(100) if c not in trial.cells))
        for cell in trial.cells:
            clock.advance(0.25)
            cx, cy = layout.cell_center(cell)
            engine.submit_response(cell, cx, cy)

    assert not engine.running
    report = sink.reports[0]
    assert report.task_id == "five-target-reaction"
    assert set(report.metrics) == {
        "completionTimeSec",
        "reactionTimeAvgMs",
        "reactionTimeBestMs",
        "hits",
        "errors",
        "accuracyPct",
    }
    assert report.metrics["hits"] == 15
    assert report.metrics["errors"] == 1
    assert report.metrics["accuracyPct"] == 94
    assert report.metrics["reactionTimeBestMs"] == 250
    assert report.metrics["reactionTimeAvgMs"] == 750
    assert report.details["totalSets"] == 3
    assert report.details["distanceErrorPxList"] == (0,) * 15
    assert sink.of_kind(EventKind.START)[0].data["mode"] == "FIVE"


def test_host_stopping_on_last_hit_of_a_set_ends_cleanly() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    holder: list[FiveTargetTask] = []
    hits: list[int] = []

    def emit(event) -> None:
        sink.emit_event(event)
        if event.type is EventKind.HIT:
            hits.append(1)
            if len(hits) == 5:
                holder[0].stop()

    engine = build_five_target_task(clock=clock, seed=6, emit_event=emit, emit_score=sink.emit_score)
    holder.append(engine)
    engine.start()
    trial = _next_set(clock, engine)
    for cell in trial.cells:
        clock.advance(0.1)
        engine.submit_response(cell)

    assert not engine.running
    assert engine.sets_done == 0
    assert engine.pending_timers() == 0
    assert len(sink.reports) == 1
    assert sink.reports[0].metrics["hits"] == 5

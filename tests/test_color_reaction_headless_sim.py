from __future__ import annotations

import random
from dataclasses import dataclass

from reaction_battery.adaptation import RateScope
from reaction_battery.cognitive_core import Phase
from reaction_battery.color_reaction import GoNoGoTask, build_color_reaction_task, build_edge_color_reaction_task
from reaction_battery.events import EventKind
from reaction_battery.results import accuracy_pct
from reaction_battery.sinks import RecordingSink


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def wall_ms(self) -> int:
        return 1_700_000_000_000 + int(round(self.t * 1000.0))

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _step_until(clock: FakeClock, engine: GoNoGoTask, pred) -> None:
    for _ in range(5000):
        if pred():
            return
        clock.advance(0.01)
        engine.update()
    raise AssertionError("condition never reached")


def _play(clock: FakeClock, engine: GoNoGoTask, behaviour: random.Random) -> None:
    while engine.running:
        _step_until(clock, engine, lambda: engine.phase is Phase.RESPOND or not engine.running)
        if not engine.running:
            return
        trial = engine.current_trial
        assert trial is not None
        action = behaviour.choice(("click", "click", "empty", "wait"))
        if action == "click":
            clock.advance(behaviour.choice((0.2, 0.35, 0.45)))
            engine.submit_response(trial.cell)
        elif action == "empty":
            clock.advance(0.1)
            engine.submit_response((trial.cell + 1) % 100)
        _step_until(clock, engine, lambda: not engine.running or engine.phase is not Phase.RESPOND)


def _counts(sink: RecordingSink) -> tuple[int, int, int]:
    hits = len(sink.of_kind(EventKind.HIT))
    errors = len(sink.of_kind(EventKind.ERROR)) + len(sink.of_kind(EventKind.ERROR_EMPTY))
    misses = len(sink.of_kind(EventKind.MISS))
    return hits, errors, misses


def test_headless_sim_counters_match_events() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_color_reaction_task(clock=clock, seed=2718, emit_event=sink.emit_event, emit_score=sink.emit_score)
    engine.start()
    _play(clock, engine, random.Random(5))

    assert not engine.running
    assert len(sink.of_kind(EventKind.STIMULUS)) == 50
    assert len(sink.reports) == 1
    report = sink.reports[0]

    hits, errors, misses = _counts(sink)
    assert (report.metrics["hits"], report.metrics["errors"], report.metrics["misses"]) == (hits, errors, misses)
    assert report.metrics["accuracyPct"] == accuracy_pct(hits, errors, misses)
    assert report.metrics["reactionsCount"] == hits
    assert report.details["totalStimuli"] == 50

    # One window recomputation per ten scored observations.
    assert len(sink.of_kind(EventKind.ADAPT)) == (hits + errors + misses) // 10
    history = report.details["reactionWindowHistoryMs"]
    assert history[0] == 800
    assert len(history) == 1 + len(sink.of_kind(EventKind.ADAPT))
    assert all(400 <= w <= 1200 for w in history)

    rejections = report.details["correctRejections"]
    stimuli = sink.of_kind(EventKind.STIMULUS)
    no_go = sum(1 for e in stimuli if e.data["color"] == "red")
    assert rejections <= no_go


def test_headless_sim_same_seed_same_stimuli() -> None:
    def run(seed: int) -> list[tuple[int, str, int]]:
        sink = RecordingSink()
        clock = FakeClock()
        engine = build_color_reaction_task(clock=clock, seed=seed, total_stimuli=20, emit_event=sink.emit_event)
        engine.start()
        _play(clock, engine, random.Random(1))
        return [(e.data["idx"], e.data["color"], e.data["displayMs"]) for e in sink.of_kind(EventKind.STIMULUS)]

    assert run(99) == run(99)


def test_headless_sim_edge_variant_uses_outer_columns_only() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_edge_color_reaction_task(
        clock=clock, seed=8, total_stimuli=30, emit_event=sink.emit_event, emit_score=sink.emit_score
    )
    engine.start()
    _play(clock, engine, random.Random(2))

    cells = [e.data["idx"] for e in sink.of_kind(EventKind.STIMULUS)]
    assert len(cells) == 30
    assert all(c % 10 in (0, 9) for c in cells)
    assert all(a != b for a, b in zip(cells, cells[1:]))
    assert sink.reports[0].task_id == "color-reaction-edges"


def test_headless_sim_cumulative_rates_option() -> None:
    sink = RecordingSink()
    clock = FakeClock()
    engine = build_color_reaction_task(
        clock=clock,
        seed=4,
        go_probability=1.0,
        total_stimuli=20,
        rate_scope=RateScope.CUMULATIVE,
        emit_event=sink.emit_event,
        emit_score=sink.emit_score,
    )
    engine.start()

    # Ten misses, then ten quick hits.
    for i in range(20):
        _step_until(clock, engine, lambda: engine.phase is Phase.RESPOND)
        trial = engine.current_trial
        assert trial is not None
        if i < 10:
            _step_until(clock, engine, lambda: engine.phase is not Phase.RESPOND)
        else:
            clock.advance(0.3)
            engine.submit_response(trial.cell)

    windows = [e.data["reactionWindowMs"] for e in sink.of_kind(EventKind.ADAPT)]
    # Half of all observations are misses, so the window keeps loosening.
    assert windows == [880, 968]

from __future__ import annotations

import pytest

from reaction_battery.adaptation import (
    RateScope,
    ReactionWindowController,
    SpanController,
    WindowAction,
    adjust_span,
)
from reaction_battery.cognitive_core import ResponseOutcome, SeededRng


def test_span_grows_and_clamps_at_max() -> None:
    ctl = SpanController(start=3)
    for _ in range(5):
        ctl.update(True)
    assert ctl.history() == (3, 4, 5, 6, 7, 7)
    assert ctl.length == 7


def test_span_shrinks_and_clamps_at_min() -> None:
    ctl = SpanController(start=7)
    for _ in range(6):
        ctl.update(False)
    assert ctl.history() == (7, 6, 5, 4, 3, 2, 2)
    assert ctl.length == 2


def test_span_reset_returns_to_start_and_keeps_history() -> None:
    ctl = SpanController(start=3)
    ctl.update(True)
    ctl.update(True)
    ctl.reset()
    assert ctl.length == 3
    assert ctl.history() == (3, 4, 5, 3)


def test_adjust_span_is_pure() -> None:
    assert adjust_span(3, True) == 4
    assert adjust_span(3, False) == 2
    assert adjust_span(2, False) == 2
    assert adjust_span(7, True) == 7
    assert adjust_span(5, True, min_len=1, max_len=5) == 5


def test_span_controller_validates_bounds() -> None:
    with pytest.raises(ValueError):
        SpanController(start=8)
    with pytest.raises(ValueError):
        SpanController(start=1, min_len=0, max_len=7)


def _hits(ctl: ReactionWindowController, n: int, rt: int) -> list:
    return [ctl.observe(ResponseOutcome.HIT, rt) for _ in range(n)]


def test_window_recomputes_only_every_tenth_observation() -> None:
    ctl = ReactionWindowController()
    results = _hits(ctl, 9, 600)
    assert results == [None] * 9
    adj = ctl.observe(ResponseOutcome.HIT, 600)
    assert adj is not None
    assert adj.observations == 10


def test_window_tightens_towards_fast_recent_hits() -> None:
    ctl = ReactionWindowController()
    adj = _hits(ctl, 10, 600)[-1]
    assert adj.action is WindowAction.TIGHTEN
    assert adj.previous_ms == 800
    assert ctl.window_ms == 540
    assert ctl.history() == (800, 540)


def test_window_tighten_is_floored() -> None:
    ctl = ReactionWindowController()
    _hits(ctl, 10, 300)
    assert ctl.window_ms == 400


def test_window_loosens_on_misses_and_is_capped() -> None:
    ctl = ReactionWindowController()
    for _ in range(10):
        ctl.observe(ResponseOutcome.MISS)
    assert ctl.window_ms == 880

    for _ in range(50):
        ctl.observe(ResponseOutcome.ERROR)
    assert ctl.window_ms == 1200
    assert max(ctl.history()) == 1200


def test_window_holds_between_thresholds() -> None:
    ctl = ReactionWindowController()
    ctl.observe(ResponseOutcome.MISS)
    adj = _hits(ctl, 9, 700)[-1]
    assert adj.action is WindowAction.HOLD
    assert ctl.window_ms == 800
    assert ctl.history() == (800, 800)


def test_window_without_recent_hits_uses_current_window_as_average() -> None:
    ctl = ReactionWindowController()
    ctl.observe(ResponseOutcome.ERROR)
    for _ in range(9):
        ctl.observe(ResponseOutcome.HIT, None)
    # One error in ten sits between the thresholds; the average equals the window.
    assert ctl.window_ms == 800


def test_correct_rejections_do_not_count_as_observations() -> None:
    ctl = ReactionWindowController()
    _hits(ctl, 9, 600)
    for _ in range(5):
        assert ctl.observe(ResponseOutcome.CORRECT_REJECTION) is None
    assert ctl.observe(ResponseOutcome.HIT, 600) is not None


def test_windowed_rates_forget_old_misses() -> None:
    windowed = ReactionWindowController(rate_scope=RateScope.WINDOWED)
    cumulative = ReactionWindowController(rate_scope=RateScope.CUMULATIVE)
    for ctl in (windowed, cumulative):
        for _ in range(10):
            ctl.observe(ResponseOutcome.MISS)
        assert ctl.window_ms == 880
        _hits(ctl, 10, 500)

    assert windowed.window_ms == 450
    assert cumulative.window_ms == 968


def test_window_stays_within_bounds_under_noisy_input() -> None:
    rng = SeededRng(2024)
    ctl = ReactionWindowController()
    outcomes = (ResponseOutcome.HIT, ResponseOutcome.ERROR, ResponseOutcome.MISS, ResponseOutcome.CORRECT_REJECTION)
    for _ in range(2000):
        outcome = rng.choice(outcomes)
        ctl.observe(outcome, rng.randint(100, 2000) if outcome is ResponseOutcome.HIT else None)
        assert 400 <= ctl.window_ms <= 1200
    assert all(400 <= w <= 1200 for w in ctl.history())


def test_window_controller_validates_parameters() -> None:
    with pytest.raises(ValueError):
        ReactionWindowController(initial_ms=300)
    with pytest.raises(ValueError):
        ReactionWindowController(every=0)
    with pytest.raises(ValueError):
        ReactionWindowController(tighten_below=0.2, loosen_above=0.1)

from __future__ import annotations

import pytest

from reaction_battery.cognitive_core import ResponseOutcome
from reaction_battery.events import ResponseEvent
from reaction_battery.matching import (
    GridLayout,
    SequenceMatcher,
    TargetSetMatcher,
    classify_expiry,
    classify_go_no_go,
    reaction_time_ms,
    spatial_error_px,
)
from reaction_battery.stimuli import GridGeometry


def _resp(cell: int, at_s: float, x: float | None = None, y: float | None = None) -> ResponseEvent:
    return ResponseEvent(cell=cell, at_s=at_s, wall_ms=int(at_s * 1000), x=x, y=y)


def test_sequence_reproduced_in_order_is_correct() -> None:
    m = SequenceMatcher((4, 17, 82))
    steps = [m.match(c) for c in (4, 17, 82)]
    assert [s.correct for s in steps] == [True, True, True]
    assert [s.complete for s in steps] == [False, False, True]
    assert m.finished


def test_wrong_cell_ends_sequence_and_later_responses_are_not_consumed() -> None:
    m = SequenceMatcher((4, 17, 82))
    assert m.match(4).correct
    step = m.match(99)
    assert step is not None
    assert not step.correct
    assert step.position == 1
    assert step.expected == 17

    assert m.finished
    assert m.match(82) is None
    assert m.position == 1


def test_empty_sequence_is_rejected() -> None:
    with pytest.raises(ValueError):
        SequenceMatcher(())


def test_go_click_within_window_is_hit() -> None:
    r = classify_go_no_go(target_cell=12, is_go=True, onset_s=1.0, window_ms=800, response=_resp(12, 1.35))
    assert r.outcome is ResponseOutcome.HIT
    assert r.reaction_ms == 350
    assert r.reason is None
    assert r.ends_trial


def test_go_click_at_window_edge_is_still_hit() -> None:
    r = classify_go_no_go(target_cell=12, is_go=True, onset_s=0.0, window_ms=800, response=_resp(12, 0.8))
    assert r.outcome is ResponseOutcome.HIT


def test_late_go_click_is_error() -> None:
    r = classify_go_no_go(target_cell=12, is_go=True, onset_s=0.0, window_ms=800, response=_resp(12, 0.9))
    assert r.outcome is ResponseOutcome.ERROR
    assert r.reason == "late"
    assert r.ends_trial


def test_no_go_click_is_error() -> None:
    r = classify_go_no_go(target_cell=12, is_go=False, onset_s=0.0, window_ms=800, response=_resp(12, 0.2))
    assert r.outcome is ResponseOutcome.ERROR
    assert r.reason == "no-go"


def test_click_on_other_cell_is_empty_error_and_keeps_stimulus() -> None:
    r = classify_go_no_go(target_cell=12, is_go=True, onset_s=0.0, window_ms=800, response=_resp(13, 0.2))
    assert r.outcome is ResponseOutcome.ERROR
    assert r.reason == "empty"
    assert not r.ends_trial


def test_expiry_classification() -> None:
    assert classify_expiry(is_go=True) is ResponseOutcome.MISS
    assert classify_expiry(is_go=False) is ResponseOutcome.CORRECT_REJECTION


def test_target_set_matching() -> None:
    m = TargetSetMatcher((1, 2, 3))

    first = m.match(2)
    assert first.outcome is ResponseOutcome.HIT
    assert first.remaining == 2

    repeat = m.match(2)
    assert repeat.outcome is None
    assert repeat.remaining == 2

    miss = m.match(50)
    assert miss.outcome is ResponseOutcome.ERROR

    m.match(1)
    last = m.match(3)
    assert last.complete
    assert m.taken == frozenset({1, 2, 3})


def test_reaction_time_rounds_half_up_and_never_negative() -> None:
    assert reaction_time_ms(1.0, 1.2506) == 251
    assert reaction_time_ms(1.0, 1.2504) == 250
    assert reaction_time_ms(2.0, 1.0) == 0


def test_grid_layout_maps_points_to_cells() -> None:
    layout = GridLayout(geometry=GridGeometry(), origin_x=10.0, origin_y=20.0, cell_px=40.0, gap_px=4.0)
    assert layout.cell_center(0) == (30.0, 40.0)
    assert layout.cell_center(11) == (74.0, 84.0)

    assert layout.cell_at(30.0, 40.0) == 0
    assert layout.cell_at(74.0, 84.0) == 11
    # Gutter between cell 0 and cell 1.
    assert layout.cell_at(52.0, 40.0) is None
    assert layout.cell_at(5.0, 40.0) is None
    assert layout.cell_at(10.0 + 44.0 * 10, 40.0) is None


def test_spatial_error_uses_live_layout() -> None:
    layout = GridLayout(geometry=GridGeometry(), origin_x=0.0, origin_y=0.0, cell_px=40.0, gap_px=0.0)
    cx, cy = layout.cell_center(5)
    assert spatial_error_px(layout, 5, _resp(5, 0.0, cx + 3.0, cy + 4.0)) == 5
    assert spatial_error_px(None, 5, _resp(5, 0.0, cx, cy)) is None
    assert spatial_error_px(layout, 5, _resp(5, 0.0)) is None

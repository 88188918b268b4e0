from itertools import permutations
from types import SimpleNamespace

import pytest

from fogmod.tracker import LatencyTracker, RunningMean


def make_tuple(tuple_id, tuple_type='RAW'):
    return SimpleNamespace(tuple_id=tuple_id, tuple_type=tuple_type)


@pytest.mark.parametrize('delays', list(permutations([10, 20, 30])))
def test_loop_average_order_independent(delays):
    tracker = LatencyTracker()
    for i, delay in enumerate(delays):
        tracker.on_loop_closed('loop', 100 * i, 100 * i + delay)
    assert tracker.loop_average('loop') == pytest.approx(20.0)
    assert tracker.loop_closures('loop') == 3


def test_loop_never_closed():
    tracker = LatencyTracker()
    assert tracker.loop_average('loop') is None
    assert tracker.loop_closures('loop') == 0
    assert tracker.loop_averages() == {}


def test_loops_are_separate():
    tracker = LatencyTracker()
    tracker.on_loop_closed(0, 0, 4)
    tracker.on_loop_closed('x', 0, 10)
    tracker.on_loop_closed(0, 10, 16)
    assert tracker.loop_averages() == {0: 5.0, 'x': 10.0}


def test_tuple_type_average():
    tracker = LatencyTracker()
    tracker.on_execution_start(1, 0.0)
    tracker.on_execution_start(2, 1.0)
    tracker.on_execution_end(make_tuple(1), 1.0)
    tracker.on_execution_end(make_tuple(2), 4.0)
    tracker.on_execution_start(3, 4.0)
    tracker.on_execution_end(make_tuple(3, 'OTHER'), 4.5)
    assert tracker.tuple_type_average('RAW') == pytest.approx(2.0)
    assert tracker.tuple_type_averages() == {'RAW': 2.0, 'OTHER': 0.5}
    assert tracker.tuple_type_average('NEVER') is None


def test_execution_end_without_start():
    tracker = LatencyTracker()
    tracker.on_execution_end(make_tuple(7), 3.0)
    assert tracker.tuple_type_averages() == {}


def test_emitted_and_deadline_misses():
    tracker = LatencyTracker()
    tracker.on_tuple_created(make_tuple(1), 0)
    tracker.on_tuple_created(make_tuple(2), 0)
    tracker.on_tuple_created(make_tuple(3, 'OTHER'), 0)
    tracker.on_deadline_miss(make_tuple(2), 5)
    assert tracker.emitted() == {'RAW': 2, 'OTHER': 1}
    assert tracker.deadline_misses() == {'RAW': 1}


def test_running_mean():
    acc = RunningMean()
    for value in [1, 2, 3, 4]:
        acc.update(value)
    assert acc.count == 4
    assert acc.mean == pytest.approx(2.5)

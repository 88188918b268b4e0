"""Control-loop latency and tuple CPU-time accounting.

A :class:`LatencyTracker` is owned by one simulation run. The tuple router
reports tuple lifecycle events to it, and the driver reads averages back
after (or during) the run. Averages are running means, so each update is
O(1) and no history is stored.

"""
from collections import Counter
from typing import TYPE_CHECKING, Dict, Hashable, Optional

if TYPE_CHECKING:
    from .router import AppTuple


class RunningMean:
    """Incrementally updated arithmetic mean."""

    __slots__ = ('count', 'mean')

    def __init__(self) -> None:
        self.count = 0
        self.mean = 0.0

    def update(self, value: float) -> float:
        self.count += 1
        self.mean += (value - self.mean) / self.count
        return self.mean

    def __repr__(self) -> str:
        return f'RunningMean(count={self.count}, mean={self.mean})'


class LatencyTracker:
    """Per-loop delay and per-tuple-type CPU time averages for one run."""

    def __init__(self) -> None:
        self._loops: Dict[Hashable, RunningMean] = {}
        self._tuple_types: Dict[str, RunningMean] = {}
        self._exec_start: Dict[int, float] = {}
        self._emitted: Counter = Counter()
        self._deadline_misses: Counter = Counter()

    def on_tuple_created(self, tup: 'AppTuple', timestamp: float) -> None:
        self._emitted[tup.tuple_type] += 1

    def on_execution_start(self, tuple_id: int, timestamp: float) -> None:
        self._exec_start[tuple_id] = timestamp

    def on_execution_end(self, tup: 'AppTuple', timestamp: float) -> None:
        start = self._exec_start.pop(tup.tuple_id, None)
        if start is None:
            return
        self._tuple_types.setdefault(tup.tuple_type, RunningMean()).update(
            timestamp - start
        )

    def on_loop_closed(
        self, loop_id: Hashable, start_timestamp: float, end_timestamp: float
    ) -> None:
        self._loops.setdefault(loop_id, RunningMean()).update(
            end_timestamp - start_timestamp
        )

    def on_deadline_miss(self, tup: 'AppTuple', timestamp: float) -> None:
        self._deadline_misses[tup.tuple_type] += 1

    def loop_average(self, loop_id: Hashable) -> Optional[float]:
        """Mean delay of `loop_id`, or None if it never closed."""
        acc = self._loops.get(loop_id)
        return None if acc is None else acc.mean

    def loop_closures(self, loop_id: Hashable) -> int:
        acc = self._loops.get(loop_id)
        return 0 if acc is None else acc.count

    def tuple_type_average(self, tuple_type: str) -> Optional[float]:
        """Mean CPU execution time of `tuple_type`, or None if never executed."""
        acc = self._tuple_types.get(tuple_type)
        return None if acc is None else acc.mean

    def loop_averages(self) -> Dict[Hashable, float]:
        return {loop_id: acc.mean for loop_id, acc in self._loops.items()}

    def tuple_type_averages(self) -> Dict[str, float]:
        return {t: acc.mean for t, acc in self._tuple_types.items()}

    def emitted(self) -> Dict[str, int]:
        return dict(self._emitted)

    def deadline_misses(self) -> Dict[str, int]:
        return dict(self._deadline_misses)

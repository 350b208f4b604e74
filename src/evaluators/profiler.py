"""
Profiler collaborator for timing evaluator phases.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Protocol


def now() -> float:
    """Monotonic timestamp in seconds."""
    return time.perf_counter()


@dataclass(frozen=True)
class Interval:
    """One named timing sample."""
    name: str
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class IntervalStats:
    """Running aggregate for one interval name."""
    count: int = 0
    total: float = 0.0
    min: float = float("inf")
    max: float = 0.0

    def add(self, duration: float) -> None:
        self.count += 1
        self.total += duration
        self.min = min(self.min, duration)
        self.max = max(self.max, duration)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


class IntervalSink(Protocol):
    def add_interval(self, name: str, start: float, end: float) -> None:
        ...


class Profiler(IntervalSink):
    """
    In-memory interval recorder.

    Aggregates per name are kept for the whole run; only the most recent
    `history` intervals are retained individually, so a profiler can stay
    attached to an unbounded stream.

    Not thread-safe; give each evaluator its own profiler when driving
    several devices concurrently.
    """

    def __init__(self, history: int = 1000):
        if history < 0:
            raise ValueError(f"history must be non-negative, got {history}")
        self._recent: Deque[Interval] = deque(maxlen=history)
        self._stats: Dict[str, IntervalStats] = {}

    def add_interval(self, name: str, start: float, end: float) -> None:
        interval = Interval(name=name, start=start, end=end)
        self._recent.append(interval)
        self._stats.setdefault(name, IntervalStats()).add(interval.duration)

    @property
    def intervals(self) -> List[Interval]:
        """Most recent intervals, oldest first."""
        return list(self._recent)

    def count(self, name: str) -> int:
        stats = self._stats.get(name)
        return stats.count if stats else 0

    def total(self, name: str) -> float:
        """Summed duration in seconds of all intervals named `name`."""
        stats = self._stats.get(name)
        return stats.total if stats else 0.0

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Per-name count, total, mean, min and max duration."""
        return {
            name: {
                "count": s.count,
                "total": s.total,
                "mean": s.mean,
                "min": s.min,
                "max": s.max,
            }
            for name, s in self._stats.items()
        }

    def log_summary(self) -> None:
        for name, entry in sorted(self.summary().items()):
            logging.info(
                f"[PROFILE] {name}: count={int(entry['count'])} "
                f"total={entry['total'] * 1000:.1f}ms mean={entry['mean'] * 1000:.2f}ms "
                f"max={entry['max'] * 1000:.2f}ms"
            )

    def reset(self) -> None:
        self._recent.clear()
        self._stats.clear()

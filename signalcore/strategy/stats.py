"""Running signal statistics, shared by concurrent evaluations."""

import threading
from collections import Counter

from signalcore.models.signal import Direction, MultiTimeframeSignal, Signal, SignalType


def score_bucket(score: float) -> str:
    """Decade bucket label for a 0–100 score (100 falls in "90-100")."""
    lower = min(int(max(score, 0.0) // 10) * 10, 90)
    upper = 100 if lower == 90 else lower + 9
    return f"{lower}-{upper}"


class RunningStats:
    """Counters updated once per terminal signal.

    Only :meth:`reset` clears them.  Every method takes the internal lock,
    so concurrent ``record`` calls never interleave.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset_unlocked()

    def _reset_unlocked(self) -> None:
        self._generated = 0
        self._filtered = 0
        self._directions: Counter = Counter({d.value: 0 for d in Direction})
        self._types: Counter = Counter({t.value: 0 for t in SignalType})
        self._histogram: Counter = Counter()
        self._mtf_generated = 0
        self._mtf_success = 0
        self._mtf_timeframes_total = 0
        self._mtf_confluence_total = 0.0

    def record(self, signal: Signal) -> None:
        with self._lock:
            self._generated += 1
            if signal.type in (SignalType.FILTERED, SignalType.REJECTED):
                self._filtered += 1
            self._directions[signal.direction.value] += 1
            self._types[signal.type.value] += 1
            self._histogram[score_bucket(signal.confluence_score)] += 1

    def record_multi_timeframe(
        self, signal: MultiTimeframeSignal, success_score: float = 60.0,
    ) -> None:
        """Count one combined verdict; above *success_score* is a confluence success."""
        with self._lock:
            self._mtf_generated += 1
            if signal.confluence_score > success_score:
                self._mtf_success += 1
            self._mtf_timeframes_total += len(signal.breakdown)
            self._mtf_confluence_total += signal.confluence_score

    def reset(self) -> None:
        with self._lock:
            self._reset_unlocked()

    @property
    def signals_generated(self) -> int:
        with self._lock:
            return self._generated

    def snapshot(self) -> dict:
        """Consistent copy of every counter."""
        with self._lock:
            return {
                "signals_generated": self._generated,
                "signals_filtered": self._filtered,
                "directions": dict(self._directions),
                "types": dict(self._types),
                "confluence_histogram": dict(sorted(self._histogram.items())),
                "multi_timeframe": self._multi_timeframe_unlocked(),
            }

    def _multi_timeframe_unlocked(self) -> dict:
        n = self._mtf_generated
        return {
            "signals_generated": n,
            "confluence_success": self._mtf_success,
            "confluence_failure": n - self._mtf_success,
            "average_timeframes": self._mtf_timeframes_total / n if n else 0.0,
            "average_confluence": self._mtf_confluence_total / n if n else 0.0,
        }

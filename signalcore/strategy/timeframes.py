"""Multi-timeframe synthesis — pure functions, no I/O.

Combines the per-timeframe signals of one symbol into a single verdict:

  1. A timeframe is *usable* when its signal is VALID or NEUTRAL; at
     least ``min_timeframes`` must be usable.
  2. Among VALID timeframes, one direction must hold at least
     ``majority_pct`` of them (rounded up).
  3. The combined score is the weight-averaged score of the VALID
     timeframes that agree; longer timeframes weigh more.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

from signalcore.models.signal import (
    Direction,
    MultiTimeframeSignal,
    Recommendation,
    Signal,
    SignalType,
    TimeframeBreakdown,
)

TIMEFRAME_WEIGHTS: dict[str, float] = {
    "1m": 0.5,
    "5m": 1.0,
    "15m": 1.2,
    "1h": 1.5,
    "4h": 2.0,
    "1d": 1.8,
}
DEFAULT_TIMEFRAME_WEIGHT = 1.0

_USABLE = (SignalType.VALID, SignalType.NEUTRAL)


def timeframe_weight(timeframe: str) -> float:
    return TIMEFRAME_WEIGHTS.get(timeframe, DEFAULT_TIMEFRAME_WEIGHT)


@dataclass(frozen=True)
class TimeframeConfluence:
    """Outcome of the usable-count and direction-agreement checks."""

    valid: bool
    direction: Direction
    strength: float  # % of directional timeframes agreeing
    usable_timeframes: int
    required_timeframes: int
    long_count: int = 0
    short_count: int = 0
    reason: str = ""

    @property
    def neutral_count(self) -> int:
        return self.usable_timeframes - self.long_count - self.short_count


def validate_timeframe_confluence(
    signals: Mapping[str, Signal],
    min_timeframes: int = 3,
    majority_pct: float = 60.0,
) -> TimeframeConfluence:
    """Check that enough timeframes are usable and agree on a direction.

    No directional timeframe at all is valid, with direction NEUTRAL.
    """
    usable = [s for s in signals.values() if s.type in _USABLE]
    if len(usable) < min_timeframes:
        return TimeframeConfluence(
            valid=False,
            direction=Direction.NEUTRAL,
            strength=0.0,
            usable_timeframes=len(usable),
            required_timeframes=min_timeframes,
            reason=(
                f"Insufficient usable timeframes: {len(usable)}/{min_timeframes} required"
            ),
        )

    longs = sum(1 for s in usable if s.type is SignalType.VALID and s.direction is Direction.LONG)
    shorts = sum(1 for s in usable if s.type is SignalType.VALID and s.direction is Direction.SHORT)
    directional = longs + shorts
    counts = dict(
        usable_timeframes=len(usable),
        required_timeframes=min_timeframes,
        long_count=longs,
        short_count=shorts,
    )
    if directional == 0:
        return TimeframeConfluence(
            valid=True, direction=Direction.NEUTRAL, strength=0.0, **counts,
        )

    needed = math.ceil(directional * majority_pct / 100.0)
    if longs >= needed and longs > shorts:
        return TimeframeConfluence(
            valid=True, direction=Direction.LONG,
            strength=longs / directional * 100.0, **counts,
        )
    if shorts >= needed and shorts > longs:
        return TimeframeConfluence(
            valid=True, direction=Direction.SHORT,
            strength=shorts / directional * 100.0, **counts,
        )
    return TimeframeConfluence(
        valid=False,
        direction=Direction.NEUTRAL,
        strength=0.0,
        reason=f"No clear directional agreement: {longs} long vs {shorts} short",
        **counts,
    )


def synthesize(
    symbol: str,
    signals: Mapping[str, Signal],
    min_timeframes: int = 3,
    majority_pct: float = 60.0,
    primary_timeframe: str = "5m",
    now: Optional[datetime] = None,
) -> MultiTimeframeSignal:
    """Combine per-timeframe *signals* (keyed by timeframe) into one verdict.

    The primary timeframe's signal is acted on when it agrees; otherwise
    the highest-scoring agreeing timeframe is.
    """
    now = now or datetime.now(timezone.utc)
    check = validate_timeframe_confluence(signals, min_timeframes, majority_pct)
    breakdown = tuple(
        TimeframeBreakdown(
            timeframe=tf,
            type=s.type,
            direction=s.direction,
            confluence_score=s.confluence_score,
            weight=timeframe_weight(tf),
        )
        for tf, s in signals.items()
    )
    common = dict(
        symbol=symbol,
        created_at=now,
        usable_timeframes=check.usable_timeframes,
        required_timeframes=check.required_timeframes,
        breakdown=breakdown,
    )

    if not check.valid:
        return MultiTimeframeSignal(
            type=SignalType.REJECTED,
            direction=Direction.NEUTRAL,
            recommendation=Recommendation.AVOID,
            reason=check.reason,
            confluence_score=0.0,
            confluence_strength=0.0,
            confidence=0.0,
            **common,
        )

    agreeing = {
        tf: s for tf, s in signals.items()
        if s.type is SignalType.VALID and s.direction is check.direction
    }
    if not agreeing:
        return MultiTimeframeSignal(
            type=SignalType.NEUTRAL,
            direction=Direction.NEUTRAL,
            recommendation=Recommendation.WAIT,
            reason="No directional signal on any timeframe",
            confluence_score=0.0,
            confluence_strength=0.0,
            confidence=0.0,
            **common,
        )

    total_weight = sum(timeframe_weight(tf) for tf in agreeing)
    score = sum(
        s.confluence_score * timeframe_weight(tf) for tf, s in agreeing.items()
    ) / total_weight
    base = agreeing.get(primary_timeframe) or max(
        agreeing.values(), key=lambda s: s.confluence_score,
    )
    return MultiTimeframeSignal(
        type=SignalType.VALID,
        direction=check.direction,
        recommendation=Recommendation.ENTER,
        reason=(
            f"{len(agreeing)}/{len(signals)} timeframes agree {check.direction.value} "
            f"(weighted confluence {score:.1f}, acting on {base.timeframe})"
        ),
        confluence_score=score,
        confluence_strength=check.strength,
        confidence=min(100.0, (base.confluence_score + score) / 2.0),
        base=base,
        **common,
    )

"""Averaging (scale-in) recommendations for VALID signals.

Advisory only: the plan lists where further entries could be added and
how the capital could be split across them.  Nothing here sizes or
places orders.

Rules:
  - Additional entries sit 3 %, 6 %, 10 % and 15 % from the initial
    entry, on the stop-loss side, and only where they remain strictly
    between entry and stop-loss.
  - Entries closer than 10 % are HIGH confidence, the rest MEDIUM.
  - Strategy: DCA when price is stretched against a trend that agrees
    with the signal, PYRAMID when momentum already runs with it,
    SCALE_IN otherwise.
"""

from typing import Optional

from signalcore.models.evidence import Bias
from signalcore.models.signal import (
    AveragingLevel,
    AveragingPlan,
    AveragingStrategy,
    Direction,
    SignalLevels,
)

ENTRY_DISTANCES_PCT: tuple[float, ...] = (3.0, 6.0, 10.0, 15.0)
HIGH_CONFIDENCE_BELOW_PCT = 10.0
MAX_ENTRIES = 5
MIN_ENTRY_SPACING_PCT = 2.0

# RSI bands for strategy selection
STRETCHED_LOW = 40.0
STRETCHED_HIGH = 60.0

_LEVEL_ALLOCATION_PCT: dict[int, float] = {2: 25.0, 3: 20.0, 4: 15.0, 5: 10.0}
_DEFAULT_LEVEL_ALLOCATION_PCT = 10.0

_STRATEGY_ALLOCATION: dict[AveragingStrategy, tuple[tuple[str, float], ...]] = {
    AveragingStrategy.DCA: (
        ("initial", 30.0), ("level2", 25.0), ("level3", 20.0),
        ("level4", 15.0), ("level5", 10.0),
    ),
    AveragingStrategy.PYRAMID: (
        ("initial", 40.0), ("level2", 30.0), ("level3", 20.0), ("level4", 10.0),
    ),
    AveragingStrategy.SCALE_IN: (
        ("initial", 35.0), ("level2", 30.0), ("level3", 25.0), ("level4", 10.0),
    ),
}

_SIGNAL_TREND = {Direction.LONG: Bias.BULLISH, Direction.SHORT: Bias.BEARISH}


def level_allocation(level: int) -> float:
    """Share of capital, in percent, for additional entry *level* (2-5)."""
    return _LEVEL_ALLOCATION_PCT.get(level, _DEFAULT_LEVEL_ALLOCATION_PCT)


def choose_strategy(
    direction: Direction,
    rsi: Optional[float],
    trend: Optional[Bias],
) -> AveragingStrategy:
    """Pick the averaging style from oscillator and trend context.

    A missing RSI reads as 50 (mid-range).
    """
    if direction is Direction.NEUTRAL:
        return AveragingStrategy.DCA
    rsi = 50.0 if rsi is None else rsi
    if trend is not _SIGNAL_TREND[direction]:
        return AveragingStrategy.SCALE_IN

    # "Stretched" means price moved against the signal, momentum means with it
    stretched = rsi < STRETCHED_LOW if direction is Direction.LONG else rsi > STRETCHED_HIGH
    running = rsi > STRETCHED_HIGH if direction is Direction.LONG else rsi < STRETCHED_LOW
    if stretched:
        return AveragingStrategy.DCA
    if running:
        return AveragingStrategy.PYRAMID
    return AveragingStrategy.SCALE_IN


def additional_entry_levels(
    entry: float,
    stop_loss: float,
    direction: Direction,
) -> tuple[AveragingLevel, ...]:
    """Entries beyond the initial one that stay strictly inside the stop.

    Raises:
        ValueError: If *entry* is not positive or *direction* is NEUTRAL.
    """
    if entry <= 0:
        raise ValueError(f"entry must be positive, got {entry}")
    if direction is Direction.NEUTRAL:
        raise ValueError("averaging levels need a long or short direction")

    levels = []
    for index, distance in enumerate(ENTRY_DISTANCES_PCT):
        price = entry * (1 - direction.sign * distance / 100.0)
        inside = price > stop_loss if direction is Direction.LONG else price < stop_loss
        if not inside:
            continue
        number = index + 2
        levels.append(AveragingLevel(
            level=number,
            price=price,
            distance_pct=distance,
            allocation_pct=level_allocation(number),
            confidence="HIGH" if distance < HIGH_CONFIDENCE_BELOW_PCT else "MEDIUM",
        ))
    return tuple(levels)


def build_averaging_plan(
    direction: Direction,
    levels: SignalLevels,
    rsi: Optional[float] = None,
    trend: Optional[Bias] = None,
    max_total_risk_pct: float = 3.0,
) -> AveragingPlan:
    """Averaging plan for a signal with *levels* in *direction*.

    Args:
        direction: LONG or SHORT.
        levels: Entry, stop-loss and take-profit of the signal.
        rsi: Latest oscillator value, if known.
        trend: Higher-timeframe trend, if known.
        max_total_risk_pct: Ceiling on combined risk across all entries.

    Raises:
        ValueError: If *direction* is NEUTRAL or the entry is not positive.
    """
    strategy = choose_strategy(direction, rsi, trend)
    stop_side = "below the lowest" if direction is Direction.LONG else "above the highest"
    return AveragingPlan(
        strategy=strategy,
        levels=additional_entry_levels(levels.entry, levels.stop_loss, direction),
        allocation=_STRATEGY_ALLOCATION[strategy],
        max_total_risk_pct=max_total_risk_pct,
        max_entries=MAX_ENTRIES,
        min_entry_spacing_pct=MIN_ENTRY_SPACING_PCT,
        safeguards=(
            f"Never exceed {max_total_risk_pct:g}% total risk per symbol",
            f"At most {MAX_ENTRIES} entries per position",
            f"Keep at least {MIN_ENTRY_SPACING_PCT:g}% between entries",
            f"Stop-loss stays {stop_side} entry",
            "Re-check the technical picture before each additional entry",
        ),
    )

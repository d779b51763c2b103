"""Stop-loss validation and take-profit calculation — pure math, no I/O.

Stop-loss rules:
    The stop must sit below entry for a long and above it for a short.
    Its distance from entry may not exceed the per-unit risk ceiling.
    When S/R levels are supplied, a stop that is not placed just beyond a
    structural level is flagged with a warning (not a failure).

Take-profit rule:
    TP = entry ± ratio × |entry − SL|, with the ratio never below the floor.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from signalcore.models.evidence import LevelKind, PriceLevel
from signalcore.models.signal import Direction


@dataclass(frozen=True)
class StopLossValidation:
    """Outcome of :func:`validate_stop_loss`."""

    valid: bool
    direction: Direction
    risk_percent: float  # |entry − SL| as % of entry
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    reason: Optional[str] = None


def infer_direction(entry: float, stop_loss: float) -> Direction:
    """Direction implied by the side of the stop (neutral when equal)."""
    if stop_loss < entry:
        return Direction.LONG
    if stop_loss > entry:
        return Direction.SHORT
    return Direction.NEUTRAL


def validate_stop_loss(
    entry: float,
    stop_loss: float,
    direction: Optional[Direction] = None,
    levels: Sequence[PriceLevel] = (),
    max_stop_distance_pct: float = 10.0,
    anchor_tolerance_pct: float = 0.5,
) -> StopLossValidation:
    """Check that a stop-loss is on the right side and not too far away.

    Args:
        entry: Entry price.
        stop_loss: Proposed stop-loss price.
        direction: Trade direction.  Inferred from the stop side if omitted.
        levels: Optional S/R levels used for the anchoring check.
        max_stop_distance_pct: Per-unit risk ceiling in percent of entry.
        anchor_tolerance_pct: How far beyond a level (in % of entry) the
            stop may sit and still count as anchored to it.

    Returns:
        ``StopLossValidation``.
    """
    if entry <= 0:
        raise ValueError(f"entry must be positive, got {entry}")

    implied = infer_direction(entry, stop_loss)
    direction = direction or implied
    risk_percent = abs(entry - stop_loss) / entry * 100.0

    errors: list[str] = []
    warnings: list[str] = []
    reason = None

    if implied is Direction.NEUTRAL or implied is not direction:
        side = "below" if direction is Direction.LONG else "above"
        errors.append(
            f"Stop-loss {stop_loss} must be {side} entry {entry} for a "
            f"{direction.value} trade"
        )
        reason = "invalid_stop_loss"

    if risk_percent > max_stop_distance_pct:
        errors.append(
            f"Stop-loss risk {risk_percent:.2f}% exceeds the "
            f"{max_stop_distance_pct:.2f}% ceiling"
        )
        reason = reason or "stop_loss_too_wide"

    if not errors and levels:
        if not _is_anchored(entry, stop_loss, direction, levels, anchor_tolerance_pct):
            anchor = "support" if direction is Direction.LONG else "resistance"
            warnings.append(
                f"Stop-loss is not anchored beyond a {anchor} level; "
                f"consider placing it just past structure"
            )

    return StopLossValidation(
        valid=not errors,
        direction=direction,
        risk_percent=risk_percent,
        errors=tuple(errors),
        warnings=tuple(warnings),
        reason=reason,
    )


def _is_anchored(
    entry: float,
    stop_loss: float,
    direction: Direction,
    levels: Sequence[PriceLevel],
    tolerance_pct: float,
) -> bool:
    """True when the stop sits just beyond a level of the protecting kind."""
    tolerance = entry * tolerance_pct / 100.0
    if direction is Direction.LONG:
        return any(
            lv.kind is LevelKind.SUPPORT
            and lv.price < entry
            and lv.price - tolerance <= stop_loss < lv.price
            for lv in levels
        )
    return any(
        lv.kind is LevelKind.RESISTANCE
        and lv.price > entry
        and lv.price < stop_loss <= lv.price + tolerance
        for lv in levels
    )


def calculate_take_profit(
    entry: float,
    stop_loss: float,
    rr_ratio: float = 2.0,
    direction: Optional[Direction] = None,
    min_rr_floor: float = 2.0,
) -> float:
    """Calculate the take-profit price for a reward:risk ratio.

    - **Long**:  TP = entry + ratio × |entry − SL|
    - **Short**: TP = entry − ratio × |entry − SL|

    Args:
        entry: Entry price.
        stop_loss: Stop-loss price.
        rr_ratio: Reward:risk ratio (default 2.0).
        direction: Trade direction.  Inferred from the stop side if omitted.
        min_rr_floor: Lowest ratio accepted.

    Returns:
        Take-profit price.

    Raises:
        ValueError: If *rr_ratio* is below the floor, the stop equals
            entry, or *direction* is neutral.
    """
    if rr_ratio < min_rr_floor:
        raise ValueError(
            f"rr_ratio must be at least {min_rr_floor}, got {rr_ratio}"
        )
    risk = abs(entry - stop_loss)
    if risk == 0:
        raise ValueError("stop_loss must differ from entry")

    direction = direction or infer_direction(entry, stop_loss)
    if direction is Direction.NEUTRAL:
        raise ValueError("direction must be 'long' or 'short'")

    return entry + direction.sign * rr_ratio * risk

"""Breakeven check — advises moving the stop to entry once a trade is in profit.

Rule:
  - Gain is measured as a percentage of the risk distance |entry − SL|.
  - At or above the threshold (default 40 %) → move SL to entry.
  - A stop already at or beyond entry is never moved back.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from signalcore.models.signal import Direction
from signalcore.risk.sl_tp import infer_direction


class BreakevenAction(str, Enum):
    HOLD = "hold"
    MOVE_TO_BREAKEVEN = "move_to_breakeven"


@dataclass(frozen=True)
class BreakevenDecision:
    action: BreakevenAction
    profit_pct_of_risk: float
    new_stop_loss: float
    message: str


def check_breakeven(
    entry: float,
    current_price: float,
    current_stop_loss: float,
    profit_threshold_pct: float = 40.0,
    direction: Optional[Direction] = None,
) -> BreakevenDecision:
    """Decide whether the stop-loss should be moved to entry.

    Args:
        entry: Original entry price.
        current_price: Latest market price.
        current_stop_loss: Stop-loss currently in place.
        profit_threshold_pct: Gain, in percent of the risk distance,
            required before protecting the position.
        direction: Trade direction.  Required once the stop has been
            moved to or past entry; otherwise inferred from the stop side.

    Returns:
        ``BreakevenDecision``; ``new_stop_loss`` equals the current stop
        when the action is ``HOLD``.
    """
    direction = direction or infer_direction(entry, current_stop_loss)

    protected = (
        direction is Direction.NEUTRAL
        or (direction is Direction.LONG and current_stop_loss >= entry)
        or (direction is Direction.SHORT and current_stop_loss <= entry)
    )
    if protected:
        return BreakevenDecision(
            action=BreakevenAction.HOLD,
            profit_pct_of_risk=0.0,
            new_stop_loss=current_stop_loss,
            message="Stop-loss already at or beyond breakeven",
        )

    risk = abs(entry - current_stop_loss)
    gain = (current_price - entry) * direction.sign
    profit_pct = gain / risk * 100.0

    if profit_pct < profit_threshold_pct:
        return BreakevenDecision(
            action=BreakevenAction.HOLD,
            profit_pct_of_risk=profit_pct,
            new_stop_loss=current_stop_loss,
            message=(
                f"Profit {profit_pct:.1f}% of risk; waiting for "
                f"{profit_threshold_pct:.1f}% before protecting"
            ),
        )

    return BreakevenDecision(
        action=BreakevenAction.MOVE_TO_BREAKEVEN,
        profit_pct_of_risk=profit_pct,
        new_stop_loss=entry,
        message=f"Protect profits: move stop-loss to breakeven ({entry})",
    )

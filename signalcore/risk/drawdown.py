"""Losing-streak and drawdown detection — pure math, no I/O.

Counts trailing consecutive losses and the cumulative drawdown from the
initial balance.  Both flags are advisory: nothing here stops trading.
"""

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class StreakReport:
    consecutive_losses: int
    drawdown_pct: float
    should_pause: bool
    emergency_stop: bool
    recommendations: tuple[str, ...] = ()


def count_consecutive_losses(trade_pnls: Sequence[float]) -> int:
    """Number of losing trades at the end of *trade_pnls* (oldest first)."""
    losses = 0
    for pnl in reversed(trade_pnls):
        if pnl >= 0:
            break
        losses += 1
    return losses


def check_losing_streak(
    trade_pnls: Sequence[float],
    current_balance: float,
    initial_balance: float,
    max_consecutive_losses: int = 3,
    emergency_drawdown_pct: float = 20.0,
) -> StreakReport:
    """Evaluate recent results for a pause or emergency-stop recommendation.

    Args:
        trade_pnls: Closed-trade P&Ls, oldest first.
        current_balance: Balance now.
        initial_balance: Balance the drawdown is measured from.
        max_consecutive_losses: Losses in a row that recommend a pause.
        emergency_drawdown_pct: Drawdown (%) that recommends stopping.

    Raises:
        ValueError: If *initial_balance* is not positive.
    """
    if initial_balance <= 0:
        raise ValueError(
            f"initial_balance must be positive, got {initial_balance}"
        )

    losses = count_consecutive_losses(trade_pnls)
    drawdown_pct = (initial_balance - current_balance) / initial_balance * 100.0

    recommendations = []
    should_pause = losses >= max_consecutive_losses
    if should_pause:
        recommendations.append(
            f"{losses} consecutive losses: pause and review the strategy"
        )
    emergency_stop = drawdown_pct >= emergency_drawdown_pct
    if emergency_stop:
        recommendations.append(
            f"Critical drawdown {drawdown_pct:.2f}%: stop trading immediately"
        )

    return StreakReport(
        consecutive_losses=losses,
        drawdown_pct=drawdown_pct,
        should_pause=should_pause,
        emergency_stop=emergency_stop,
        recommendations=tuple(recommendations),
    )

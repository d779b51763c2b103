"""Direction and price levels — pure functions, no I/O.

Direction comes from the confluence result: the score must clear the
gate and the net directional weight must sit outside a deadband.

Levels (market entry at the current price):
    SL — just beyond the best qualifying support (long) / resistance
         (short), ranked by distance ÷ strength.  Falls back to a fixed
         percentage offset when nothing qualifies.
    TP — nearest opposing structural level (S/R or Fibonacci extension)
         that still meets the minimum reward:risk.  Falls back to the
         ratio-derived target.
"""

import logging
from typing import Optional

from signalcore.config import EngineConfig
from signalcore.errors import LevelInvariantError
from signalcore.models.evidence import Evidence, LevelKind
from signalcore.models.signal import ConfluenceResult, Direction, SignalLevels
from signalcore.risk.sl_tp import calculate_take_profit


def determine_direction(
    result: ConfluenceResult,
    min_confluence_score: float = 70.0,
    deadband: float = 5.0,
) -> Direction:
    """Pick long / short from the net factor weight, or neutral.

    Neutral when the score is below *min_confluence_score* or the net
    directional weight is within ±*deadband*.
    """
    if result.score < min_confluence_score:
        return Direction.NEUTRAL
    net = result.net_weight
    if net > deadband:
        return Direction.LONG
    if net < -deadband:
        return Direction.SHORT
    return Direction.NEUTRAL


def check_level_order(direction: Direction, levels: SignalLevels) -> None:
    """Raise ``LevelInvariantError`` unless the levels are ordered for *direction*.

    - Long:  SL < entry < TP
    - Short: TP < entry < SL
    """
    if min(levels.entry, levels.stop_loss, levels.take_profit) <= 0:
        raise LevelInvariantError(f"Levels must be positive prices: {levels}")
    if direction is Direction.LONG:
        ordered = levels.stop_loss < levels.entry < levels.take_profit
    elif direction is Direction.SHORT:
        ordered = levels.take_profit < levels.entry < levels.stop_loss
    else:
        raise LevelInvariantError("Levels cannot be computed for a neutral direction")
    if not ordered:
        raise LevelInvariantError(
            f"Mis-ordered {direction.value} levels: entry={levels.entry}, "
            f"stop_loss={levels.stop_loss}, take_profit={levels.take_profit}"
        )


class LevelCalculator:
    """Computes entry / stop-loss / take-profit for a directional trade."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._logger = logger or logging.getLogger("signalcore.levels")

    def calculate(
        self,
        evidence: Evidence,
        direction: Direction,
        min_risk_reward: Optional[float] = None,
    ) -> SignalLevels:
        """Compute levels for *direction*.

        Args:
            evidence: Evidence supplying price and structural levels.
            direction: ``LONG`` or ``SHORT``.
            min_risk_reward: Required reward:risk; defaults to the config's
                ``min_risk_reward``.

        Raises:
            LevelInvariantError: If the resulting levels are mis-ordered.
        """
        if direction is Direction.NEUTRAL:
            raise LevelInvariantError("Levels cannot be computed for a neutral direction")
        min_rr = min_risk_reward or self._config.min_risk_reward

        entry = evidence.current_price
        stop_loss, sl_source = self._stop_loss(evidence, direction, entry)
        take_profit, tp_source = self._take_profit(
            evidence, direction, entry, stop_loss, min_rr,
        )
        levels = SignalLevels(entry=entry, stop_loss=stop_loss, take_profit=take_profit)
        check_level_order(direction, levels)

        self._logger.debug(
            "%s %s levels: entry=%.6g sl=%.6g (%s) tp=%.6g (%s)",
            evidence.symbol, direction.value, entry,
            stop_loss, sl_source, take_profit, tp_source,
        )
        return levels

    def _stop_loss(
        self, evidence: Evidence, direction: Direction, entry: float,
    ) -> tuple[float, str]:
        cfg = self._config
        margin = cfg.stop_margin_pct / 100.0

        candidates: list[tuple[float, float]] = []  # (rank, price)
        for level in evidence.levels:
            if level.strength < cfg.min_sr_strength or level.strength <= 0:
                continue
            if direction is Direction.LONG:
                if level.kind is not LevelKind.SUPPORT or level.price >= entry:
                    continue
                price = level.price * (1.0 - margin)
            else:
                if level.kind is not LevelKind.RESISTANCE or level.price <= entry:
                    continue
                price = level.price * (1.0 + margin)

            distance_pct = abs(entry - price) / entry * 100.0
            if cfg.min_stop_distance_pct <= distance_pct <= cfg.max_stop_distance_pct:
                candidates.append((distance_pct / (level.strength / 100.0), price))

        if candidates:
            return min(candidates)[1], "structure"

        offset = cfg.stop_loss_fallback_pct / 100.0
        return entry * (1.0 - direction.sign * offset), "fallback"

    def _take_profit(
        self,
        evidence: Evidence,
        direction: Direction,
        entry: float,
        stop_loss: float,
        min_rr: float,
    ) -> tuple[float, str]:
        risk = abs(entry - stop_loss)
        if risk == 0:
            # Degenerate stop; check_level_order rejects it
            return entry, "none"
        min_reward = risk * min_rr

        target_kind = LevelKind.RESISTANCE if direction is Direction.LONG else LevelKind.SUPPORT
        targets = [lv.price for lv in evidence.levels if lv.kind is target_kind]
        if evidence.fibonacci is not None:
            targets.extend(ext.price for ext in evidence.fibonacci.extensions)

        qualifying = [
            price for price in targets
            if (price - entry) * direction.sign >= min_reward
        ]
        if qualifying:
            return min(qualifying, key=lambda p: abs(p - entry)), "structure"

        return calculate_take_profit(
            entry,
            stop_loss,
            rr_ratio=min_rr,
            direction=direction,
            min_rr_floor=min(min_rr, self._config.risk_reward_floor),
        ), "ratio"

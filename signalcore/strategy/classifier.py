"""Signal classifier — turns one evidence snapshot into a terminal Signal.

Stages, in order:
    score → direction → levels → risk validation → quality filters → classify

Every call produces exactly one Signal (NEUTRAL, REJECTED, FILTERED or
VALID) and records it in the shared ``RunningStats``.  VALID signals also
carry an advisory averaging plan.  Rejections are outcomes, not exceptions;
only a level-ordering defect raises.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from signalcore.config import EngineConfig
from signalcore.errors import LevelInvariantError
from signalcore.models.evidence import Bias, Evidence, PriceLevel
from signalcore.models.signal import (
    AccountContext,
    ConfluenceResult,
    Direction,
    Recommendation,
    Signal,
    SignalLevels,
    SignalType,
)
from signalcore.risk.averaging import build_averaging_plan
from signalcore.risk.position_sizer import size_position
from signalcore.risk.sl_tp import validate_stop_loss
from signalcore.strategy.confluence import ConfluenceScorer
from signalcore.strategy.filters import generate_alerts, run_quality_filters
from signalcore.strategy.levels import LevelCalculator, determine_direction
from signalcore.strategy.stats import RunningStats

MIN_COUNTER_TREND_RISK_PCT = 0.1

_TREND_DIRECTION = {Bias.BULLISH: Direction.LONG, Bias.BEARISH: Direction.SHORT}


def is_counter_trend(direction: Direction, trend: Optional[Bias]) -> bool:
    """``True`` when *direction* opposes a bullish or bearish *trend*."""
    trend_direction = _TREND_DIRECTION.get(trend)
    if trend_direction is None or direction is Direction.NEUTRAL:
        return False
    return trend_direction is not direction


def nearby_levels(evidence: Evidence, within_pct: float = 3.0) -> tuple[PriceLevel, ...]:
    """S/R levels within *within_pct* of price, closest first."""
    price = evidence.current_price
    close = [
        lv for lv in evidence.levels
        if abs(lv.price - price) / price * 100.0 <= within_pct
    ]
    return tuple(sorted(close, key=lambda lv: abs(lv.price - price)))


class SignalClassifier:
    """Runs the decision pipeline for one symbol at a time.

    Args:
        config: Engine thresholds.
        stats: Shared counters, updated once per returned signal.
        logger: Optional logger; defaults to ``signalcore.classifier``.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        config: EngineConfig,
        stats: RunningStats,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._stats = stats
        self._logger = logger or logging.getLogger("signalcore.classifier")
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._scorer = ConfluenceScorer(config, self._logger.getChild("confluence"))
        self._levels = LevelCalculator(config, self._logger)

    @property
    def config(self) -> EngineConfig:
        return self._config

    def classify(self, evidence: Evidence, account: AccountContext) -> Signal:
        """Evaluate *evidence* for *account* and return the terminal signal.

        Raises:
            LevelInvariantError: If the computed levels are mis-ordered.
        """
        cfg = self._config
        now = self._clock()
        confluence = self._scorer.score(evidence)
        direction = determine_direction(
            confluence, cfg.min_confluence_score, cfg.direction_deadband,
        )

        if direction is Direction.NEUTRAL:
            if confluence.score < cfg.min_confluence_score:
                reason = (
                    f"Confluence {confluence.score:.1f} below "
                    f"{cfg.min_confluence_score:.1f}"
                )
            else:
                reason = (
                    f"No clear directional bias (net weight "
                    f"{confluence.net_weight:+.2f})"
                )
            return self._finish(Signal(
                symbol=evidence.symbol,
                timeframe=evidence.timeframe,
                type=SignalType.NEUTRAL,
                direction=Direction.NEUTRAL,
                current_price=evidence.current_price,
                confluence_score=confluence.score,
                recommendation=Recommendation.WAIT,
                reason=reason,
                created_at=now,
                interpretation=confluence.interpretation,
                factors=confluence.factors,
            ))

        counter_trend = is_counter_trend(direction, evidence.trend)
        min_rr = (
            cfg.min_risk_reward_counter_trend if counter_trend else cfg.min_risk_reward
        )

        try:
            levels = self._levels.calculate(evidence, direction, min_rr)
        except LevelInvariantError as exc:
            self._logger.error(
                "Level invariant violated for %s %s: %s",
                evidence.symbol, evidence.timeframe, exc,
            )
            raise

        risk_percent = account.risk_percent
        if risk_percent is None:
            risk_percent = cfg.max_risk_per_trade
        if counter_trend:
            risk_percent = max(
                risk_percent * cfg.counter_trend_risk_multiplier,
                MIN_COUNTER_TREND_RISK_PCT,
            )

        sizing = size_position(
            balance=account.balance,
            entry=levels.entry,
            stop_loss=levels.stop_loss,
            risk_percent=risk_percent,
            leverage=account.leverage,
            max_risk_percent=cfg.absolute_max_risk,
            max_leverage=cfg.max_leverage,
        )
        stop_check = validate_stop_loss(
            levels.entry,
            levels.stop_loss,
            direction=direction,
            levels=evidence.levels,
            max_stop_distance_pct=cfg.stop_loss_ceiling_pct,
            anchor_tolerance_pct=cfg.stop_anchor_tolerance_pct,
        )
        warnings = sizing.warnings + stop_check.errors + stop_check.warnings

        if not sizing.valid or not stop_check.valid:
            reason = sizing.reason or stop_check.reason
            self._logger.info(
                "%s %s rejected: %s", evidence.symbol, direction.value, reason,
            )
            return self._finish(self._directional_signal(
                evidence, confluence, direction, levels, now,
                type=SignalType.REJECTED,
                recommendation=Recommendation.AVOID,
                reason=reason,
                warnings=warnings,
                counter_trend=counter_trend,
                position_size=sizing.position_size,
                leverage=sizing.leverage,
                required_capital=sizing.required_capital,
            ))

        failed = run_quality_filters(evidence, levels, cfg, counter_trend)
        if failed:
            self._logger.info(
                "%s %s filtered: %s", evidence.symbol, direction.value,
                ", ".join(f.name for f in failed),
            )
            return self._finish(self._directional_signal(
                evidence, confluence, direction, levels, now,
                type=SignalType.FILTERED,
                recommendation=Recommendation.WAIT,
                reason="Quality filters failed: " + ", ".join(f.name for f in failed),
                warnings=warnings,
                counter_trend=counter_trend,
                failed_filters=tuple(failed),
            ))

        return self._finish(self._directional_signal(
            evidence, confluence, direction, levels, now,
            type=SignalType.VALID,
            recommendation=Recommendation.ENTER,
            reason=(
                f"{confluence.interpretation.replace('_', ' ').capitalize()} "
                f"{direction.value} confluence ({confluence.score:.1f})"
                + (", counter-trend" if counter_trend else "")
            ),
            warnings=warnings,
            counter_trend=counter_trend,
            position_size=sizing.position_size,
            leverage=sizing.leverage,
            required_capital=sizing.required_capital,
            alerts=tuple(generate_alerts(evidence, confluence, cfg)),
            nearby_levels=nearby_levels(evidence, cfg.nearby_level_pct),
            valid_until=now + timedelta(seconds=cfg.signal_validity_seconds),
            averaging=build_averaging_plan(
                direction, levels, evidence.rsi, evidence.trend,
                max_total_risk_pct=cfg.absolute_max_risk,
            ),
        ))

    # ── Internal ─────────────────────────────────────────────────────────

    def _directional_signal(
        self,
        evidence: Evidence,
        confluence: ConfluenceResult,
        direction: Direction,
        levels: SignalLevels,
        now: datetime,
        **fields,
    ) -> Signal:
        return Signal(
            symbol=evidence.symbol,
            timeframe=evidence.timeframe,
            direction=direction,
            current_price=evidence.current_price,
            confluence_score=confluence.score,
            created_at=now,
            interpretation=confluence.interpretation,
            levels=levels,
            risk_reward=levels.risk_reward,
            factors=confluence.factors,
            **fields,
        )

    def _finish(self, signal: Signal) -> Signal:
        self._stats.record(signal)
        self._logger.debug(
            "%s %s → %s (%s, score %.1f)",
            signal.symbol, signal.timeframe, signal.type.value,
            signal.direction.value, signal.confluence_score,
        )
        return signal

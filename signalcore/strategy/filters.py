"""Quality filters and advisory alerts — pure functions, no I/O.

Filters run only after risk validation passes.  They are evaluated
exhaustively so the caller sees every failing reason at once:

    high_volatility                  percentile above the ceiling while expanding
    extreme_rsi                      RSI beyond the stricter secondary thresholds
    insufficient_risk_reward         achieved reward:risk below the minimum
    countertrend_in_high_volatility  counter-trend trade while volatility expands

Alerts never block a signal; they annotate VALID signals.
"""

from signalcore.config import EngineConfig
from signalcore.models.evidence import Evidence
from signalcore.models.signal import (
    ConfluenceResult,
    FailedFilter,
    SignalAlert,
    SignalLevels,
)

# Absorbs float noise when the TP sits exactly at the minimum ratio
RR_TOLERANCE = 1e-9


def is_volatility_acceptable(
    evidence: Evidence,
    max_percentile: float = 90.0,
) -> bool:
    """``False`` when volatility is above *max_percentile* and expanding."""
    vol = evidence.volatility
    if vol is None:
        return True
    return not (vol.expansion and vol.percentile > max_percentile)


def is_rsi_acceptable(
    evidence: Evidence,
    extreme_low: float = 20.0,
    extreme_high: float = 80.0,
) -> bool:
    """``False`` when the latest RSI is beyond either extreme threshold."""
    rsi = evidence.rsi
    if rsi is None:
        return True
    return extreme_low <= rsi <= extreme_high


def is_risk_reward_acceptable(levels: SignalLevels, min_risk_reward: float = 2.0) -> bool:
    rr = levels.risk_reward
    return rr is not None and rr >= min_risk_reward - RR_TOLERANCE


def run_quality_filters(
    evidence: Evidence,
    levels: SignalLevels,
    config: EngineConfig,
    counter_trend: bool = False,
) -> list[FailedFilter]:
    """Return every failed filter (empty when the signal passes).

    Args:
        evidence: Evidence the signal was built from.
        levels: Computed entry / stop-loss / take-profit.
        config: Thresholds.
        counter_trend: Whether the trade opposes the provider's trend; the
            reward:risk minimum is stricter and expansion is not tolerated.
    """
    failed: list[FailedFilter] = []

    if not is_volatility_acceptable(evidence, config.max_volatility_percentile):
        failed.append(FailedFilter(
            name="high_volatility",
            reason=(
                f"Volatility percentile {evidence.volatility.percentile:.1f} above "
                f"{config.max_volatility_percentile:.1f} while expanding"
            ),
        ))

    if not is_rsi_acceptable(evidence, config.rsi_extreme_low, config.rsi_extreme_high):
        failed.append(FailedFilter(
            name="extreme_rsi",
            reason=f"RSI at extreme ({evidence.rsi:.1f}); reversal risk",
        ))

    min_rr = (
        config.min_risk_reward_counter_trend if counter_trend
        else config.min_risk_reward
    )
    if not is_risk_reward_acceptable(levels, min_rr):
        rr = levels.risk_reward or 0.0
        failed.append(FailedFilter(
            name="insufficient_risk_reward",
            reason=(
                f"Reward:risk {rr:.2f}:1 below the required {min_rr:.2f}:1"
                + (" (counter-trend)" if counter_trend else "")
            ),
        ))

    if counter_trend and evidence.volatility is not None and evidence.volatility.expansion:
        failed.append(FailedFilter(
            name="countertrend_in_high_volatility",
            reason=(
                f"Counter-trend trade during volatility expansion "
                f"(percentile {evidence.volatility.percentile:.1f})"
            ),
        ))

    return failed


def generate_alerts(
    evidence: Evidence,
    confluence: ConfluenceResult,
    config: EngineConfig,
) -> list[SignalAlert]:
    """Advisory notes attached to VALID signals."""
    alerts = []
    if confluence.score < config.moderate_confluence_alert:
        alerts.append(SignalAlert(
            level="warning",
            message=f"Confluence moderate ({confluence.score:.1f}); monitor closely",
        ))

    rsi = evidence.rsi
    if rsi is not None and (rsi > config.rsi_alert_high or rsi < config.rsi_alert_low):
        alerts.append(SignalAlert(
            level="caution",
            message=f"RSI near extreme ({rsi:.1f}); possible reversal",
        ))

    if evidence.volatility is not None and evidence.volatility.expansion:
        alerts.append(SignalAlert(
            level="info",
            message=f"Volatility elevated (percentile {evidence.volatility.percentile:.1f})",
        ))
    return alerts

"""SignalCore — engine configuration.

Loads optional .env variables into a typed, immutable config object.
Every threshold has a default, so an empty environment is valid.
"""

import os
from dataclasses import asdict, dataclass, fields, replace

from dotenv import load_dotenv


# env var → (field name, parser)
_ENV_VARS: dict[str, tuple[str, type]] = {
    "MIN_CONFLUENCE_SCORE": ("min_confluence_score", float),
    "MIN_RISK_REWARD": ("min_risk_reward", float),
    "MAX_RISK_PER_TRADE": ("max_risk_per_trade", float),
    "MAX_LEVERAGE": ("max_leverage", float),
    "RSI_OVERBOUGHT": ("rsi_overbought", float),
    "RSI_OVERSOLD": ("rsi_oversold", float),
    "BREAKEVEN_PROFIT_THRESHOLD": ("breakeven_profit_threshold", float),
    "MAX_CONSECUTIVE_LOSSES": ("max_consecutive_losses", int),
    "EMERGENCY_DRAWDOWN_PCT": ("emergency_drawdown_pct", float),
    "MTF_MIN_TIMEFRAMES": ("mtf_min_timeframes", int),
    "MTF_MAJORITY_PCT": ("mtf_majority_pct", float),
    "MTF_PRIMARY_TIMEFRAME": ("mtf_primary_timeframe", str),
    "CACHE_MAX_SIZE": ("cache_max_size", int),
    "CACHE_TTL_SECONDS": ("cache_ttl_seconds", float),
    "CACHE_SWEEP_SECONDS": ("cache_sweep_seconds", float),
    "LOG_LEVEL": ("log_level", str),
    "API_PORT": ("api_port", int),
}


@dataclass(frozen=True)
class EngineConfig:
    """Thresholds for scoring, levels, risk, filters and the signal cache."""

    # Direction gate
    min_confluence_score: float = 70.0
    direction_deadband: float = 5.0

    # Reward:risk
    min_risk_reward: float = 2.0
    min_risk_reward_counter_trend: float = 2.5
    risk_reward_floor: float = 2.0

    # Position sizing
    max_risk_per_trade: float = 2.0  # risk % used for each signal
    absolute_max_risk: float = 3.0  # hard ceiling for any risk %
    max_leverage: float = 20.0
    counter_trend_risk_multiplier: float = 0.7

    # Oscillator
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    rsi_extreme_high: float = 80.0
    rsi_extreme_low: float = 20.0
    rsi_alert_high: float = 75.0
    rsi_alert_low: float = 25.0

    # Evidence qualification
    min_sr_strength: float = 50.0
    min_pattern_confidence: float = 50.0
    sr_proximity_pct: float = 2.0
    golden_pocket_pct: float = 1.0
    score_multiplier: float = 1.5

    # Volatility
    max_volatility_percentile: float = 90.0

    # Stop-loss placement
    stop_margin_pct: float = 0.2
    min_stop_distance_pct: float = 0.5
    max_stop_distance_pct: float = 3.0
    stop_loss_fallback_pct: float = 2.0
    stop_loss_ceiling_pct: float = 10.0
    stop_anchor_tolerance_pct: float = 0.5

    # Alerts
    moderate_confluence_alert: float = 80.0

    # Position management
    breakeven_profit_threshold: float = 40.0
    max_consecutive_losses: int = 3
    emergency_drawdown_pct: float = 20.0

    # Signal lifetime
    signal_validity_seconds: int = 1800
    nearby_level_pct: float = 3.0

    # Multi-timeframe synthesis
    mtf_min_timeframes: int = 3
    mtf_majority_pct: float = 60.0
    mtf_primary_timeframe: str = "5m"
    mtf_success_score: float = 60.0

    # Cache
    cache_max_size: int = 200
    cache_ttl_seconds: float = 900.0
    cache_sweep_seconds: float = 300.0

    # Process
    log_level: str = "INFO"
    api_port: int = 8080

    def __post_init__(self) -> None:
        errors = []
        if not 0 <= self.min_confluence_score <= 100:
            errors.append("min_confluence_score must be within 0-100")
        if self.risk_reward_floor <= 0:
            errors.append("risk_reward_floor must be positive")
        if self.min_risk_reward < self.risk_reward_floor:
            errors.append(
                f"min_risk_reward must be >= {self.risk_reward_floor}"
            )
        if not 0 < self.max_risk_per_trade <= self.absolute_max_risk:
            errors.append(
                f"max_risk_per_trade must be within (0, {self.absolute_max_risk}]"
            )
        if self.max_leverage < 1:
            errors.append("max_leverage must be >= 1")
        if not 0 < self.rsi_oversold < self.rsi_overbought < 100:
            errors.append("rsi thresholds must satisfy 0 < oversold < overbought < 100")
        if self.max_consecutive_losses < 1:
            errors.append("max_consecutive_losses must be >= 1")
        if self.mtf_min_timeframes < 1:
            errors.append("mtf_min_timeframes must be >= 1")
        if not 0 < self.mtf_majority_pct <= 100:
            errors.append("mtf_majority_pct must be within (0, 100]")
        if self.cache_max_size < 1:
            errors.append("cache_max_size must be >= 1")
        if self.cache_ttl_seconds <= 0:
            errors.append("cache_ttl_seconds must be positive")
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))

    def updated(self, **changes) -> "EngineConfig":
        """Return a validated copy with *changes* applied.

        Raises ``ValueError`` for unknown option names.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown config option(s): {', '.join(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(env_path: str | None = None) -> EngineConfig:
    """Load configuration from environment variables.

    Raises ``ValueError`` naming the variable when a value cannot be parsed.
    """
    load_dotenv(dotenv_path=env_path)

    overrides = {}
    for var, (name, parser) in _ENV_VARS.items():
        raw = os.environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            overrides[name] = parser(raw)
        except ValueError:
            raise ValueError(
                f"Environment variable {var} has an invalid value: {raw!r}"
            ) from None

    return EngineConfig(**overrides)

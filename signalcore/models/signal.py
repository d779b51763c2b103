"""Signal data models — typed representations of engine outputs."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from signalcore.models.evidence import PriceLevel


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"
    NEUTRAL = "neutral"

    @property
    def sign(self) -> int:
        """+1 for long, -1 for short, 0 for neutral."""
        return {"long": 1, "short": -1}.get(self.value, 0)


class SignalType(str, Enum):
    VALID = "VALID"
    NEUTRAL = "NEUTRAL"
    REJECTED = "REJECTED"
    FILTERED = "FILTERED"


class Recommendation(str, Enum):
    ENTER = "ENTER"
    WAIT = "WAIT"
    AVOID = "AVOID"


class FactorKind(str, Enum):
    """Confluence factor tags.

    ``cap`` bounds the magnitude of a single factor's weight.
    Non-directional kinds add conviction without favouring a side.
    """

    RSI_OVERSOLD = "rsi_oversold"
    RSI_OVERBOUGHT = "rsi_overbought"
    RSI_DIVERGENCE_BULLISH = "rsi_divergence_bullish"
    RSI_DIVERGENCE_BEARISH = "rsi_divergence_bearish"
    STRONG_SUPPORT = "strong_support"
    STRONG_RESISTANCE = "strong_resistance"
    VOLATILITY_SQUEEZE = "bbwp_squeeze"
    VOLATILITY_EXPANSION = "bbwp_expansion"
    NEAR_GOLDEN_POCKET = "near_golden_pocket"
    PATTERN_BULLISH = "pattern_bullish"
    PATTERN_BEARISH = "pattern_bearish"
    PATTERN_NEUTRAL = "pattern_neutral"

    @property
    def cap(self) -> float:
        return _FACTOR_CAPS[self]

    @property
    def directional(self) -> bool:
        return self not in _NON_DIRECTIONAL


_FACTOR_CAPS: dict[FactorKind, float] = {
    FactorKind.RSI_OVERSOLD: 40.0,
    FactorKind.RSI_OVERBOUGHT: 40.0,
    FactorKind.RSI_DIVERGENCE_BULLISH: 20.0,
    FactorKind.RSI_DIVERGENCE_BEARISH: 20.0,
    FactorKind.STRONG_SUPPORT: 12.0,
    FactorKind.STRONG_RESISTANCE: 12.0,
    FactorKind.VOLATILITY_SQUEEZE: 15.0,
    FactorKind.VOLATILITY_EXPANSION: 10.0,
    FactorKind.NEAR_GOLDEN_POCKET: 15.0,
    FactorKind.PATTERN_BULLISH: 15.0,
    FactorKind.PATTERN_BEARISH: 15.0,
    FactorKind.PATTERN_NEUTRAL: 15.0,
}

_NON_DIRECTIONAL = frozenset({
    FactorKind.VOLATILITY_SQUEEZE,
    FactorKind.VOLATILITY_EXPANSION,
    FactorKind.NEAR_GOLDEN_POCKET,
    FactorKind.PATTERN_NEUTRAL,
})


@dataclass(frozen=True)
class ConfluenceFactor:
    """One piece of weighted evidence.  Positive favours long."""

    kind: FactorKind
    weight: float
    detail: str = ""

    @classmethod
    def capped(cls, kind: FactorKind, weight: float, detail: str = "") -> "ConfluenceFactor":
        """Build a factor with its weight clamped to the kind's cap."""
        bounded = max(-kind.cap, min(kind.cap, weight))
        return cls(kind=kind, weight=round(bounded, 4), detail=detail)


@dataclass(frozen=True)
class ConfluenceResult:
    score: float  # 0-100
    factors: tuple[ConfluenceFactor, ...]
    bullish_weight: float
    bearish_weight: float  # <= 0
    neutral_weight: float
    interpretation: str

    @property
    def net_weight(self) -> float:
        """Net directional lean: positive long, negative short."""
        return self.bullish_weight + self.bearish_weight


@dataclass(frozen=True)
class SignalLevels:
    entry: float
    stop_loss: float
    take_profit: float

    @property
    def risk(self) -> float:
        return abs(self.entry - self.stop_loss)

    @property
    def reward(self) -> float:
        return abs(self.take_profit - self.entry)

    @property
    def risk_reward(self) -> Optional[float]:
        """Reward:risk ratio, ``None`` when the risk distance is zero."""
        if self.risk == 0:
            return None
        return self.reward / self.risk


@dataclass(frozen=True)
class RiskValidation:
    """Position sizing outcome.  Failures are reported, never raised."""

    valid: bool
    position_size: Optional[float]
    risk_amount: float
    leverage: float
    required_capital: Optional[float]
    warnings: tuple[str, ...] = ()
    position_value: Optional[float] = None
    risk_percent: float = 0.0
    per_unit_risk: float = 0.0
    reason: Optional[str] = None  # machine-readable code of the first failure


@dataclass(frozen=True)
class FailedFilter:
    name: str
    reason: str


@dataclass(frozen=True)
class SignalAlert:
    level: str  # "warning", "caution" or "info"
    message: str


class AveragingStrategy(str, Enum):
    DCA = "DCA"
    PYRAMID = "PYRAMID"
    SCALE_IN = "SCALE_IN"


@dataclass(frozen=True)
class AveragingLevel:
    """An additional entry between the initial entry and the stop-loss."""

    level: int  # 2-5; level 1 is the initial entry
    price: float
    distance_pct: float  # from the initial entry
    allocation_pct: float
    confidence: str  # "HIGH" or "MEDIUM"


@dataclass(frozen=True)
class AveragingPlan:
    """Advisory scale-in plan for a VALID signal.  Never sized or executed."""

    strategy: AveragingStrategy
    levels: tuple[AveragingLevel, ...]
    allocation: tuple[tuple[str, float], ...]  # ("initial", 30.0), ("level2", 25.0), ...
    max_total_risk_pct: float
    max_entries: int
    min_entry_spacing_pct: float
    safeguards: tuple[str, ...] = ()


@dataclass(frozen=True)
class Signal:
    """Terminal result of one evaluation.  Never mutated after construction."""

    symbol: str
    timeframe: str
    type: SignalType
    direction: Direction
    current_price: float
    confluence_score: float
    recommendation: Recommendation
    reason: str
    created_at: datetime
    interpretation: str = ""
    levels: Optional[SignalLevels] = None
    risk_reward: Optional[float] = None
    position_size: Optional[float] = None
    leverage: Optional[float] = None
    required_capital: Optional[float] = None
    factors: tuple[ConfluenceFactor, ...] = ()
    failed_filters: tuple[FailedFilter, ...] = ()
    alerts: tuple[SignalAlert, ...] = ()
    warnings: tuple[str, ...] = ()
    nearby_levels: tuple[PriceLevel, ...] = ()
    counter_trend: bool = False
    valid_until: Optional[datetime] = None
    averaging: Optional[AveragingPlan] = None

    @property
    def is_actionable(self) -> bool:
        return self.type is SignalType.VALID

    def to_dict(self) -> dict:
        """Plain record for transport (enums as values, datetimes as ISO)."""
        data = asdict(self)
        data["type"] = self.type.value
        data["direction"] = self.direction.value
        data["recommendation"] = self.recommendation.value
        data["created_at"] = self.created_at.isoformat()
        data["valid_until"] = (
            self.valid_until.isoformat() if self.valid_until else None
        )
        data["factors"] = [
            {"kind": f.kind.value, "weight": f.weight, "detail": f.detail}
            for f in self.factors
        ]
        data["nearby_levels"] = [
            {"price": lv.price, "kind": lv.kind.value, "strength": lv.strength}
            for lv in self.nearby_levels
        ]
        if self.averaging is not None:
            data["averaging"]["strategy"] = self.averaging.strategy.value
            data["averaging"]["allocation"] = dict(self.averaging.allocation)
        return data


@dataclass(frozen=True)
class TimeframeBreakdown:
    timeframe: str
    type: SignalType
    direction: Direction
    confluence_score: float
    weight: float


@dataclass(frozen=True)
class MultiTimeframeSignal:
    """Combined verdict over several timeframes of one symbol.

    ``type`` is VALID (with ``base`` set to the timeframe signal to act
    on), NEUTRAL when no timeframe produced a directional signal, or
    REJECTED when too few timeframes were usable or their directions
    disagree.  ``confluence_score`` is the weight-averaged score of the
    timeframes that agree with ``direction``.
    """

    symbol: str
    type: SignalType
    direction: Direction
    recommendation: Recommendation
    reason: str
    created_at: datetime
    confluence_score: float
    confluence_strength: float  # % of directional timeframes agreeing
    confidence: float
    usable_timeframes: int
    required_timeframes: int
    breakdown: tuple[TimeframeBreakdown, ...] = ()
    base: Optional[Signal] = None

    @property
    def is_actionable(self) -> bool:
        return self.type is SignalType.VALID

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "type": self.type.value,
            "direction": self.direction.value,
            "recommendation": self.recommendation.value,
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
            "confluence_score": self.confluence_score,
            "confluence_strength": self.confluence_strength,
            "confidence": self.confidence,
            "usable_timeframes": self.usable_timeframes,
            "required_timeframes": self.required_timeframes,
            "breakdown": [
                {
                    "timeframe": b.timeframe,
                    "type": b.type.value,
                    "direction": b.direction.value,
                    "confluence_score": b.confluence_score,
                    "weight": b.weight,
                }
                for b in self.breakdown
            ],
            "base": self.base.to_dict() if self.base is not None else None,
        }


@dataclass(frozen=True)
class AccountContext:
    """Account state supplied by the caller for one evaluation."""

    balance: float
    risk_percent: Optional[float] = None  # None → engine's max_risk_per_trade
    leverage: float = 10.0
    trade_pnls: tuple[float, ...] = field(default_factory=tuple)
    initial_balance: Optional[float] = None

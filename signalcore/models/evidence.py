"""Evidence data models — typed representations of upstream indicator output.

The technical-analysis provider computes every indicator; these records
only carry the results.  Optional sub-records are ``None`` when the
provider has nothing for that dimension.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class LevelKind(str, Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"


class Bias(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class PatternKind(str, Enum):
    """Chart patterns recognised by the scorer."""

    TRIANGLE = "triangle"
    FLAG = "flag"
    WEDGE = "wedge"
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    INVERSE_HEAD_AND_SHOULDERS = "inverse_head_and_shoulders"

    @property
    def multiplier(self) -> float:
        """Structural significance of the pattern."""
        return _PATTERN_MULTIPLIERS[self]

    @property
    def default_bias(self) -> Bias:
        return _PATTERN_BIAS.get(self, Bias.NEUTRAL)


_PATTERN_MULTIPLIERS: dict[PatternKind, float] = {
    PatternKind.TRIANGLE: 1.0,
    PatternKind.FLAG: 1.0,
    PatternKind.WEDGE: 1.1,
    PatternKind.DOUBLE_TOP: 1.2,
    PatternKind.DOUBLE_BOTTOM: 1.2,
    PatternKind.HEAD_AND_SHOULDERS: 1.5,
    PatternKind.INVERSE_HEAD_AND_SHOULDERS: 1.5,
}

_PATTERN_BIAS: dict[PatternKind, Bias] = {
    PatternKind.DOUBLE_TOP: Bias.BEARISH,
    PatternKind.DOUBLE_BOTTOM: Bias.BULLISH,
    PatternKind.HEAD_AND_SHOULDERS: Bias.BEARISH,
    PatternKind.INVERSE_HEAD_AND_SHOULDERS: Bias.BULLISH,
}


@dataclass(frozen=True)
class Divergence:
    """An oscillator/price divergence."""

    kind: Bias  # bullish or bearish
    strength: float = 0.0  # 0-100
    confirmed: bool = False


@dataclass(frozen=True)
class OscillatorReading:
    """RSI series (latest value last) and detected divergences."""

    values: tuple[float, ...]
    divergences: tuple[Divergence, ...] = ()

    @property
    def latest(self) -> Optional[float]:
        return self.values[-1] if self.values else None


@dataclass(frozen=True)
class PriceLevel:
    """A support or resistance level."""

    price: float
    kind: LevelKind
    strength: float  # 0-100


@dataclass(frozen=True)
class VolatilityReading:
    """BBWP-style volatility percentile of the most recent bar."""

    percentile: float  # 0-100
    squeeze: bool = False
    expansion: bool = False


@dataclass(frozen=True)
class FibLevel:
    ratio: float
    price: float


@dataclass(frozen=True)
class PriceBand:
    low: float
    high: float

    def distance_pct(self, price: float) -> float:
        """Distance from *price* to the band in percent of price (0 inside)."""
        if self.low <= price <= self.high:
            return 0.0
        edge = self.low if price < self.low else self.high
        return abs(price - edge) / price * 100.0


@dataclass(frozen=True)
class FibonacciLevels:
    retracements: tuple[FibLevel, ...] = ()
    extensions: tuple[FibLevel, ...] = ()
    golden_pocket: Optional[PriceBand] = None


@dataclass(frozen=True)
class ChartPattern:
    kind: PatternKind
    confidence: float  # 0-100
    bias: Optional[Bias] = None

    @property
    def effective_bias(self) -> Bias:
        return self.bias if self.bias is not None else self.kind.default_bias


@dataclass(frozen=True)
class Evidence:
    """Everything the engine knows about one symbol on one timeframe."""

    symbol: str
    timeframe: str
    current_price: float
    oscillator: Optional[OscillatorReading] = None
    levels: tuple[PriceLevel, ...] = ()
    volatility: Optional[VolatilityReading] = None
    fibonacci: Optional[FibonacciLevels] = None
    patterns: tuple[ChartPattern, ...] = ()
    trend: Optional[Bias] = None

    @property
    def rsi(self) -> Optional[float]:
        """Latest oscillator value, if any."""
        if self.oscillator is None:
            return None
        return self.oscillator.latest

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Evidence":
        """Build evidence from a plain mapping (e.g. a JSON request body).

        Raises:
            ValueError: If a required field is missing or a tag is unknown.
        """
        try:
            return cls._from_mapping(data)
        except KeyError as exc:
            raise ValueError(f"evidence is missing required field {exc}") from None
        except (TypeError, AttributeError) as exc:
            raise ValueError(f"evidence is malformed: {exc}") from None

    @classmethod
    def _from_mapping(cls, data: Mapping[str, Any]) -> "Evidence":
        symbol = str(data["symbol"])
        current_price = float(data["current_price"])
        if current_price <= 0:
            raise ValueError(f"current_price must be positive, got {current_price}")

        oscillator = None
        osc = data.get("oscillator")
        if osc is not None:
            oscillator = OscillatorReading(
                values=tuple(float(v) for v in osc.get("values", ())),
                divergences=tuple(
                    Divergence(
                        kind=Bias(d["kind"]),
                        strength=float(d.get("strength", 0.0)),
                        confirmed=bool(d.get("confirmed", False)),
                    )
                    for d in osc.get("divergences", ())
                ),
            )

        volatility = None
        vol = data.get("volatility")
        if vol is not None:
            volatility = VolatilityReading(
                percentile=float(vol["percentile"]),
                squeeze=bool(vol.get("squeeze", False)),
                expansion=bool(vol.get("expansion", False)),
            )

        fibonacci = None
        fib = data.get("fibonacci")
        if fib is not None:
            pocket = fib.get("golden_pocket")
            fibonacci = FibonacciLevels(
                retracements=tuple(
                    FibLevel(float(f["ratio"]), float(f["price"]))
                    for f in fib.get("retracements", ())
                ),
                extensions=tuple(
                    FibLevel(float(f["ratio"]), float(f["price"]))
                    for f in fib.get("extensions", ())
                ),
                golden_pocket=(
                    PriceBand(float(pocket["low"]), float(pocket["high"]))
                    if pocket is not None else None
                ),
            )

        trend = data.get("trend")
        return cls(
            symbol=symbol,
            timeframe=str(data.get("timeframe", "4h")),
            current_price=current_price,
            oscillator=oscillator,
            levels=tuple(
                PriceLevel(
                    price=float(lv["price"]),
                    kind=LevelKind(lv["kind"]),
                    strength=float(lv.get("strength", 0.0)),
                )
                for lv in data.get("levels", ())
            ),
            volatility=volatility,
            fibonacci=fibonacci,
            patterns=tuple(
                ChartPattern(
                    kind=PatternKind(p["kind"]),
                    confidence=float(p["confidence"]),
                    bias=Bias(p["bias"]) if p.get("bias") is not None else None,
                )
                for p in data.get("patterns", ())
            ),
            trend=Bias(trend) if trend is not None else None,
        )


"""Confluence scoring — pure functions, no I/O.

Turns indicator evidence into weighted factors and a 0–100 score.

Each evidence dimension contributes zero or more factors.  Directional
factors carry a sign (positive = long, negative = short); the score
measures how strongly the evidence leans one way, so a bearish setup
scores as high as the mirrored bullish one.  Non-directional factors
(volatility squeeze, golden pocket) add or remove conviction without
choosing a side.

    raw   = |sum(directional weights)| + sum(non-directional weights)
    score = clamp(50 + clamp(raw × multiplier, −50, 50), 0, 100)
"""

import logging
from typing import Optional

from signalcore.config import EngineConfig
from signalcore.models.evidence import Bias, Evidence, LevelKind
from signalcore.models.signal import ConfluenceFactor, ConfluenceResult, FactorKind

BASELINE = 50.0
MAX_CONTRIBUTION = 50.0

# Fixed weights
DIVERGENCE_CONFIRMED = 20.0
DIVERGENCE_UNCONFIRMED = 10.0
SR_BASE_WEIGHT = 12.0
SQUEEZE_WEIGHT = 15.0
EXPANSION_WEIGHT = -10.0
GOLDEN_POCKET_WEIGHT = 15.0
PATTERN_BASE_CAP = 10.0

# Interpretation bands, highest first: (lower bound, label)
_BANDS: tuple[tuple[float, str], ...] = (
    (85.0, "excellent"),
    (75.0, "strong"),
    (55.0, "moderate"),
    (35.0, "weak"),
)


def interpret_score(score: float) -> str:
    """Map a 0–100 score to its band.

    ≥85 excellent · 75–85 strong · 55–75 moderate · 35–55 weak · <35 very_weak
    """
    for lower, label in _BANDS:
        if score >= lower:
            return label
    return "very_weak"


class ConfluenceScorer:
    """Scores evidence with the thresholds of an ``EngineConfig``."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._logger = logger or logging.getLogger("signalcore.confluence")

    def score(self, evidence: Evidence) -> ConfluenceResult:
        factors: list[ConfluenceFactor] = []
        factors.extend(self._oscillator_factors(evidence))
        factors.extend(self._level_factors(evidence))
        factors.extend(self._volatility_factors(evidence))
        factors.extend(self._fibonacci_factors(evidence))
        factors.extend(self._pattern_factors(evidence))
        result = self.aggregate(factors)
        self._logger.debug(
            "Confluence for %s %s: %.1f (%d factors)",
            evidence.symbol, evidence.timeframe, result.score, len(factors),
        )
        return result

    def aggregate(self, factors: list[ConfluenceFactor]) -> ConfluenceResult:
        """Combine factors into a clamped score."""
        bullish = sum(f.weight for f in factors if f.kind.directional and f.weight > 0)
        bearish = sum(f.weight for f in factors if f.kind.directional and f.weight < 0)
        neutral = sum(f.weight for f in factors if not f.kind.directional)

        raw = abs(bullish + bearish) + neutral
        contribution = max(
            -MAX_CONTRIBUTION,
            min(MAX_CONTRIBUTION, raw * self._config.score_multiplier),
        )
        score = round(max(0.0, min(100.0, BASELINE + contribution)), 2)

        ranked = tuple(sorted(factors, key=lambda f: abs(f.weight), reverse=True))
        return ConfluenceResult(
            score=score,
            factors=ranked,
            bullish_weight=bullish,
            bearish_weight=bearish,
            neutral_weight=neutral,
            interpretation=interpret_score(score),
        )

    # ── Per-dimension rules ──────────────────────────────────────────────

    def _oscillator_factors(self, evidence: Evidence) -> list[ConfluenceFactor]:
        if evidence.oscillator is None:
            return []
        cfg = self._config
        factors = []

        rsi = evidence.oscillator.latest
        if rsi is not None:
            if rsi <= cfg.rsi_oversold:
                cap = FactorKind.RSI_OVERSOLD.cap
                intensity = (cfg.rsi_oversold - rsi) / cfg.rsi_oversold * cap
                factors.append(ConfluenceFactor.capped(
                    FactorKind.RSI_OVERSOLD, intensity, f"RSI {rsi:.1f}",
                ))
            elif rsi >= cfg.rsi_overbought:
                cap = FactorKind.RSI_OVERBOUGHT.cap
                intensity = (rsi - cfg.rsi_overbought) / (100.0 - cfg.rsi_overbought) * cap
                factors.append(ConfluenceFactor.capped(
                    FactorKind.RSI_OVERBOUGHT, -intensity, f"RSI {rsi:.1f}",
                ))

        divergences = [
            d for d in evidence.oscillator.divergences
            if d.kind in (Bias.BULLISH, Bias.BEARISH)
        ]
        if divergences:
            # Confirmed first, then strongest
            best = max(divergences, key=lambda d: (d.confirmed, d.strength))
            weight = DIVERGENCE_CONFIRMED if best.confirmed else DIVERGENCE_UNCONFIRMED
            if best.kind is Bias.BULLISH:
                kind = FactorKind.RSI_DIVERGENCE_BULLISH
            else:
                kind = FactorKind.RSI_DIVERGENCE_BEARISH
                weight = -weight
            state = "confirmed" if best.confirmed else "unconfirmed"
            factors.append(ConfluenceFactor.capped(
                kind, weight, f"{state}, strength {best.strength:.0f}",
            ))
        return factors

    def _level_factors(self, evidence: Evidence) -> list[ConfluenceFactor]:
        cfg = self._config
        price = evidence.current_price
        factors = []
        for level in evidence.levels:
            if level.strength <= cfg.min_sr_strength:
                continue
            distance_pct = abs(level.price - price) / price * 100.0
            if distance_pct >= cfg.sr_proximity_pct:
                continue
            weight = SR_BASE_WEIGHT * level.strength / 100.0
            if level.kind is LevelKind.SUPPORT and level.price < price:
                kind = FactorKind.STRONG_SUPPORT
            elif level.kind is LevelKind.RESISTANCE and level.price > price:
                kind = FactorKind.STRONG_RESISTANCE
                weight = -weight
            else:
                continue
            factors.append(ConfluenceFactor.capped(
                kind, weight,
                f"{level.kind.value} {level.price} ({distance_pct:.2f}% away, "
                f"strength {level.strength:.0f})",
            ))
        return factors

    def _volatility_factors(self, evidence: Evidence) -> list[ConfluenceFactor]:
        vol = evidence.volatility
        if vol is None:
            return []
        if vol.squeeze:
            return [ConfluenceFactor.capped(
                FactorKind.VOLATILITY_SQUEEZE, SQUEEZE_WEIGHT,
                f"percentile {vol.percentile:.1f}",
            )]
        if vol.expansion:
            return [ConfluenceFactor.capped(
                FactorKind.VOLATILITY_EXPANSION, EXPANSION_WEIGHT,
                f"percentile {vol.percentile:.1f}",
            )]
        return []

    def _fibonacci_factors(self, evidence: Evidence) -> list[ConfluenceFactor]:
        fib = evidence.fibonacci
        if fib is None or fib.golden_pocket is None:
            return []
        distance = fib.golden_pocket.distance_pct(evidence.current_price)
        if distance >= self._config.golden_pocket_pct:
            return []
        return [ConfluenceFactor.capped(
            FactorKind.NEAR_GOLDEN_POCKET, GOLDEN_POCKET_WEIGHT,
            f"{fib.golden_pocket.low}-{fib.golden_pocket.high} ({distance:.2f}% away)",
        )]

    def _pattern_factors(self, evidence: Evidence) -> list[ConfluenceFactor]:
        factors = []
        for pattern in evidence.patterns:
            if pattern.confidence <= self._config.min_pattern_confidence:
                continue
            weight = min(pattern.confidence / 10.0, PATTERN_BASE_CAP) * pattern.kind.multiplier
            bias = pattern.effective_bias
            if bias is Bias.BULLISH:
                kind = FactorKind.PATTERN_BULLISH
            elif bias is Bias.BEARISH:
                kind = FactorKind.PATTERN_BEARISH
                weight = -weight
            else:
                kind = FactorKind.PATTERN_NEUTRAL
            factors.append(ConfluenceFactor.capped(
                kind, weight,
                f"{pattern.kind.value} (confidence {pattern.confidence:.0f})",
            ))
        return factors

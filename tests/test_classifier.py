"""Tests for the signal classifier — one terminal signal per evaluation."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from signalcore.config import EngineConfig
from signalcore.errors import LevelInvariantError
from signalcore.models.evidence import (
    Bias,
    Divergence,
    Evidence,
    FibonacciLevels,
    LevelKind,
    OscillatorReading,
    PriceBand,
    PriceLevel,
    VolatilityReading,
)
from signalcore.models.signal import (
    AccountContext,
    AveragingStrategy,
    Direction,
    Recommendation,
    SignalType,
)
from signalcore.strategy.classifier import SignalClassifier, is_counter_trend
from signalcore.strategy.stats import RunningStats

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
ACCOUNT = AccountContext(balance=1_000.0, leverage=10.0)


# ── Helpers ──────────────────────────────────────────────────────────────


def _long_evidence(rsi=25.0, **kwargs) -> Evidence:
    """Oversold RSI plus a confirmed bullish divergence (score 90 at RSI 25)."""
    return Evidence(
        symbol="BTCUSDT",
        timeframe="4h",
        current_price=100.0,
        oscillator=OscillatorReading(
            values=(40.0, rsi),
            divergences=(Divergence(Bias.BULLISH, 80.0, confirmed=True),),
        ),
        **kwargs,
    )


def _short_evidence(rsi=75.0, **kwargs) -> Evidence:
    return Evidence(
        symbol="ETHUSDT",
        timeframe="4h",
        current_price=100.0,
        oscillator=OscillatorReading(
            values=(60.0, rsi),
            divergences=(Divergence(Bias.BEARISH, 80.0, confirmed=True),),
        ),
        **kwargs,
    )


def _make_classifier(config=None, stats=None):
    stats = stats or RunningStats()
    classifier = SignalClassifier(config or EngineConfig(), stats, clock=lambda: NOW)
    return classifier, stats


# ── Tests ────────────────────────────────────────────────────────────────


class TestValidSignals:
    def test_valid_long(self):
        classifier, _ = _make_classifier()
        signal = classifier.classify(_long_evidence(), ACCOUNT)

        assert signal.type is SignalType.VALID
        assert signal.recommendation is Recommendation.ENTER
        assert signal.direction is Direction.LONG
        assert signal.confluence_score == pytest.approx(90.0)
        levels = signal.levels
        assert levels.stop_loss < levels.entry < levels.take_profit
        assert signal.risk_reward >= 2.0 - 1e-9
        # risk 20 / per-unit 2 → 10 units, 1000 notional at 10x
        assert signal.position_size == pytest.approx(10.0)
        assert signal.required_capital == pytest.approx(100.0)
        assert signal.valid_until == NOW + timedelta(seconds=1800)
        assert signal.factors
        assert not signal.counter_trend

    def test_valid_short(self):
        classifier, _ = _make_classifier()
        signal = classifier.classify(_short_evidence(), ACCOUNT)

        assert signal.type is SignalType.VALID
        assert signal.direction is Direction.SHORT
        levels = signal.levels
        assert levels.take_profit < levels.entry < levels.stop_loss
        assert signal.risk_reward >= 2.0 - 1e-9

    def test_counter_trend_reduces_risk_and_raises_target(self):
        classifier, _ = _make_classifier()
        signal = classifier.classify(_long_evidence(trend=Bias.BEARISH), ACCOUNT)

        assert signal.type is SignalType.VALID
        assert signal.counter_trend
        # 2% × 0.7 = 1.4% → risk 14 / per-unit 2 → 7 units
        assert signal.position_size == pytest.approx(7.0)
        assert signal.levels.take_profit == pytest.approx(105.0)
        assert "counter-trend" in signal.reason

    def test_with_trend_is_not_counter_trend(self):
        classifier, _ = _make_classifier()
        signal = classifier.classify(_long_evidence(trend=Bias.BULLISH), ACCOUNT)
        assert not signal.counter_trend
        assert signal.position_size == pytest.approx(10.0)

    def test_nearby_levels_and_warnings(self):
        classifier, _ = _make_classifier()
        evidence = _long_evidence(levels=(
            PriceLevel(99.5, LevelKind.SUPPORT, 40.0),
            PriceLevel(110.0, LevelKind.RESISTANCE, 40.0),
        ))
        signal = classifier.classify(evidence, ACCOUNT)

        assert signal.type is SignalType.VALID
        assert [lv.price for lv in signal.nearby_levels] == [99.5]
        # The fallback stop is not anchored beyond the 99.5 support
        assert any("anchored" in w for w in signal.warnings)

    def test_averaging_plan_attached(self):
        classifier, _ = _make_classifier()
        signal = classifier.classify(_long_evidence(trend=Bias.BULLISH), ACCOUNT)

        plan = signal.averaging
        assert plan is not None
        assert plan.strategy is AveragingStrategy.DCA
        # Stop at 98 leaves no room for a 3% deeper entry
        assert plan.levels == ()
        assert plan.max_total_risk_pct == 3.0

    def test_alerts_attached(self):
        classifier, _ = _make_classifier()
        evidence = _long_evidence(volatility=VolatilityReading(50.0, expansion=True))
        signal = classifier.classify(evidence, ACCOUNT)

        assert signal.type is SignalType.VALID
        messages = [a.message for a in signal.alerts]
        assert any("Volatility elevated" in m for m in messages)


class TestNonValidSignals:
    def test_low_confluence_is_neutral(self):
        classifier, _ = _make_classifier()
        evidence = Evidence(symbol="BTCUSDT", timeframe="1h", current_price=100.0)
        signal = classifier.classify(evidence, ACCOUNT)

        assert signal.type is SignalType.NEUTRAL
        assert signal.recommendation is Recommendation.WAIT
        assert signal.direction is Direction.NEUTRAL
        assert signal.levels is None
        assert "below" in signal.reason

    def test_no_directional_bias_is_neutral(self):
        classifier, _ = _make_classifier()
        evidence = Evidence(
            symbol="BTCUSDT",
            timeframe="4h",
            current_price=100.0,
            volatility=VolatilityReading(5.0, squeeze=True),
            fibonacci=FibonacciLevels(golden_pocket=PriceBand(99.0, 101.0)),
        )
        signal = classifier.classify(evidence, ACCOUNT)

        assert signal.type is SignalType.NEUTRAL
        assert signal.confluence_score == pytest.approx(95.0)
        assert "directional bias" in signal.reason

    def test_insufficient_capital_is_rejected(self):
        classifier, _ = _make_classifier()
        account = AccountContext(balance=1_000.0, risk_percent=3.0, leverage=1.0)
        signal = classifier.classify(_long_evidence(), account)

        assert signal.type is SignalType.REJECTED
        assert signal.recommendation is Recommendation.AVOID
        assert signal.reason == "insufficient_capital"
        assert signal.levels is not None

    def test_excessive_leverage_is_rejected(self):
        classifier, _ = _make_classifier()
        account = AccountContext(balance=1_000.0, leverage=50.0)
        signal = classifier.classify(_long_evidence(), account)
        assert signal.reason == "excessive_leverage"

    def test_invalid_account_is_rejected(self):
        classifier, _ = _make_classifier()
        signal = classifier.classify(_long_evidence(), AccountContext(balance=0.0))
        assert signal.type is SignalType.REJECTED
        assert signal.reason == "invalid_account"

    def test_wide_stop_is_rejected(self):
        classifier, _ = _make_classifier(EngineConfig(stop_loss_fallback_pct=12.0))
        signal = classifier.classify(_long_evidence(), ACCOUNT)
        assert signal.type is SignalType.REJECTED
        assert signal.reason == "stop_loss_too_wide"

    def test_extreme_rsi_is_filtered(self):
        classifier, _ = _make_classifier()
        signal = classifier.classify(_long_evidence(rsi=15.0), ACCOUNT)

        assert signal.type is SignalType.FILTERED
        assert signal.recommendation is Recommendation.WAIT
        assert [f.name for f in signal.failed_filters] == ["extreme_rsi"]
        assert signal.alerts == ()
        assert signal.averaging is None


class TestInvariantsAndStats:
    def test_level_invariant_propagates(self, caplog):
        classifier, stats = _make_classifier(EngineConfig(stop_loss_fallback_pct=0.0))
        with caplog.at_level(logging.ERROR, logger="signalcore.classifier"):
            with pytest.raises(LevelInvariantError):
                classifier.classify(_long_evidence(), ACCOUNT)
        assert stats.signals_generated == 0
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    def test_every_signal_counted_once(self):
        classifier, stats = _make_classifier()
        classifier.classify(_long_evidence(), ACCOUNT)
        classifier.classify(_short_evidence(), ACCOUNT)
        classifier.classify(_long_evidence(rsi=15.0), ACCOUNT)
        classifier.classify(_long_evidence(), AccountContext(balance=0.0))
        classifier.classify(
            Evidence(symbol="X", timeframe="4h", current_price=1.0), ACCOUNT,
        )

        snap = stats.snapshot()
        assert snap["signals_generated"] == 5
        assert sum(snap["types"].values()) == 5
        assert sum(snap["directions"].values()) == 5
        assert snap["signals_filtered"] == 2
        assert sum(snap["confluence_histogram"].values()) == 5


class TestCounterTrend:
    def test_is_counter_trend(self):
        assert is_counter_trend(Direction.LONG, Bias.BEARISH)
        assert is_counter_trend(Direction.SHORT, Bias.BULLISH)
        assert not is_counter_trend(Direction.LONG, Bias.BULLISH)
        assert not is_counter_trend(Direction.LONG, Bias.NEUTRAL)
        assert not is_counter_trend(Direction.LONG, None)

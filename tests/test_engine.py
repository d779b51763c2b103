"""Tests for the SignalEngine facade — caching, scanning, config updates."""

import logging
from unittest.mock import MagicMock

import pytest

from signalcore.engine import ScanFilters, SignalEngine, cache_key
from signalcore.models.evidence import Bias, Divergence, Evidence, OscillatorReading
from signalcore.models.signal import AccountContext, Direction, SignalType
from signalcore.risk.breakeven import BreakevenAction

ACCOUNT = AccountContext(balance=1_000.0, leverage=10.0)


# ── Helpers ──────────────────────────────────────────────────────────────


def _evidence(
    symbol="BTCUSDT", rsi=25.0, divergence=True, price=100.0, timeframe="4h",
) -> Evidence:
    divergences = (Divergence(Bias.BULLISH, 80.0, confirmed=True),) if divergence else ()
    return Evidence(
        symbol=symbol,
        timeframe=timeframe,
        current_price=price,
        oscillator=OscillatorReading(values=(40.0, rsi), divergences=divergences),
    )


# BTC → VALID long (90), ETH → NEUTRAL (50), SOL → FILTERED (100, extreme RSI)
_SCAN_EVIDENCE = {
    "BTCUSDT": _evidence("BTCUSDT"),
    "ETHUSDT": _evidence("ETHUSDT", rsi=50.0, divergence=False),
    "SOLUSDT": _evidence("SOLUSDT", rsi=15.0),
}


async def _provider(symbol: str) -> Evidence:
    return _SCAN_EVIDENCE[symbol]


# ── Tests ────────────────────────────────────────────────────────────────


class TestEvaluate:
    def test_cache_key(self):
        assert cache_key("BTCUSDT", "4h") == "BTCUSDT_4h"

    def test_identical_inputs_served_from_cache(self):
        engine = SignalEngine()
        first = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)
        second = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)

        assert second is first
        stats = engine.get_stats()
        assert stats["signals_generated"] == 2
        assert stats["types"]["VALID"] == 2
        assert stats["cache"]["hits"] == 1
        assert engine.cache.has("BTCUSDT_4h")

    def test_new_evidence_is_reevaluated(self):
        engine = SignalEngine()
        first = engine.evaluate("BTCUSDT", _evidence(rsi=50.0, divergence=False), ACCOUNT)
        assert first.type is SignalType.NEUTRAL

        second = engine.evaluate("BTCUSDT", _evidence(price=120.0), ACCOUNT)
        assert second.type is SignalType.VALID
        assert second.current_price == pytest.approx(120.0)
        assert second.levels.entry == pytest.approx(120.0)

    def test_new_account_is_reevaluated(self):
        engine = SignalEngine()
        first = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)
        smaller = AccountContext(balance=1_000.0, risk_percent=1.0, leverage=10.0)
        second = engine.evaluate("BTCUSDT", _evidence(), smaller)

        assert second is not first
        assert first.position_size == pytest.approx(10.0)
        assert second.position_size == pytest.approx(5.0)

    def test_every_evaluation_counted(self):
        engine = SignalEngine()
        for _ in range(3):
            engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)
        assert engine.get_stats()["signals_generated"] == 3

    def test_force_refresh_recomputes(self):
        engine = SignalEngine()
        first = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)
        second = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT, force_refresh=True)
        assert second is not first
        assert engine.get_stats()["signals_generated"] == 2

    def test_symbol_mismatch(self):
        engine = SignalEngine()
        with pytest.raises(ValueError, match="BTCUSDT"):
            engine.evaluate("ETHUSDT", _evidence(), ACCOUNT)

    def test_cache_failure_degrades_to_miss(self, caplog):
        cache = MagicMock()
        cache.get.side_effect = RuntimeError("cache unavailable")
        cache.set.side_effect = RuntimeError("cache unavailable")
        engine = SignalEngine(cache=cache)

        with caplog.at_level(logging.WARNING, logger="signalcore"):
            signal = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)

        assert signal.type is SignalType.VALID
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2

    def test_clear_cache_and_reset_stats(self):
        engine = SignalEngine()
        engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)
        assert engine.clear_cache() == 1
        engine.reset_stats()
        assert engine.get_stats()["signals_generated"] == 0


class TestBulkEvaluate:
    @pytest.mark.asyncio
    async def test_sorted_by_score(self):
        engine = SignalEngine()
        signals = await engine.bulk_evaluate(list(_SCAN_EVIDENCE), _provider, ACCOUNT)
        assert [s.symbol for s in signals] == ["SOLUSDT", "BTCUSDT", "ETHUSDT"]
        assert [s.type for s in signals] == [
            SignalType.FILTERED, SignalType.VALID, SignalType.NEUTRAL,
        ]

    @pytest.mark.asyncio
    async def test_filters(self):
        engine = SignalEngine()
        symbols = list(_SCAN_EVIDENCE)

        by_score = await engine.bulk_evaluate(
            symbols, _provider, ACCOUNT, ScanFilters(min_confluence_score=60.0),
        )
        assert [s.symbol for s in by_score] == ["SOLUSDT", "BTCUSDT"]

        valid_only = await engine.bulk_evaluate(
            symbols, _provider, ACCOUNT, ScanFilters(signal_types=(SignalType.VALID,)),
        )
        assert [s.symbol for s in valid_only] == ["BTCUSDT"]

        shorts = await engine.bulk_evaluate(
            symbols, _provider, ACCOUNT, ScanFilters(directions=(Direction.SHORT,)),
        )
        assert shorts == []

        top = await engine.bulk_evaluate(symbols, _provider, ACCOUNT, ScanFilters(limit=1))
        assert [s.symbol for s in top] == ["SOLUSDT"]

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self):
        async def failing(symbol):
            raise RuntimeError(f"no data for {symbol}")

        engine = SignalEngine()
        with pytest.raises(RuntimeError, match="no data"):
            await engine.bulk_evaluate(["BTCUSDT"], failing, ACCOUNT)


class TestMultiTimeframe:
    def test_agreeing_timeframes_give_valid_verdict(self):
        engine = SignalEngine()
        evidence = {tf: _evidence(timeframe=tf) for tf in ("5m", "1h", "4h")}
        result = engine.evaluate_multi_timeframe("BTCUSDT", evidence, ACCOUNT)

        assert result.type is SignalType.VALID
        assert result.direction is Direction.LONG
        assert result.confluence_score == pytest.approx(90.0)
        assert result.base.timeframe == "5m"
        assert result.base.averaging is not None

        stats = engine.get_stats()
        assert stats["signals_generated"] == 3
        assert stats["multi_timeframe"]["signals_generated"] == 1
        assert stats["multi_timeframe"]["confluence_success"] == 1
        assert stats["multi_timeframe"]["average_timeframes"] == pytest.approx(3.0)
        assert engine.cache.has("BTCUSDT_5m")

    def test_too_few_timeframes_rejected(self):
        engine = SignalEngine()
        evidence = {tf: _evidence(timeframe=tf) for tf in ("5m", "1h")}
        result = engine.evaluate_multi_timeframe("BTCUSDT", evidence, ACCOUNT)

        assert result.type is SignalType.REJECTED
        assert engine.get_stats()["multi_timeframe"]["confluence_failure"] == 1

    def test_minimum_follows_config(self):
        engine = SignalEngine()
        engine.update_config({"mtf_min_timeframes": 2})
        evidence = {tf: _evidence(timeframe=tf) for tf in ("5m", "1h")}
        result = engine.evaluate_multi_timeframe("BTCUSDT", evidence, ACCOUNT)
        assert result.type is SignalType.VALID

    def test_no_directional_timeframe_is_neutral(self):
        engine = SignalEngine()
        evidence = {
            "5m": _evidence(rsi=50.0, divergence=False, timeframe="5m"),
            "1h": _evidence(rsi=50.0, divergence=False, timeframe="1h"),
            "4h": _evidence(rsi=50.0, divergence=False, timeframe="4h"),
        }
        result = engine.evaluate_multi_timeframe("BTCUSDT", evidence, ACCOUNT)
        assert result.type is SignalType.NEUTRAL

    def test_timeframe_mismatch(self):
        engine = SignalEngine()
        with pytest.raises(ValueError, match="1h"):
            engine.evaluate_multi_timeframe(
                "BTCUSDT", {"1h": _evidence(timeframe="4h")}, ACCOUNT,
            )

    def test_empty_evidence(self):
        with pytest.raises(ValueError, match="empty"):
            SignalEngine().evaluate_multi_timeframe("BTCUSDT", {}, ACCOUNT)


class TestScanFilters:
    def test_from_dict(self):
        filters = ScanFilters.from_dict({
            "min_confluence_score": "70",
            "directions": ["long"],
            "signal_types": ["VALID"],
            "limit": 5,
        })
        assert filters.min_confluence_score == 70.0
        assert filters.directions == (Direction.LONG,)
        assert filters.signal_types == (SignalType.VALID,)
        assert filters.limit == 5

    def test_from_dict_rejects_unknown_direction(self):
        with pytest.raises(ValueError, match="scan filter"):
            ScanFilters.from_dict({"directions": ["sideways"]})

    def test_from_dict_rejects_bad_limit(self):
        with pytest.raises(ValueError, match="limit"):
            ScanFilters.from_dict({"limit": 0})


class TestUpdateConfig:
    def test_coerces_and_applies(self):
        engine = SignalEngine()
        config = engine.update_config({"min_confluence_score": "95"})
        assert config.min_confluence_score == 95.0
        assert engine.config is config

        signal = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)
        assert signal.type is SignalType.NEUTRAL

    def test_unknown_option(self):
        engine = SignalEngine()
        with pytest.raises(ValueError, match="Unknown config option"):
            engine.update_config({"max_risk": 5})

    def test_uncoercible_value(self):
        engine = SignalEngine()
        with pytest.raises(ValueError, match="max_consecutive_losses"):
            engine.update_config({"max_consecutive_losses": 2.5})

    def test_invalid_result_keeps_old_config(self):
        engine = SignalEngine()
        with pytest.raises(ValueError, match="rsi thresholds"):
            engine.update_config({"rsi_oversold": 80})
        assert engine.config.rsi_oversold == 30.0

    def test_config_change_invalidates_cached_signals(self):
        engine = SignalEngine()
        assert engine.evaluate("BTCUSDT", _evidence(), ACCOUNT).type is SignalType.VALID

        engine.update_config({"min_confluence_score": 95})
        assert engine.cache.get_stats().size == 0
        signal = engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)
        assert signal.type is SignalType.NEUTRAL

    def test_resizes_cache(self):
        engine = SignalEngine()
        engine.update_config({"cache_max_size": 1, "cache_ttl_seconds": 60})
        assert engine.cache.get_stats().max_size == 1


class TestPositionHelpers:
    def test_check_breakeven_uses_config_threshold(self):
        engine = SignalEngine()
        assert engine.check_breakeven(100.0, 104.0, 90.0).action is BreakevenAction.MOVE_TO_BREAKEVEN
        engine.update_config({"breakeven_profit_threshold": 50})
        assert engine.check_breakeven(100.0, 104.0, 90.0).action is BreakevenAction.HOLD

    def test_check_losing_streak(self):
        engine = SignalEngine()
        account = AccountContext(
            balance=800.0, trade_pnls=(-10.0, -5.0, -5.0), initial_balance=1_000.0,
        )
        report = engine.check_losing_streak(account)
        assert report.should_pause
        assert report.emergency_stop

    def test_streak_without_initial_balance(self):
        report = SignalEngine().check_losing_streak(AccountContext(balance=500.0))
        assert report.drawdown_pct == 0.0
        assert not report.emergency_stop


class TestLogging:
    def test_injected_logger_reaches_classifier_and_scorer(self, caplog):
        engine = SignalEngine(logger=logging.getLogger("desk.engine"))
        with caplog.at_level(logging.DEBUG, logger="desk.engine"):
            engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)

        names = {r.name for r in caplog.records}
        assert "desk.engine" in names
        assert "desk.engine.classifier" in names
        assert "desk.engine.classifier.confluence" in names

    def test_injected_logger_survives_config_update(self, caplog):
        engine = SignalEngine(logger=logging.getLogger("desk.engine"))
        engine.update_config({"min_risk_reward": 2.5})
        with caplog.at_level(logging.DEBUG, logger="desk.engine"):
            engine.evaluate("BTCUSDT", _evidence(), ACCOUNT)

        assert any(r.name == "desk.engine.classifier.confluence" for r in caplog.records)

"""Tests for signalcore.config — environment variable loading and validation."""

import os

import pytest

from signalcore.config import EngineConfig, load_config

_VARS = [
    "MIN_CONFLUENCE_SCORE",
    "MIN_RISK_REWARD",
    "MAX_RISK_PER_TRADE",
    "MAX_LEVERAGE",
    "RSI_OVERBOUGHT",
    "RSI_OVERSOLD",
    "BREAKEVEN_PROFIT_THRESHOLD",
    "MAX_CONSECUTIVE_LOSSES",
    "EMERGENCY_DRAWDOWN_PCT",
    "MTF_MIN_TIMEFRAMES",
    "MTF_MAJORITY_PCT",
    "MTF_PRIMARY_TIMEFRAME",
    "CACHE_MAX_SIZE",
    "CACHE_TTL_SECONDS",
    "CACHE_SWEEP_SECONDS",
    "LOG_LEVEL",
    "API_PORT",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure engine env vars are cleared between tests."""
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)
    yield
    # load_dotenv writes straight into os.environ
    for var in _VARS:
        os.environ.pop(var, None)


@pytest.fixture
def no_dotenv(tmp_path):
    """Path to a non-existent .env so load_dotenv never reads a real one."""
    return str(tmp_path / "missing.env")


class TestLoadConfig:
    def test_defaults(self, no_dotenv):
        cfg = load_config(no_dotenv)
        assert cfg.min_confluence_score == 70.0
        assert cfg.min_risk_reward == 2.0
        assert cfg.max_risk_per_trade == 2.0
        assert cfg.max_leverage == 20.0
        assert cfg.rsi_overbought == 70.0
        assert cfg.rsi_oversold == 30.0
        assert cfg.breakeven_profit_threshold == 40.0
        assert cfg.max_consecutive_losses == 3
        assert cfg.emergency_drawdown_pct == 20.0
        assert cfg.cache_max_size == 200
        assert cfg.log_level == "INFO"
        assert cfg.api_port == 8080

    def test_env_overrides(self, monkeypatch, no_dotenv):
        monkeypatch.setenv("MIN_CONFLUENCE_SCORE", "75")
        monkeypatch.setenv("MAX_CONSECUTIVE_LOSSES", "5")
        monkeypatch.setenv("CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        cfg = load_config(no_dotenv)
        assert cfg.min_confluence_score == 75.0
        assert cfg.max_consecutive_losses == 5
        assert cfg.cache_ttl_seconds == 60.0
        assert cfg.log_level == "DEBUG"

    def test_multi_timeframe_env(self, monkeypatch, no_dotenv):
        monkeypatch.setenv("MTF_MIN_TIMEFRAMES", "2")
        monkeypatch.setenv("MTF_PRIMARY_TIMEFRAME", "15m")
        cfg = load_config(no_dotenv)
        assert cfg.mtf_min_timeframes == 2
        assert cfg.mtf_primary_timeframe == "15m"
        assert cfg.mtf_majority_pct == 60.0

    def test_reads_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("MAX_LEVERAGE=15\nAPI_PORT=9090\n", encoding="utf-8")
        cfg = load_config(str(env_file))
        assert cfg.max_leverage == 15.0
        assert cfg.api_port == 9090

    def test_malformed_value_names_variable(self, monkeypatch, no_dotenv):
        monkeypatch.setenv("MAX_CONSECUTIVE_LOSSES", "three")
        with pytest.raises(ValueError, match="MAX_CONSECUTIVE_LOSSES"):
            load_config(no_dotenv)

    def test_invalid_combination_rejected(self, monkeypatch, no_dotenv):
        monkeypatch.setenv("RSI_OVERSOLD", "80")
        with pytest.raises(ValueError, match="rsi thresholds"):
            load_config(no_dotenv)


class TestEngineConfig:
    def test_min_risk_reward_below_floor(self):
        with pytest.raises(ValueError, match="min_risk_reward"):
            EngineConfig(min_risk_reward=1.5)

    def test_risk_above_absolute_max(self):
        with pytest.raises(ValueError, match="max_risk_per_trade"):
            EngineConfig(max_risk_per_trade=4.0)

    def test_errors_are_collected(self):
        with pytest.raises(ValueError) as exc_info:
            EngineConfig(max_leverage=0.5, cache_max_size=0)
        assert "max_leverage" in str(exc_info.value)
        assert "cache_max_size" in str(exc_info.value)

    def test_multi_timeframe_bounds(self):
        with pytest.raises(ValueError) as exc_info:
            EngineConfig(mtf_min_timeframes=0, mtf_majority_pct=120.0)
        assert "mtf_min_timeframes" in str(exc_info.value)
        assert "mtf_majority_pct" in str(exc_info.value)

    def test_updated_returns_validated_copy(self):
        cfg = EngineConfig()
        new = cfg.updated(min_confluence_score=80.0)
        assert new.min_confluence_score == 80.0
        assert cfg.min_confluence_score == 70.0

    def test_updated_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unknown config option"):
            EngineConfig().updated(not_a_field=1)

    def test_to_dict(self):
        data = EngineConfig().to_dict()
        assert data["min_risk_reward"] == 2.0
        assert "cache_max_size" in data

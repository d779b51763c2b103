"""SignalCore — Signal engine (facade).

Wraps the classifier with a bounded result cache, running statistics and
runtime-editable configuration.  ``bulk_evaluate`` fetches evidence for
many symbols concurrently from an async provider, then evaluates each
one independently.  ``evaluate_multi_timeframe`` combines several
timeframes of one symbol into a single verdict.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from signalcore.cache.bounded_cache import BoundedCache
from signalcore.config import EngineConfig
from signalcore.models.evidence import Evidence
from signalcore.models.signal import (
    AccountContext,
    Direction,
    MultiTimeframeSignal,
    Signal,
    SignalType,
)
from signalcore.risk.breakeven import BreakevenDecision
from signalcore.risk.breakeven import check_breakeven as _check_breakeven
from signalcore.risk.drawdown import StreakReport
from signalcore.risk.drawdown import check_losing_streak as _check_losing_streak
from signalcore.strategy.classifier import SignalClassifier
from signalcore.strategy.stats import RunningStats
from signalcore.strategy.timeframes import synthesize

EvidenceProvider = Callable[[str], Awaitable[Evidence]]

# (evidence, account, signal) of the last evaluation per symbol/timeframe
_CacheEntry = tuple[Evidence, AccountContext, Signal]


def cache_key(symbol: str, timeframe: str) -> str:
    return f"{symbol}_{timeframe}"


@dataclass(frozen=True)
class ScanFilters:
    """Post-evaluation selection for :meth:`SignalEngine.bulk_evaluate`.

    Empty tuples and ``None`` mean "no restriction".
    """

    min_confluence_score: Optional[float] = None
    directions: tuple[Direction, ...] = ()
    signal_types: tuple[SignalType, ...] = ()
    limit: Optional[int] = None

    def matches(self, signal: Signal) -> bool:
        if (
            self.min_confluence_score is not None
            and signal.confluence_score < self.min_confluence_score
        ):
            return False
        if self.directions and signal.direction not in self.directions:
            return False
        if self.signal_types and signal.type not in self.signal_types:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict) -> "ScanFilters":
        """Build filters from plain values (``"long"``, ``"VALID"``, ...)."""
        try:
            directions = tuple(Direction(d) for d in data.get("directions") or ())
            types = tuple(SignalType(t) for t in data.get("signal_types") or ())
        except ValueError as exc:
            raise ValueError(f"Invalid scan filter: {exc}") from None
        min_score = data.get("min_confluence_score")
        limit = data.get("limit")
        if limit is not None and int(limit) < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        return cls(
            min_confluence_score=float(min_score) if min_score is not None else None,
            directions=directions,
            signal_types=types,
            limit=int(limit) if limit is not None else None,
        )


class SignalEngine:
    """Evaluates evidence into signals, caching results per symbol/timeframe.

    Args:
        config: Engine configuration.  Defaults to ``EngineConfig()``.
        cache: Result cache.  Built from the config's cache settings if None.
        stats: Shared counters.  A fresh ``RunningStats`` if None.
        logger: Logger for engine events.  Defaults to ``signalcore``.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        cache: Optional[BoundedCache] = None,
        stats: Optional[RunningStats] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._cache = cache if cache is not None else BoundedCache(
            max_size=self._config.cache_max_size,
            default_ttl=self._config.cache_ttl_seconds,
            sweep_interval=self._config.cache_sweep_seconds,
        )
        self._stats = stats if stats is not None else RunningStats()
        self._logger = logger or logging.getLogger("signalcore")
        self._config_lock = threading.Lock()
        self._classifier = self._make_classifier(self._config)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def cache(self) -> BoundedCache:
        return self._cache

    # ── Evaluation ───────────────────────────────────────────────────────

    def evaluate(
        self,
        symbol: str,
        evidence: Evidence,
        account: AccountContext,
        force_refresh: bool = False,
    ) -> Signal:
        """Return the signal for *symbol*.

        A cached signal is reused only when it was computed from equal
        evidence and account; *force_refresh* always recomputes.  Every
        call is counted in the running statistics.

        Raises:
            ValueError: If *evidence* belongs to another symbol.
            LevelInvariantError: If computed levels are mis-ordered.
        """
        if evidence.symbol != symbol:
            raise ValueError(
                f"Evidence is for {evidence.symbol!r}, not {symbol!r}"
            )
        key = cache_key(symbol, evidence.timeframe)

        if not force_refresh:
            cached = self._cache_get(key)
            if cached is not None:
                cached_evidence, cached_account, signal = cached
                if cached_evidence == evidence and cached_account == account:
                    self._logger.debug("Cache hit for %s", key)
                    self._stats.record(signal)
                    return signal

        signal = self._classifier.classify(evidence, account)
        self._cache_set(key, (evidence, account, signal))
        if signal.is_actionable:
            self._logger.info(
                "%s: %s %s signal (score %.1f, R:R %.2f)",
                key, signal.type.value, signal.direction.value,
                signal.confluence_score, signal.risk_reward or 0.0,
            )
        return signal

    def evaluate_multi_timeframe(
        self,
        symbol: str,
        evidence_by_timeframe: Mapping[str, Evidence],
        account: AccountContext,
        force_refresh: bool = False,
    ) -> MultiTimeframeSignal:
        """Evaluate *symbol* on several timeframes and combine the results.

        Each timeframe goes through :meth:`evaluate` (cache and stats
        included), then the signals are synthesised into one verdict.

        Raises:
            ValueError: If no evidence is given, or a snapshot's symbol or
                timeframe does not match its position.
        """
        if not evidence_by_timeframe:
            raise ValueError("evidence_by_timeframe must not be empty")
        for timeframe, evidence in evidence_by_timeframe.items():
            if evidence.timeframe != timeframe:
                raise ValueError(
                    f"Evidence for {timeframe!r} is on timeframe {evidence.timeframe!r}"
                )

        signals = {
            timeframe: self.evaluate(symbol, evidence, account, force_refresh)
            for timeframe, evidence in evidence_by_timeframe.items()
        }
        cfg = self._config
        result = synthesize(
            symbol,
            signals,
            min_timeframes=cfg.mtf_min_timeframes,
            majority_pct=cfg.mtf_majority_pct,
            primary_timeframe=cfg.mtf_primary_timeframe,
        )
        self._stats.record_multi_timeframe(result, cfg.mtf_success_score)
        self._logger.info(
            "%s multi-timeframe: %s %s over %d timeframe(s) (score %.1f)",
            symbol, result.type.value, result.direction.value,
            len(signals), result.confluence_score,
        )
        return result

    async def bulk_evaluate(
        self,
        symbols: Iterable[str],
        provider: EvidenceProvider,
        account: AccountContext,
        filters: Optional[ScanFilters] = None,
    ) -> list[Signal]:
        """Evaluate many symbols; best confluence first.

        Evidence for every symbol is awaited concurrently.  An error raised
        by *provider* propagates unchanged.
        """
        symbols = list(symbols)
        evidences = await asyncio.gather(*(provider(s) for s in symbols))
        signals = [
            self.evaluate(symbol, evidence, account)
            for symbol, evidence in zip(symbols, evidences)
        ]

        filters = filters or ScanFilters()
        selected = [s for s in signals if filters.matches(s)]
        selected.sort(key=lambda s: s.confluence_score, reverse=True)
        if filters.limit is not None:
            selected = selected[:filters.limit]

        self._logger.info(
            "Scanned %d symbol(s): %d selected, %d valid",
            len(symbols), len(selected),
            sum(1 for s in selected if s.is_actionable),
        )
        return selected

    # ── Stats / config / cache ───────────────────────────────────────────

    def get_stats(self) -> dict:
        return {**self._stats.snapshot(), "cache": self._cache.get_stats().to_dict()}

    def reset_stats(self) -> None:
        self._stats.reset()
        self._logger.info("Signal statistics reset.")

    def clear_cache(self) -> int:
        removed = self._cache.clear()
        self._logger.info("Signal cache cleared (%d entries).", removed)
        return removed

    def update_config(self, partial: dict[str, Any]) -> EngineConfig:
        """Apply a partial update and return the new configuration.

        Values are coerced to each option's type (``"2.5"`` → ``2.5``).

        Raises:
            ValueError: For unknown option names, uncoercible values, or a
                resulting configuration that fails validation.
        """
        with self._config_lock:
            current = self._config
            types = {f.name: type(getattr(current, f.name)) for f in fields(current)}
            unknown = sorted(set(partial) - set(types))
            if unknown:
                raise ValueError(f"Unknown config option(s): {', '.join(unknown)}")

            changes = {}
            for name, raw in partial.items():
                try:
                    changes[name] = _coerce(raw, types[name])
                except (TypeError, ValueError):
                    raise ValueError(
                        f"Invalid value for {name}: {raw!r}"
                    ) from None

            new_config = current.updated(**changes)
            if (
                new_config.cache_max_size != current.cache_max_size
                or new_config.cache_ttl_seconds != current.cache_ttl_seconds
            ):
                self._cache.resize(
                    max_size=new_config.cache_max_size,
                    default_ttl=new_config.cache_ttl_seconds,
                )
            self._config = new_config
            self._classifier = self._make_classifier(new_config)
            removed = self._cache.clear()

        self._logger.info(
            "Configuration updated: %s (%d cached signal(s) dropped)", changes, removed,
        )
        return new_config

    # ── Position management helpers ──────────────────────────────────────

    def check_breakeven(
        self,
        entry: float,
        current_price: float,
        current_stop_loss: float,
        direction: Optional[Direction] = None,
    ) -> BreakevenDecision:
        return _check_breakeven(
            entry,
            current_price,
            current_stop_loss,
            profit_threshold_pct=self._config.breakeven_profit_threshold,
            direction=direction,
        )

    def check_losing_streak(self, account: AccountContext) -> StreakReport:
        """Streak report for *account*; drawdown measured from ``initial_balance``.

        Falls back to the current balance (zero drawdown) when the account
        carries no initial balance.
        """
        initial = account.initial_balance
        if initial is None:
            initial = account.balance
        report = _check_losing_streak(
            account.trade_pnls,
            account.balance,
            initial,
            max_consecutive_losses=self._config.max_consecutive_losses,
            emergency_drawdown_pct=self._config.emergency_drawdown_pct,
        )
        if report.emergency_stop or report.should_pause:
            self._logger.warning("Streak check: %s", "; ".join(report.recommendations))
        return report

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start background cache expiry."""
        self._cache.start_sweeper()

    def stop(self) -> None:
        self._cache.stop_sweeper()

    # ── Internal ─────────────────────────────────────────────────────────

    def _make_classifier(self, config: EngineConfig) -> SignalClassifier:
        return SignalClassifier(
            config, self._stats, logger=self._logger.getChild("classifier"),
        )

    def _cache_get(self, key: str) -> Optional[_CacheEntry]:
        try:
            return self._cache.get(key)
        except Exception as exc:
            self._logger.warning("Cache read failed for %s: %s", key, exc)
            return None

    def _cache_set(self, key: str, entry: _CacheEntry) -> None:
        try:
            self._cache.set(key, entry)
        except Exception as exc:
            self._logger.warning("Cache write failed for %s: %s", key, exc)


def _coerce(value: Any, target: type) -> Any:
    if target is int:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{value} is not an integer")
        return int(value)
    if target is float:
        return float(value)
    if target is str:
        return str(value)
    return value

"""Internal API routers — /signals, /cache, /risk endpoints.

No business logic.  Parses request bodies into engine types, delegates to
the ``SignalEngine`` and serialises the results.  ``ValueError`` maps to
400 and engine defects to 500.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException

from signalcore.engine import ScanFilters, SignalEngine
from signalcore.errors import SignalEngineError
from signalcore.models.evidence import Evidence
from signalcore.models.signal import AccountContext, Direction
from signalcore.risk.position_sizer import size_position
from signalcore.risk.sl_tp import calculate_take_profit, validate_stop_loss

logger = logging.getLogger("signalcore.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_engine: Optional[SignalEngine] = None  # Set via configure_routers()


def configure_routers(engine: SignalEngine) -> None:
    """Inject the engine used by every endpoint."""
    global _engine  # noqa: PLW0603
    _engine = engine


def _require_engine() -> SignalEngine:
    if _engine is None:
        raise HTTPException(status_code=503, detail="Signal engine not configured")
    return _engine


# ── Body parsing ─────────────────────────────────────────────────────────


def _number(body: dict, name: str, default: Optional[float] = None) -> float:
    value = body.get(name, default)
    if value is None:
        raise ValueError(f"{name} is required")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _direction(body: dict) -> Optional[Direction]:
    raw = body.get("direction")
    if raw is None:
        return None
    try:
        return Direction(raw)
    except ValueError:
        raise ValueError(f"Unknown direction: {raw!r}") from None


def _parse_account(data: Optional[dict]) -> AccountContext:
    if not data:
        raise ValueError("account is required")
    risk = data.get("risk_percent")
    initial = data.get("initial_balance")
    try:
        pnls = tuple(float(p) for p in data.get("trade_pnls") or ())
    except (TypeError, ValueError):
        raise ValueError("trade_pnls must be a list of numbers") from None
    return AccountContext(
        balance=_number(data, "balance"),
        risk_percent=_number(data, "risk_percent") if risk is not None else None,
        leverage=_number(data, "leverage", 10.0),
        trade_pnls=pnls,
        initial_balance=(
            _number(data, "initial_balance") if initial is not None else None
        ),
    )


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(exc))


def _engine_failure(exc: SignalEngineError) -> HTTPException:
    logger.error("Engine error: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


# ── Signals ──────────────────────────────────────────────────────────────


@router.post("/signals/evaluate")
async def evaluate_signal(body: dict):
    """Evaluate one evidence snapshot.

    Body: ``{"evidence": {...}, "account": {...}, "force_refresh": false}``.
    """
    engine = _require_engine()
    try:
        evidence = Evidence.from_dict(body.get("evidence") or {})
        account = _parse_account(body.get("account"))
        signal = engine.evaluate(
            evidence.symbol, evidence, account,
            force_refresh=bool(body.get("force_refresh", False)),
        )
    except ValueError as exc:
        raise _bad_request(exc)
    except SignalEngineError as exc:
        raise _engine_failure(exc)
    return signal.to_dict()


@router.post("/signals/scan")
async def scan_signals(body: dict):
    """Evaluate several evidence snapshots, best confluence first.

    Body: ``{"evidence": [{...}, ...], "account": {...}, "filters": {...}}``.
    """
    engine = _require_engine()
    try:
        snapshots = [Evidence.from_dict(item) for item in body.get("evidence") or ()]
        if not snapshots:
            raise ValueError("evidence must be a non-empty list")
        by_symbol = {ev.symbol: ev for ev in snapshots}
        if len(by_symbol) != len(snapshots):
            raise ValueError("evidence symbols must be unique")
        account = _parse_account(body.get("account"))
        filters = ScanFilters.from_dict(body.get("filters") or {})

        async def provider(symbol: str) -> Evidence:
            return by_symbol[symbol]

        signals = await engine.bulk_evaluate(
            list(by_symbol), provider, account, filters,
        )
    except ValueError as exc:
        raise _bad_request(exc)
    except SignalEngineError as exc:
        raise _engine_failure(exc)
    return {"signals": [s.to_dict() for s in signals], "total": len(signals)}


@router.post("/signals/evaluate-multi")
async def evaluate_multi_timeframe(body: dict):
    """Evaluate one symbol on several timeframes and combine the verdicts.

    Body: ``{"evidence": [{...}, ...], "account": {...}, "force_refresh": false}``
    with one snapshot per timeframe, all for the same symbol.
    """
    engine = _require_engine()
    try:
        snapshots = [Evidence.from_dict(item) for item in body.get("evidence") or ()]
        if not snapshots:
            raise ValueError("evidence must be a non-empty list")
        symbols = {ev.symbol for ev in snapshots}
        if len(symbols) != 1:
            raise ValueError("evidence must all be for one symbol")
        by_timeframe = {ev.timeframe: ev for ev in snapshots}
        if len(by_timeframe) != len(snapshots):
            raise ValueError("evidence timeframes must be unique")
        account = _parse_account(body.get("account"))
        result = engine.evaluate_multi_timeframe(
            symbols.pop(), by_timeframe, account,
            force_refresh=bool(body.get("force_refresh", False)),
        )
    except ValueError as exc:
        raise _bad_request(exc)
    except SignalEngineError as exc:
        raise _engine_failure(exc)
    return result.to_dict()


@router.get("/signals/stats")
async def get_signal_stats():
    return _require_engine().get_stats()


@router.post("/signals/stats/reset")
async def reset_signal_stats():
    engine = _require_engine()
    engine.reset_stats()
    return {"status": "reset", "stats": engine.get_stats()}


@router.get("/signals/config")
async def get_signal_config():
    return _require_engine().config.to_dict()


@router.put("/signals/config")
async def put_signal_config(body: dict):
    """Apply a partial config update.  Unknown options are rejected."""
    engine = _require_engine()
    try:
        config = engine.update_config(body)
    except ValueError as exc:
        raise _bad_request(exc)
    return config.to_dict()


# ── Cache ────────────────────────────────────────────────────────────────


@router.get("/cache/stats")
async def get_cache_stats():
    engine = _require_engine()
    return {
        **engine.cache.get_stats().to_dict(),
        "keys": engine.cache.key_info(),
    }


@router.delete("/cache")
async def clear_cache():
    return {"removed": _require_engine().clear_cache()}


# ── Risk helpers ─────────────────────────────────────────────────────────


@router.post("/risk/position-size")
async def position_size(body: dict):
    """Size a position.  Invalid inputs come back as ``valid: false``."""
    cfg = _require_engine().config
    try:
        result = size_position(
            balance=_number(body, "balance"),
            entry=_number(body, "entry"),
            stop_loss=_number(body, "stop_loss"),
            risk_percent=_number(body, "risk_percent", cfg.max_risk_per_trade),
            leverage=_number(body, "leverage", 10.0),
            max_risk_percent=cfg.absolute_max_risk,
            max_leverage=cfg.max_leverage,
        )
    except ValueError as exc:
        raise _bad_request(exc)
    return asdict(result)


@router.post("/risk/take-profit")
async def take_profit(body: dict):
    """Take-profit for a reward:risk ratio, plus a check of the stop."""
    cfg = _require_engine().config
    try:
        entry = _number(body, "entry")
        stop_loss = _number(body, "stop_loss")
        rr_ratio = _number(body, "rr_ratio", cfg.min_risk_reward)
        direction = _direction(body)
        tp = calculate_take_profit(
            entry, stop_loss, rr_ratio,
            direction=direction, min_rr_floor=cfg.risk_reward_floor,
        )
        stop_check = validate_stop_loss(
            entry, stop_loss, direction=direction,
            max_stop_distance_pct=cfg.stop_loss_ceiling_pct,
        )
    except ValueError as exc:
        raise _bad_request(exc)
    return {
        "take_profit": tp,
        "rr_ratio": rr_ratio,
        "stop_loss_validation": {
            **asdict(stop_check),
            "direction": stop_check.direction.value,
        },
    }


@router.post("/risk/breakeven")
async def breakeven(body: dict):
    engine = _require_engine()
    try:
        decision = engine.check_breakeven(
            entry=_number(body, "entry"),
            current_price=_number(body, "current_price"),
            current_stop_loss=_number(body, "current_stop_loss"),
            direction=_direction(body),
        )
    except ValueError as exc:
        raise _bad_request(exc)
    return {**asdict(decision), "action": decision.action.value}


@router.post("/risk/streak")
async def losing_streak(body: dict):
    """Body: an account record (``balance``, ``trade_pnls``, ``initial_balance``)."""
    engine = _require_engine()
    try:
        report = engine.check_losing_streak(_parse_account(body))
    except ValueError as exc:
        raise _bad_request(exc)
    return asdict(report)

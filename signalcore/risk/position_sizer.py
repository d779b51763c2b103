"""Position sizing — pure math, no I/O.

Calculates how many units to trade from account balance, risk
percentage, stop-loss distance and leverage.  Invalid inputs produce an
invalid ``RiskValidation`` with warnings instead of an exception, so the
caller always has a structured result to show.
"""

from signalcore.models.signal import RiskValidation


HIGH_RISK_PCT = 3.0
HIGH_LEVERAGE = 15.0
EXTREME_LEVERAGE = 20.0


def size_position(
    balance: float,
    entry: float,
    stop_loss: float,
    risk_percent: float,
    leverage: float = 10.0,
    max_risk_percent: float = 3.0,
    max_leverage: float = 20.0,
) -> RiskValidation:
    """Size a position so that hitting the stop loses *risk_percent* of balance.

    Formula::

        risk_amount      = balance × risk_percent / 100
        per_unit_risk    = |entry − stop_loss|
        position_size    = risk_amount / per_unit_risk
        required_capital = position_size × entry / leverage

    Args:
        balance: Account balance (e.g. 1_000.0).
        entry: Entry price.
        stop_loss: Stop-loss price.
        risk_percent: Percentage of balance to risk, in (0, max_risk_percent].
        leverage: Leverage to apply, in [1, max_leverage].
        max_risk_percent: Highest accepted risk percentage.
        max_leverage: Highest accepted leverage.

    Returns:
        ``RiskValidation``; ``valid`` is ``False`` and ``reason`` names the
        first failure when any check fails.
    """
    failures: list[tuple[str, str]] = []

    if balance <= 0:
        failures.append(("invalid_account", f"Account balance must be positive, got {balance}"))
    if entry <= 0 or stop_loss <= 0:
        failures.append(("invalid_price", "Entry and stop-loss prices must be positive"))
    if not 0 < risk_percent <= max_risk_percent:
        failures.append((
            "excessive_risk",
            f"Risk {risk_percent}% is outside the allowed range (0, {max_risk_percent}]%",
        ))
    if not 1 <= leverage <= max_leverage:
        failures.append((
            "excessive_leverage",
            f"Leverage {leverage}x is outside the allowed range [1, {max_leverage}]x",
        ))

    risk_amount = max(balance, 0.0) * risk_percent / 100.0
    per_unit_risk = abs(entry - stop_loss)

    position_size = None
    position_value = None
    required_capital = None
    if per_unit_risk == 0:
        failures.append((
            "zero_risk_distance",
            "Stop-loss equals entry: risk per unit is zero, position size undefined",
        ))
    else:
        position_size = risk_amount / per_unit_risk
        position_value = position_size * entry
        if leverage > 0:
            required_capital = position_value / leverage
        if required_capital is not None and balance > 0 and required_capital > balance:
            failures.append((
                "insufficient_capital",
                f"Required capital {required_capital:.2f} exceeds balance {balance:.2f}",
            ))

    warnings = [message for _, message in failures]
    if not failures:
        warnings.extend(_advisory_warnings(risk_percent, leverage))

    return RiskValidation(
        valid=not failures,
        position_size=position_size,
        risk_amount=risk_amount,
        leverage=leverage,
        required_capital=required_capital,
        warnings=tuple(warnings),
        position_value=position_value,
        risk_percent=risk_percent,
        per_unit_risk=per_unit_risk,
        reason=failures[0][0] if failures else None,
    )


def _advisory_warnings(risk_percent: float, leverage: float) -> list[str]:
    """Warnings that do not invalidate the position."""
    warnings = []
    if risk_percent >= HIGH_RISK_PCT:
        warnings.append("High risk: only suitable for experienced traders")
    if leverage >= HIGH_LEVERAGE:
        warnings.append("High leverage: liquidation price is close")
    if leverage >= EXTREME_LEVERAGE:
        warnings.append("Maximum leverage: extremely dangerous")
    return warnings

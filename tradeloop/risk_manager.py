"""Risk policy for the trading decision loop.

The checks here are pure: same inputs, same verdict, no I/O. ``log_trade``
is the only side effect and it only emits an audit line.
"""

import json
import logging
import math
from datetime import datetime, timezone
from typing import Optional

from tradeloop.config import RiskConfig
from tradeloop.models import RiskResult


logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("tradeloop.audit")


def _is_positive(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def check_buy_risk(
    amount: float,
    price: float,
    leverage: float,
    current_balance: float,
    config: RiskConfig,
    total_capital: Optional[float] = None,
) -> RiskResult:
    """
    Validate a proposed Buy against leverage, margin and position-size limits.

    Margin is amount * price / leverage and must fit in current_balance. The
    position size is the notional, amount * price, and must stay within
    max_position_size of total_capital.

    Args:
        amount: Requested size in base units
        price: Requested entry price
        leverage: Requested leverage
        current_balance: Cash still uncommitted in this cycle
        config: Risk limits
        total_capital: Account value the position-size cap applies to
            (defaults to current_balance)

    Returns:
        RiskResult, denied with a readable reason on the first failed rule
    """
    if not (_is_positive(amount) and _is_positive(price) and _is_positive(leverage)):
        return RiskResult(False, f"Invalid order values: amount={amount}, price={price}, leverage={leverage}")

    if leverage > config.max_leverage:
        return RiskResult(False, f"Leverage {leverage:g}x exceeds maximum {config.max_leverage:g}x")

    required_margin = amount * price / leverage
    if required_margin > current_balance:
        return RiskResult(
            False,
            f"Insufficient remaining margin: need ${required_margin:.2f} but have ${current_balance:.2f}",
        )

    capital = current_balance if total_capital is None else total_capital
    notional = amount * price
    max_notional = capital * config.max_position_size
    if notional > max_notional:
        return RiskResult(
            False,
            f"Position size ${notional:.2f} exceeds {config.max_position_size * 100:.0f}% "
            f"of capital (${max_notional:.2f})",
        )

    return RiskResult(True, "")


def check_daily_loss_limit(today_pnl: float, initial_capital: float, config: RiskConfig) -> RiskResult:
    """
    Deny trading once today's loss is deeper than the configured fraction of capital.

    Args:
        today_pnl: Today's P&L (negative for a loss)
        initial_capital: Capital the loss is measured against
        config: Risk limits

    Returns:
        RiskResult
    """
    if not _is_positive(initial_capital):
        return RiskResult(False, f"Cannot evaluate daily loss with capital ${initial_capital}")

    loss_fraction = today_pnl / initial_capital
    if loss_fraction < -config.max_daily_loss:
        return RiskResult(
            False,
            f"Daily loss {loss_fraction * 100:.2f}% exceeds limit of -{config.max_daily_loss * 100:.2f}% "
            f"(P&L ${today_pnl:.2f} on ${initial_capital:.2f})",
        )
    return RiskResult(True, "")


def log_trade(
    action: str,
    symbol: str,
    amount: Optional[float],
    price: Optional[float],
    leverage: Optional[float] = None,
    order_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> None:
    """Append one audit line for an order attempt."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "symbol": symbol,
        "amount": amount,
        "price": price,
        "leverage": leverage,
        "order_id": order_id,
        "reason": reason,
    }
    audit_logger.info(json.dumps(entry))

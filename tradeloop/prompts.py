"""Prompt construction for the decision model."""

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from tradeloop.config import RiskConfig
from tradeloop.decision_parser import decision_json_schema
from tradeloop.models import AccountState, Instrument, MarketSnapshot


def _fmt(value: Any, digits: int = 4) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "n/a"
    if isinstance(value, float):
        return f"{value:,.{digits}f}"
    return str(value)


def _fmt_series(values: List[float]) -> str:
    return "[" + ", ".join(_fmt(v) for v in values) + "]"


def build_system_prompt(instruments: List[Instrument], risk_config: RiskConfig) -> str:
    """Trading rules, risk limits and the output contract."""
    symbols = ", ".join(i.value for i in instruments)
    schema = json.dumps(decision_json_schema(), indent=2)
    return f"""You are an autonomous trader managing USDT-margined perpetual futures on: {symbols}.

Each invocation you receive market data for every symbol and the current account state.
Return between 1 and 5 decisions, at most one per symbol.

OPERATIONS:
- "Buy": open or add to a long. Provide "buy" with pricing, amount (base units), leverage (whole number, 1-30)
  and optionally stop_loss_percent / take_profit_percent.
- "Sell": reduce or close a long. Provide "sell" with percentage of the position to close (0-100).
- "Hold": do nothing. Optionally provide "adjust_profit" with new stop_loss / take_profit prices.

RISK LIMITS (orders outside them are rejected):
- Maximum leverage: {risk_config.max_leverage:g}x
- Maximum position size (amount * pricing) per Buy: {risk_config.max_position_size * 100:.0f}% of total capital
- Required margin is amount * pricing / leverage and must fit in the available cash that is
  left after your earlier Buy decisions in the same answer.
- Trading halts for the cycle when today's loss exceeds {risk_config.max_daily_loss * 100:.0f}% of capital.

Every decision MUST include "prediction" (short_term_trend, confidence, key_levels, analysis)
and "chat" explaining the reasoning.

Respond with a single JSON object matching this schema and nothing else:
{schema}"""


def _format_snapshot(snapshot: MarketSnapshot) -> str:
    intraday = snapshot.intraday
    long_term = snapshot.long_term
    lines = [
        f"=== {snapshot.instrument.value} ===",
        f"current_price = {_fmt(snapshot.price)}, bid = {_fmt(snapshot.bid)}, ask = {_fmt(snapshot.ask)}",
        f"current_ema20 = {_fmt(intraday.get('ema_20'))}, current_macd = {_fmt(intraday.get('macd'))}, "
        f"current_rsi (7 period) = {_fmt(intraday.get('rsi_7'))}",
        f"Funding Rate: {_fmt(snapshot.funding_rate, 6)}",
        "",
        "Intraday series (3-minute intervals, oldest -> latest):",
        f"Mid prices: {_fmt_series(intraday.get('close_series', []))}",
        f"EMA indicators (20-period): {_fmt_series(intraday.get('ema_20_series', []))}",
        f"MACD indicators: {_fmt_series(intraday.get('macd_series', []))}",
        f"RSI indicators (7-Period): {_fmt_series(intraday.get('rsi_7_series', []))}",
        f"RSI indicators (14-Period): {_fmt_series(intraday.get('rsi_14_series', []))}",
        "",
        "Longer-term context (4-hour timeframe):",
        f"20-Period EMA: {_fmt(long_term.get('ema_20'))} vs. 50-Period EMA: {_fmt(long_term.get('ema_50'))}",
        f"3-Period ATR: {_fmt(long_term.get('atr_3'))} vs. 14-Period ATR: {_fmt(long_term.get('atr_14'))}",
        f"Current Volume: {_fmt(long_term.get('volume'), 2)} vs. Average Volume: {_fmt(long_term.get('avg_volume'), 2)}",
        f"MACD indicators: {_fmt_series(long_term.get('macd_series', []))}",
        f"RSI indicators (14-Period): {_fmt_series(long_term.get('rsi_14_series', []))}",
    ]
    return "\n".join(lines)


def _format_account(account: AccountState) -> str:
    lines = [
        "HERE IS YOUR ACCOUNT INFORMATION & PERFORMANCE",
        f"Total account value: ${account.total_cash_value:,.2f}",
        f"Available cash: ${account.available_cash:,.2f}",
    ]
    if account.total_return_pct is not None:
        lines.append(f"Current total return (percent): {account.total_return_pct:.2f}%")
    if not account.positions:
        lines.append("Current live positions: none")
    else:
        lines.append("Current live positions & performance:")
        for p in account.positions:
            lines.append(
                f"- {p.instrument.value}: {p.side} {p.contracts:g} @ entry {_fmt(p.entry_price)}, "
                f"mark {_fmt(p.mark_price)}, leverage {_fmt(p.leverage, 0)}x, "
                f"unrealized P&L ${p.unrealized_pnl:,.2f}"
            )
    return "\n".join(lines)


def build_user_prompt(
    snapshots: Dict[Instrument, MarketSnapshot],
    account: AccountState,
    start_time: Optional[datetime] = None,
) -> str:
    """Market data for every fetched instrument followed by the account state."""
    start_time = start_time or datetime.now()
    sections = [
        f"It is {start_time.isoformat(timespec='seconds')}. Below is the current market state "
        f"for {len(snapshots)} symbol(s), followed by your account.",
        "ALL OF THE PRICE OR SIGNAL DATA BELOW IS ORDERED: OLDEST -> NEWEST",
    ]
    sections.extend(_format_snapshot(snapshot) for snapshot in snapshots.values())
    sections.append(_format_account(account))
    return "\n\n".join(sections)

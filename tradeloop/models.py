"""Data models for the trading decision loop."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Instrument(str, Enum):
    """Supported instruments. The value is the base asset the model sees."""

    BTC = "BTC"
    ETH = "ETH"
    SOL = "SOL"
    BNB = "BNB"
    DOGE = "DOGE"

    @property
    def market_symbol(self) -> str:
        """Unified ccxt symbol of the USDT-margined perpetual."""
        return f"{self.value}/USDT:USDT"

    @property
    def display_symbol(self) -> str:
        return f"{self.value}/USDT"

    @classmethod
    def parse(cls, raw: str) -> "Instrument":
        """Accept 'BTC', 'btc', 'BTC/USDT' or 'BTC/USDT:USDT'."""
        base = raw.strip().upper().split("/")[0]
        try:
            return cls(base)
        except ValueError:
            supported = ", ".join(i.value for i in cls)
            raise ValueError(f"Unsupported instrument '{raw}'. Supported: {supported}")


class Operation(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"


@dataclass
class MarketSnapshot:
    """Normalized market data snapshot for one instrument."""

    timestamp: int  # Unix milliseconds
    instrument: Instrument
    price: float  # Last trade price
    bid: float
    ask: float
    funding_rate: Optional[float]
    intraday: Dict[str, Any]  # 3m indicators and recent series
    long_term: Dict[str, Any]  # 4h indicators


@dataclass
class Position:
    """Open perpetual position as reported by the venue."""

    instrument: Instrument
    side: str  # "long" | "short"
    contracts: float
    entry_price: float
    mark_price: float
    leverage: Optional[float]
    unrealized_pnl: float
    initial_margin: float = 0.0


@dataclass
class AccountState:
    """Account snapshot taken once at the start of a cycle."""

    total_cash_value: float
    available_cash: float
    positions: List[Position] = field(default_factory=list)
    initial_capital: Optional[float] = None

    @property
    def unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl or 0.0 for p in self.positions)

    @property
    def total_return_pct(self) -> Optional[float]:
        if not self.initial_capital:
            return None
        return (self.total_cash_value - self.initial_capital) / self.initial_capital * 100

    def position_for(self, instrument: Instrument) -> Optional[Position]:
        for position in self.positions:
            if position.instrument == instrument and position.contracts != 0:
                return position
        return None


@dataclass
class RiskResult:
    """Result of risk validation."""

    approved: bool
    reason: str  # Empty if approved, explanation if denied


@dataclass
class ExecutionResult:
    """Result of an order sent to the venue."""

    executed: bool
    order_id: Optional[str]
    filled_size: Optional[float]
    fill_price: Optional[float]
    error: Optional[str]
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None


@dataclass
class ProtectiveOrderResult:
    """Result of placing stop-loss / take-profit orders."""

    success: bool
    stop_loss_order_id: Optional[str] = None
    take_profit_order_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TradeRecord:
    """Persisted outcome of one decision after gating and execution."""

    symbol: str
    operation: str  # "Buy" | "Sell" | "Hold"
    pricing: Optional[float]
    amount: Optional[float]
    leverage: Optional[float]
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    prediction: Optional[Dict[str, Any]] = None
    order_id: Optional[str] = None
    block_reason: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CycleRecord:
    """One ledger entry per cycle. Trades are written together with it."""

    id: str
    created_at: str  # ISO-8601, UTC
    chat: str
    reasoning: str
    user_prompt: str
    tradings: List[TradeRecord]

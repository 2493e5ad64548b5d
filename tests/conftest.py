"""
Shared fixtures for the trading loop tests.

Gateways are replaced by small in-memory fakes; the exchange and the model
client are replaced by ``unittest.mock`` objects inside the individual tests.
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from tradeloop.config import Config, RiskConfig
from tradeloop.controllers.cycle_controller import CycleController
from tradeloop.decision_parser import Decision
from tradeloop.decision_provider import OracleResponse
from tradeloop.models import AccountState, CycleRecord, Instrument, MarketSnapshot, Position
from tradeloop.trade_executor import TradeExecutor


def prediction_payload() -> Dict[str, Any]:
    return {
        "short_term_trend": "bullish",
        "confidence": "medium",
        "key_levels": {"support": 95.0, "resistance": 110.0},
        "analysis": "Higher lows on the 3m chart",
    }


def decision_payload(operation: str = "Hold", symbol: str = "BTC", chat: str = "Waiting for confirmation",
                     **extra: Any) -> Dict[str, Any]:
    payload = {
        "operation": operation,
        "symbol": symbol,
        "prediction": prediction_payload(),
        "chat": chat,
    }
    payload.update(extra)
    return payload


def make_decision(operation: str = "Hold", symbol: str = "BTC", **extra: Any) -> Decision:
    # Strict models only take enum values from JSON, so build through the JSON path
    return Decision.model_validate_json(json.dumps(decision_payload(operation, symbol, **extra)))


def make_snapshot(instrument: Instrument, price: float = 100.0) -> MarketSnapshot:
    indicators = {
        "close": price,
        "ema_20": price,
        "ema_50": price,
        "macd": 0.0,
        "rsi_7": 50.0,
        "rsi_14": 50.0,
        "atr_3": 1.0,
        "atr_14": 1.0,
        "volume": 10.0,
        "avg_volume": 10.0,
        "close_series": [price] * 10,
        "ema_20_series": [price] * 10,
        "macd_series": [0.0] * 10,
        "rsi_7_series": [50.0] * 10,
        "rsi_14_series": [50.0] * 10,
    }
    return MarketSnapshot(
        timestamp=1_700_000_000_000,
        instrument=instrument,
        price=price,
        bid=price - 0.5,
        ask=price + 0.5,
        funding_rate=0.0001,
        intraday=dict(indicators),
        long_term=dict(indicators),
    )


class FakeDataAcquisition:
    """Returns snapshots for every requested instrument not listed in ``failing``."""

    def __init__(self, failing: Optional[List[Instrument]] = None):
        self.failing = failing or []
        self.requested: List[List[Instrument]] = []

    def fetch_snapshots(self, instruments):
        self.requested.append(list(instruments))
        return {i: make_snapshot(i) for i in instruments if i not in self.failing}


class FakeAccountGateway:
    def __init__(self, account: AccountState):
        self.account = account
        self.overrides: List[Optional[float]] = []

    def get_account_state(self, capital_override=None) -> AccountState:
        self.overrides.append(capital_override)
        return self.account

    def fetch_positions(self) -> List[Position]:
        return list(self.account.positions)


class FakeDecisionProvider:
    """Replays a fixed list of decisions, or raises ``error`` when set."""

    def __init__(self, decisions: Optional[List[Decision]] = None, reasoning: str = "trace",
                 error: Optional[Exception] = None):
        self.decisions = decisions or []
        self.reasoning = reasoning
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def propose(self, system_prompt: str, user_prompt: str, timeout: float) -> OracleResponse:
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return OracleResponse(decisions=list(self.decisions), reasoning=self.reasoning, raw="{}")


class RecordingLedger:
    def __init__(self):
        self.records: List[CycleRecord] = []

    def append(self, record: CycleRecord) -> None:
        self.records.append(record)

    def read_recent(self, limit: int = 20):
        return []


@pytest.fixture()
def config() -> Config:
    return Config(
        exchange_id="binanceusdm",
        exchange_api_key="exchange-key",
        exchange_api_secret="exchange-secret",
        symbols=[Instrument.BTC, Instrument.ETH, Instrument.SOL],
        deepseek_api_key="deepseek-key",
        deepseek_base_url="https://api.deepseek.com",
        deepseek_model="deepseek-chat",
        oracle_timeout_seconds=120.0,
        market_data_timeout_seconds=10.0,
        loop_interval_seconds=300,
        ledger_path="logs/decision_ledger.jsonl",
        initial_capital=None,
        cron_secret_key=None,
    )


@pytest.fixture()
def risk_config() -> RiskConfig:
    return RiskConfig(trading_mode="simulated", max_leverage=10.0, max_position_size=1.0, max_daily_loss=0.1)


@pytest.fixture()
def account() -> AccountState:
    return AccountState(total_cash_value=1000.0, available_cash=1000.0)


@pytest.fixture()
def trade_executor() -> Mock:
    return Mock(spec=TradeExecutor)


@pytest.fixture()
def ledger() -> RecordingLedger:
    return RecordingLedger()


@pytest.fixture()
def build_controller(config, risk_config, account, trade_executor, ledger):
    """Factory for a CycleController wired to fakes; override any part per test."""

    def _build(decisions=None, provider=None, data_acquisition=None, account_state=None,
               risk=None) -> CycleController:
        return CycleController(
            config,
            data_acquisition=data_acquisition or FakeDataAcquisition(),
            account_gateway=FakeAccountGateway(account_state or account),
            decision_provider=provider or FakeDecisionProvider(decisions),
            trade_executor=trade_executor,
            ledger=ledger,
            risk_config_loader=lambda: risk or risk_config,
        )

    return _build

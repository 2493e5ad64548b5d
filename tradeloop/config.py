"""Configuration module for the trading decision loop."""

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

from tradeloop.models import Instrument


TRADING_MODES = ("live", "simulated")


def _get_float(name: str, default: str) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        raise ValueError(f"{name} must be a valid float")


def _get_int(name: str, default: str) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        raise ValueError(f"{name} must be a valid integer")


@dataclass
class Config:
    """Process-wide configuration loaded from environment variables."""

    # Exchange
    exchange_id: str
    exchange_api_key: str
    exchange_api_secret: str
    symbols: List[Instrument]

    # Decision model
    deepseek_api_key: str
    deepseek_base_url: str
    deepseek_model: str
    oracle_timeout_seconds: float

    # Behaviour
    market_data_timeout_seconds: float
    loop_interval_seconds: int
    ledger_path: str
    initial_capital: Optional[float]

    # Scheduled invocation
    cron_secret_key: Optional[str]

    @classmethod
    def from_env(cls) -> "Config":
        """
        Load configuration from environment variables with validation.

        Returns:
            Config: Validated configuration object

        Raises:
            ValueError: If required fields are missing or invalid
        """
        load_dotenv()

        exchange_id = os.getenv("EXCHANGE_ID", "binanceusdm").strip()
        exchange_api_key = os.getenv("EXCHANGE_API_KEY")
        exchange_api_secret = os.getenv("EXCHANGE_API_SECRET")
        deepseek_api_key = os.getenv("DEEPSEEK_API_KEY")

        required_fields = {
            "EXCHANGE_API_KEY": exchange_api_key,
            "EXCHANGE_API_SECRET": exchange_api_secret,
            "DEEPSEEK_API_KEY": deepseek_api_key,
        }
        missing_fields = [name for name, value in required_fields.items() if not value]
        if missing_fields:
            raise ValueError(f"Missing required environment variables: {', '.join(missing_fields)}")

        # Parse symbols (comma-separated), default to every supported instrument
        symbols_str = os.getenv("SYMBOLS", ",".join(i.value for i in Instrument))
        symbols: List[Instrument] = []
        for raw in symbols_str.split(","):
            if not raw.strip():
                continue
            instrument = Instrument.parse(raw)
            if instrument not in symbols:
                symbols.append(instrument)
        if not symbols:
            raise ValueError("SYMBOLS must contain at least one valid symbol")

        oracle_timeout_seconds = _get_float("ORACLE_TIMEOUT_SECONDS", "120")
        market_data_timeout_seconds = _get_float("MARKET_DATA_TIMEOUT_SECONDS", "10")
        loop_interval_seconds = _get_int("LOOP_INTERVAL_SECONDS", "300")

        if oracle_timeout_seconds <= 0:
            raise ValueError("ORACLE_TIMEOUT_SECONDS must be greater than 0")
        if market_data_timeout_seconds <= 0:
            raise ValueError("MARKET_DATA_TIMEOUT_SECONDS must be greater than 0")
        if loop_interval_seconds <= 0:
            raise ValueError("LOOP_INTERVAL_SECONDS must be greater than 0")

        initial_capital = None
        initial_capital_str = os.getenv("INITIAL_CAPITAL")
        if initial_capital_str:
            try:
                initial_capital = float(initial_capital_str)
            except ValueError:
                raise ValueError("INITIAL_CAPITAL must be a valid float")
            if initial_capital <= 0:
                raise ValueError("INITIAL_CAPITAL must be greater than 0")

        return cls(
            exchange_id=exchange_id,
            exchange_api_key=exchange_api_key,
            exchange_api_secret=exchange_api_secret,
            symbols=symbols,
            deepseek_api_key=deepseek_api_key,
            deepseek_base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
            deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
            oracle_timeout_seconds=oracle_timeout_seconds,
            market_data_timeout_seconds=market_data_timeout_seconds,
            loop_interval_seconds=loop_interval_seconds,
            ledger_path=os.getenv("LEDGER_PATH", "logs/decision_ledger.jsonl"),
            initial_capital=initial_capital,
            cron_secret_key=os.getenv("CRON_SECRET_KEY") or None,
        )


@dataclass(frozen=True)
class RiskConfig:
    """Risk limits. Re-read at the start of every cycle, never mid-cycle."""

    trading_mode: str = "simulated"
    max_leverage: float = 10.0
    max_position_size: float = 0.3  # Largest Buy notional as a fraction of total capital
    max_daily_loss: float = 0.1  # Fraction of total capital

    @property
    def is_live(self) -> bool:
        return self.trading_mode == "live"

    @classmethod
    def from_env(cls) -> "RiskConfig":
        """
        Load risk limits from environment variables.

        Raises:
            ValueError: If a value is malformed or out of range
        """
        load_dotenv()

        trading_mode = os.getenv("TRADING_MODE", "simulated").strip().lower()
        if trading_mode not in TRADING_MODES:
            raise ValueError("TRADING_MODE must be either 'live' or 'simulated'")

        max_leverage = _get_float("MAX_LEVERAGE", "10")
        max_position_size = _get_float("MAX_POSITION_SIZE", "0.3")
        max_daily_loss = _get_float("MAX_DAILY_LOSS", "0.1")

        if not 1.0 <= max_leverage <= 30.0:
            raise ValueError("MAX_LEVERAGE must be between 1 and 30")
        if not 0.0 < max_position_size <= 1.0:
            raise ValueError("MAX_POSITION_SIZE must be between 0.0 (exclusive) and 1.0")
        if not 0.0 < max_daily_loss <= 1.0:
            raise ValueError("MAX_DAILY_LOSS must be between 0.0 (exclusive) and 1.0")

        return cls(
            trading_mode=trading_mode,
            max_leverage=max_leverage,
            max_position_size=max_position_size,
            max_daily_loss=max_daily_loss,
        )

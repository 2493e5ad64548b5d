"""Exchange adapter for connecting to the perpetual futures venue."""

import logging

import ccxt

from tradeloop.config import Config

logger = logging.getLogger(__name__)


class ExchangeAdapter:
    """Builds and holds the ccxt client shared by the data, account and execution layers."""

    def __init__(self, config: Config, trading_mode: str):
        """
        Initialize exchange adapter.

        Args:
            config: Configuration object with exchange settings
            trading_mode: "live" or "simulated"; simulated routes the client
                to the venue's demo/sandbox endpoints
        """
        self.config = config
        self.trading_mode = trading_mode
        self.exchange = self._init_exchange(config, trading_mode)

    @staticmethod
    def _init_exchange(config: Config, trading_mode: str):
        """
        Initialize ccxt exchange client with proper configuration.

        Args:
            config: Configuration object
            trading_mode: "live" or "simulated"

        Returns:
            Configured ccxt exchange instance

        Raises:
            ValueError: If the configured exchange id is unknown to ccxt
        """
        exchange_class = getattr(ccxt, config.exchange_id, None)
        if exchange_class is None:
            raise ValueError(f"Unsupported exchange id: {config.exchange_id}")

        exchange = exchange_class({
            'apiKey': config.exchange_api_key,
            'secret': config.exchange_api_secret,
            'enableRateLimit': True,
            # Per-request timeout in milliseconds, bounds every snapshot fetch
            'timeout': int(config.market_data_timeout_seconds * 1000),
            'options': {
                'defaultType': 'future',
                'adjustForTimeDifference': True,
            },
        })

        if trading_mode == "live":
            logger.warning(f"LIVE trading client created for {config.exchange_id}")
        elif hasattr(exchange, 'enable_demo_trading'):
            exchange.enable_demo_trading(True)
            logger.info(f"SIMULATED mode: {config.exchange_id} demo trading endpoints enabled")
        else:
            exchange.set_sandbox_mode(True)
            logger.info(f"SIMULATED mode: {config.exchange_id} sandbox endpoints enabled")

        return exchange

"""Market data fetching logic for ticker, OHLCV and funding data."""

import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class MarketDataFetcher:
    """Handles fetching of ticker, OHLCV and funding data."""

    def __init__(self, exchange):
        """
        Initialize market data fetcher.

        Args:
            exchange: ccxt exchange instance
        """
        self.exchange = exchange

    def fetch_ticker_data(self, symbol: str) -> Dict:
        """
        Fetch ticker data from exchange.

        Args:
            symbol: Unified market symbol (e.g., "BTC/USDT:USDT")

        Returns:
            Dictionary with 'last', 'bid', 'ask' and 'timestamp'

        Raises:
            ValueError: If the venue did not report a usable last price
        """
        ticker = self.exchange.fetch_ticker(symbol)
        last = ticker.get('last')
        if last is None or last <= 0:
            raise ValueError(f"No last price in ticker for {symbol}")
        return {
            'last': float(last),
            'bid': float(ticker.get('bid') or last),
            'ask': float(ticker.get('ask') or last),
            'timestamp': ticker.get('timestamp'),
        }

    def fetch_ohlcv_data(self, symbol: str, timeframe: str, limit: int) -> List[List[float]]:
        """
        Fetch OHLCV data from exchange.

        Args:
            symbol: Unified market symbol
            timeframe: Timeframe string (e.g., "3m", "4h")
            limit: Number of candles to fetch

        Returns:
            List of OHLCV candles in ccxt format [[timestamp, open, high, low, close, volume], ...]
        """
        return self.exchange.fetch_ohlcv(symbol, timeframe=timeframe, limit=limit)

    def fetch_funding_rate(self, symbol: str) -> Optional[float]:
        """Funding rate is informational only, so a failure here is tolerated."""
        try:
            funding = self.exchange.fetch_funding_rate(symbol)
            rate = funding.get('fundingRate')
            return float(rate) if rate is not None else None
        except Exception as e:
            logger.debug(f"Funding rate unavailable for {symbol}: {e}")
            return None

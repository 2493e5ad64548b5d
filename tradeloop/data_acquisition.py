"""Data acquisition layer for fetching market snapshots from the exchange."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from tradeloop.data_fetchers.market_data_fetcher import MarketDataFetcher
from tradeloop.indicator_calculators.technical_indicator_calculator import TechnicalIndicatorCalculator
from tradeloop.models import Instrument, MarketSnapshot


logger = logging.getLogger(__name__)

INTRADAY_TIMEFRAME = "3m"
LONG_TERM_TIMEFRAME = "4h"
CANDLE_LIMIT = 100


class DataAcquisition:
    """Fetches and normalizes market data from exchange APIs."""

    def __init__(self, exchange, max_workers: Optional[int] = None):
        """
        Initialize data acquisition with exchange client.

        Args:
            exchange: ccxt exchange instance; its own request timeout bounds
                every fetch
            max_workers: Thread pool size for the parallel fan-out
                (defaults to one worker per instrument)
        """
        self.data_fetcher = MarketDataFetcher(exchange)
        self.indicator_calculator = TechnicalIndicatorCalculator()
        self.max_workers = max_workers

    def fetch_market_snapshot(self, instrument: Instrument) -> MarketSnapshot:
        """
        Fetch ticker and intraday/4h candles and return a normalized snapshot.

        Args:
            instrument: Instrument to fetch

        Returns:
            MarketSnapshot

        Raises:
            Exception: Any exchange or data error; callers treat it as a
                per-instrument failure
        """
        symbol = instrument.market_symbol
        ticker = self.data_fetcher.fetch_ticker_data(symbol)

        intraday_ohlcv = self.data_fetcher.fetch_ohlcv_data(symbol, INTRADAY_TIMEFRAME, CANDLE_LIMIT)
        long_term_ohlcv = self.data_fetcher.fetch_ohlcv_data(symbol, LONG_TERM_TIMEFRAME, CANDLE_LIMIT)

        return MarketSnapshot(
            timestamp=ticker.get('timestamp') or int(time.time() * 1000),
            instrument=instrument,
            price=ticker['last'],
            bid=ticker['bid'],
            ask=ticker['ask'],
            funding_rate=self.data_fetcher.fetch_funding_rate(symbol),
            intraday=self.indicator_calculator.compute_indicators(intraday_ohlcv),
            long_term=self.indicator_calculator.compute_indicators(long_term_ohlcv),
        )

    def fetch_snapshots(self, instruments: List[Instrument]) -> Dict[Instrument, MarketSnapshot]:
        """
        Fetch snapshots for all instruments in parallel.

        A failing instrument is logged and left out; the others are returned
        in the order they were requested.

        Args:
            instruments: Instruments to fetch

        Returns:
            Mapping of instrument to snapshot for every successful fetch
        """
        if not instruments:
            return {}

        workers = self.max_workers or len(instruments)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {instrument: executor.submit(self.fetch_market_snapshot, instrument)
                       for instrument in instruments}

            snapshots: Dict[Instrument, MarketSnapshot] = {}
            for instrument, future in futures.items():
                try:
                    snapshots[instrument] = future.result()
                except Exception as e:
                    logger.warning(f"{instrument.display_symbol}: snapshot fetch failed: {e}")

        logger.info(f"Analyzed {len(snapshots)}/{len(instruments)} symbols")
        return snapshots

"""Technical indicator calculations from OHLCV data."""

import logging
import math
from typing import Any, Dict, List

import pandas as pd

logger = logging.getLogger(__name__)

SERIES_LENGTH = 10


def _last(series: pd.Series) -> float:
    value = series.iloc[-1]
    return float(value) if pd.notna(value) else float("nan")


def _tail(series: pd.Series, length: int = SERIES_LENGTH) -> List[float]:
    return [round(float(v), 6) for v in series.dropna().iloc[-length:]]


class TechnicalIndicatorCalculator:
    """Calculates technical indicators from OHLCV data."""

    @staticmethod
    def _rsi(close: pd.Series, period: int) -> pd.Series:
        delta = close.diff()
        gain = delta.where(delta > 0, 0.0).rolling(window=period).mean()
        loss = (-delta.where(delta < 0, 0.0)).rolling(window=period).mean()
        rs = gain / loss
        rsi = 100 - (100 / (1 + rs))
        # No losses in the window means RSI is pinned at 100
        return rsi.where(loss != 0, 100.0)

    @staticmethod
    def _atr(df: pd.DataFrame, period: int) -> pd.Series:
        high_low = df['high'] - df['low']
        high_close = (df['high'] - df['close'].shift()).abs()
        low_close = (df['low'] - df['close'].shift()).abs()
        true_range = pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)
        return true_range.rolling(window=period).mean()

    def compute_indicators(self, ohlcv: List[List[float]]) -> Dict[str, Any]:
        """
        Compute indicators and short recent series from OHLCV data.

        Args:
            ohlcv: List of OHLCV candles [[timestamp, open, high, low, close, volume], ...]

        Returns:
            Dictionary with scalar indicator values (NaN where there is not
            enough history) and ``*_series`` lists of the most recent values

        Raises:
            ValueError: If no candles were supplied
        """
        if not ohlcv:
            raise ValueError("Cannot compute indicators without candles")

        df = pd.DataFrame(ohlcv, columns=['timestamp', 'open', 'high', 'low', 'close', 'volume'])
        df = df.astype({'open': float, 'high': float, 'low': float, 'close': float, 'volume': float})
        close = df['close']

        ema_20 = close.ewm(span=20, adjust=False).mean()
        ema_50 = close.ewm(span=50, adjust=False).mean()
        macd = close.ewm(span=12, adjust=False).mean() - close.ewm(span=26, adjust=False).mean()
        rsi_7 = self._rsi(close, 7)
        rsi_14 = self._rsi(close, 14)
        atr_3 = self._atr(df, 3)
        atr_14 = self._atr(df, 14)

        avg_volume = float(df['volume'].mean())

        indicators = {
            'close': _last(close),
            'ema_20': _last(ema_20),
            'ema_50': _last(ema_50),
            'macd': _last(macd),
            'rsi_7': _last(rsi_7),
            'rsi_14': _last(rsi_14),
            'atr_3': _last(atr_3),
            'atr_14': _last(atr_14),
            'volume': _last(df['volume']),
            'avg_volume': avg_volume,
            'close_series': _tail(close),
            'ema_20_series': _tail(ema_20),
            'macd_series': _tail(macd),
            'rsi_7_series': _tail(rsi_7),
            'rsi_14_series': _tail(rsi_14),
        }

        if math.isnan(indicators['rsi_14']):
            logger.debug(f"Only {len(df)} candles available, RSI(14) undefined")

        return indicators

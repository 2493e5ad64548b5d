"""Unit tests for TechnicalIndicatorCalculator."""

import math

import pytest

from tradeloop.indicator_calculators.technical_indicator_calculator import TechnicalIndicatorCalculator


def _rising(count: int):
    return [[i, 100.0 + i, 101.0 + i, 99.0 + i, 100.0 + i, 5.0] for i in range(count)]


@pytest.fixture()
def calculator() -> TechnicalIndicatorCalculator:
    return TechnicalIndicatorCalculator()


class TestComputeIndicators:
    def test_uptrend(self, calculator):
        indicators = calculator.compute_indicators(_rising(60))

        assert indicators["close"] == 159.0
        assert indicators["rsi_14"] == 100.0
        assert indicators["rsi_7"] == 100.0
        assert indicators["ema_20"] > indicators["ema_50"]
        assert indicators["macd"] > 0
        assert indicators["atr_14"] == pytest.approx(2.0)
        assert indicators["avg_volume"] == 5.0

    def test_series_are_latest_values_oldest_first(self, calculator):
        indicators = calculator.compute_indicators(_rising(60))

        assert indicators["close_series"] == [150.0 + i for i in range(10)]
        assert len(indicators["rsi_14_series"]) == 10

    def test_short_history_yields_nan(self, calculator):
        indicators = calculator.compute_indicators(_rising(5))

        assert math.isnan(indicators["rsi_14"])
        assert math.isnan(indicators["atr_14"])
        assert indicators["rsi_14_series"] == []
        assert indicators["close"] == 104.0

    def test_no_candles(self, calculator):
        with pytest.raises(ValueError):
            calculator.compute_indicators([])

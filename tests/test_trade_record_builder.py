"""Unit tests for build_trade_record field precedence."""

import pytest

from conftest import make_decision
from tradeloop.controllers.trade_record_builder import build_trade_record
from tradeloop.models import ExecutionResult, Operation


@pytest.fixture()
def buy_decision():
    return make_decision("Buy", "BTC", buy={"pricing": 60000.0, "amount": 0.02, "leverage": 5})


class TestBuyRecords:
    def test_fill_wins_over_request(self, buy_decision):
        execution = ExecutionResult(
            executed=True, order_id="o-1", filled_size=0.019, fill_price=60050.0, error=None,
            stop_loss_price=58849.0,
        )

        record = build_trade_record(buy_decision, execution=execution)

        assert record.operation == "Buy"
        assert record.pricing == 60050.0
        assert record.amount == 0.019
        assert record.leverage == 5.0
        assert record.stop_loss == 58849.0
        assert record.take_profit is None
        assert record.order_id == "o-1"
        assert record.error is None

    def test_failed_execution_falls_back_to_request(self, buy_decision):
        execution = ExecutionResult(executed=False, order_id=None, filled_size=None, fill_price=None,
                                    error="Order not filled (status: canceled)")

        record = build_trade_record(buy_decision, execution=execution)

        assert record.pricing == 60000.0
        assert record.amount == 0.02
        assert record.error == "Order not filled (status: canceled)"

    def test_blocked_buy_keeps_request_and_reason(self, buy_decision):
        record = build_trade_record(buy_decision, operation=Operation.HOLD, block_reason="Leverage too high")

        assert record.operation == "Hold"
        assert record.pricing == 60000.0
        assert record.amount == 0.02
        assert record.block_reason == "Leverage too high"
        assert record.order_id is None


class TestSellAndHoldRecords:
    def test_sell_uses_position_leverage_and_default_amount(self):
        decision = make_decision("Sell", "ETH", sell={"percentage": 100.0})
        execution = ExecutionResult(executed=False, order_id=None, filled_size=0.0, fill_price=None,
                                    error="No open position for ETH/USDT")

        record = build_trade_record(decision, execution=execution, leverage=3.0, default_amount=0.0)

        assert record.operation == "Sell"
        assert record.amount == 0.0
        assert record.leverage == 3.0
        assert record.pricing is None
        assert record.error == "No open position for ETH/USDT"

    def test_hold_adjustment_recorded(self):
        decision = make_decision("Hold", "SOL", adjust_profit={"take_profit": 180.0})

        record = build_trade_record(decision)

        assert record.take_profit == 180.0
        assert record.stop_loss is None
        assert record.amount is None
        assert record.leverage is None

    def test_prediction_serialized_as_plain_data(self):
        record = build_trade_record(make_decision("Hold", "BTC"))

        assert record.prediction == {
            "short_term_trend": "bullish",
            "confidence": "medium",
            "key_levels": {"support": 95.0, "resistance": 110.0},
            "analysis": "Higher lows on the 3m chart",
        }

    def test_error_param_used_without_execution(self):
        record = build_trade_record(make_decision("Hold", "BTC"), error="boom")

        assert record.error == "boom"

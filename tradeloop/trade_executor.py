"""Trade execution layer: market buys, reduce-only sells and protective orders."""

import logging
import time
from typing import Dict, List, Optional

from tradeloop.models import ExecutionResult, Instrument, ProtectiveOrderResult
from tradeloop.order_parsers.order_response_parser import OrderResponseParser


logger = logging.getLogger(__name__)

STOP_LOSS = "stop_loss"
TAKE_PROFIT = "take_profit"


def _failed(error: str, filled_size: Optional[float] = None) -> ExecutionResult:
    return ExecutionResult(
        executed=False,
        order_id=None,
        filled_size=filled_size,
        fill_price=None,
        error=error,
    )


class TradeExecutor:
    """Handles trade execution on the exchange.

    Every public method reports failure through its return value; nothing
    raises to the caller.
    """

    def __init__(self, exchange):
        """
        Args:
            exchange: ccxt exchange instance
        """
        self.exchange = exchange
        self.order_parser = OrderResponseParser(exchange)

    def buy(
        self,
        instrument: Instrument,
        amount: float,
        leverage: int,
        stop_loss_percent: Optional[float] = None,
        take_profit_percent: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Open or add to a long position with a market order.

        Protective orders are placed after the fill, priced off the fill:
        stop loss ``stop_loss_percent`` below it and take profit
        ``take_profit_percent`` above it. A protective order failure is
        logged but does not turn a filled buy into a failure.

        Args:
            instrument: Instrument to buy
            amount: Size in base units
            leverage: Whole-number leverage to set before ordering. A
                fractional value is refused rather than truncated, so the
                venue never holds more margin than the caller reserved
            stop_loss_percent: Optional stop distance in percent
            take_profit_percent: Optional target distance in percent

        Returns:
            ExecutionResult with fill details or error
        """
        symbol = instrument.market_symbol
        if leverage != int(leverage):
            logger.error(f"Refusing buy for {symbol}: leverage {leverage} is not a whole number")
            return _failed(f"Leverage {leverage} is not a whole number")

        try:
            self.exchange.load_markets()
            self.exchange.set_leverage(int(leverage), symbol)

            order_size = float(self.exchange.amount_to_precision(symbol, amount))
            if order_size <= 0:
                return _failed(f"Order size {amount} rounds to zero for {instrument.display_symbol}")

            logger.info(f"Executing BUY: market buy {order_size} {symbol} @ {int(leverage)}x")
            order = self.exchange.create_market_buy_order(symbol, order_size)
            result = self._confirm_fill(order, symbol)
        except Exception as e:
            logger.error(f"Buy execution failed for {symbol}: {type(e).__name__}: {e}")
            return _failed(str(e))

        if result.executed and result.fill_price and (stop_loss_percent or take_profit_percent):
            stop_loss = result.fill_price * (1 - stop_loss_percent / 100) if stop_loss_percent else None
            take_profit = result.fill_price * (1 + take_profit_percent / 100) if take_profit_percent else None
            protective = self._place_protective_orders(symbol, "sell", result.filled_size, stop_loss, take_profit)
            if protective.stop_loss_order_id:
                result.stop_loss_price = stop_loss
            if protective.take_profit_order_id:
                result.take_profit_price = take_profit
            if not protective.success:
                logger.warning(f"Buy filled but protective orders incomplete for {symbol}: {protective.error}")

        return result

    def sell(self, instrument: Instrument, percentage: float) -> ExecutionResult:
        """
        Close ``percentage`` percent of the open position with a reduce-only market order.

        Args:
            instrument: Instrument whose position is reduced
            percentage: Share of the position to close, 0-100

        Returns:
            ExecutionResult; "No open position" when there is nothing to close
        """
        symbol = instrument.market_symbol
        try:
            position = self._fetch_open_position(symbol)
            if position is None:
                logger.warning(f"No open position for {instrument.display_symbol}, nothing to sell")
                return _failed(f"No open position for {instrument.display_symbol}", filled_size=0.0)

            contracts = abs(float(position['contracts']))
            close_size = float(self.exchange.amount_to_precision(symbol, contracts * percentage / 100))
            if close_size <= 0:
                return _failed(f"Close size for {percentage}% rounds to zero", filled_size=0.0)

            side = "sell" if position.get('side') == "long" else "buy"
            logger.info(f"Executing SELL: {percentage}% of {contracts} {symbol} (market {side} {close_size})")
            order = self.exchange.create_order(symbol, "market", side, close_size, None, {'reduceOnly': True})
            result = self._confirm_fill(order, symbol)
        except Exception as e:
            logger.error(f"Sell execution failed for {symbol}: {type(e).__name__}: {e}")
            return _failed(str(e))

        if result.executed and percentage >= 100:
            self._cancel_protective_orders(symbol, {STOP_LOSS, TAKE_PROFIT})
        return result

    def set_protective(
        self,
        instrument: Instrument,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> ProtectiveOrderResult:
        """
        Replace the stop-loss and/or take-profit orders on the open position.

        Only the kinds being set are cancelled and re-placed.

        Args:
            instrument: Instrument whose position is protected
            stop_loss: Stop-loss trigger price
            take_profit: Take-profit trigger price

        Returns:
            ProtectiveOrderResult
        """
        symbol = instrument.market_symbol
        try:
            position = self._fetch_open_position(symbol)
        except Exception as e:
            logger.error(f"Failed to fetch position for {symbol}: {e}")
            return ProtectiveOrderResult(success=False, error=str(e))
        if position is None:
            return ProtectiveOrderResult(success=False, error=f"No open position for {instrument.display_symbol}")

        kinds = set()
        if stop_loss is not None:
            kinds.add(STOP_LOSS)
        if take_profit is not None:
            kinds.add(TAKE_PROFIT)
        self._cancel_protective_orders(symbol, kinds)

        close_side = "sell" if position.get('side') == "long" else "buy"
        contracts = abs(float(position['contracts']))
        return self._place_protective_orders(symbol, close_side, contracts, stop_loss, take_profit)

    def _confirm_fill(self, order: dict, symbol: str) -> ExecutionResult:
        result = self.order_parser.parse_order_response(order)
        if not result.executed and result.order_id:
            # Market orders occasionally report before the fill lands
            time.sleep(0.5)
            refreshed = self.order_parser.check_order_status(result.order_id, symbol)
            if refreshed is not None:
                result = refreshed
        if result.executed:
            logger.info(f"Order {result.order_id} filled: {result.filled_size} {symbol} @ {result.fill_price}")
        else:
            logger.warning(f"Order returned but not filled for {symbol}: {result.error}")
        return result

    def _fetch_open_position(self, symbol: str) -> Optional[Dict]:
        for position in self.exchange.fetch_positions([symbol]):
            if position.get('symbol') == symbol and float(position.get('contracts') or 0) != 0:
                return position
        return None

    def _place_protective_orders(
        self,
        symbol: str,
        side: str,
        amount: float,
        stop_loss: Optional[float],
        take_profit: Optional[float],
    ) -> ProtectiveOrderResult:
        result = ProtectiveOrderResult(success=True)
        errors: List[str] = []

        if stop_loss is not None:
            try:
                order = self.exchange.create_order(
                    symbol, "market", side, amount, None, {'stopLossPrice': stop_loss, 'reduceOnly': True}
                )
                result.stop_loss_order_id = str(order.get('id'))
                logger.info(f"Stop loss set for {symbol} at {stop_loss} (order {result.stop_loss_order_id})")
            except Exception as e:
                errors.append(f"stop loss: {e}")

        if take_profit is not None:
            try:
                order = self.exchange.create_order(
                    symbol, "market", side, amount, None, {'takeProfitPrice': take_profit, 'reduceOnly': True}
                )
                result.take_profit_order_id = str(order.get('id'))
                logger.info(f"Take profit set for {symbol} at {take_profit} (order {result.take_profit_order_id})")
            except Exception as e:
                errors.append(f"take profit: {e}")

        if errors:
            result.success = False
            result.error = "; ".join(errors)
            logger.error(f"Protective order failure for {symbol}: {result.error}")
        return result

    def _cancel_protective_orders(self, symbol: str, kinds: set) -> None:
        if not kinds:
            return
        try:
            open_orders = self.exchange.fetch_open_orders(symbol)
        except Exception as e:
            logger.warning(f"Could not list open orders for {symbol}: {e}")
            return
        for order in open_orders:
            if self._protective_kind(order) in kinds:
                try:
                    self.exchange.cancel_order(order['id'], symbol)
                    logger.debug(f"Cancelled protective order {order['id']} for {symbol}")
                except Exception as e:
                    logger.warning(f"Failed to cancel order {order.get('id')} for {symbol}: {e}")

    @staticmethod
    def _protective_kind(order: dict) -> Optional[str]:
        if order.get('stopLossPrice'):
            return STOP_LOSS
        if order.get('takeProfitPrice'):
            return TAKE_PROFIT
        order_type = (order.get('type') or '').upper()
        if 'TAKE_PROFIT' in order_type:
            return TAKE_PROFIT
        if 'STOP' in order_type:
            return STOP_LOSS
        return None

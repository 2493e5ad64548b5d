"""Order response parsing and status checking logic."""

import logging
from typing import Optional

from tradeloop.models import ExecutionResult

logger = logging.getLogger(__name__)


class OrderResponseParser:
    """Turns ccxt order structures into ExecutionResult."""

    def __init__(self, exchange):
        """
        Args:
            exchange: ccxt exchange instance (used to re-query pending orders)
        """
        self.exchange = exchange

    def parse_order_response(self, order: dict) -> ExecutionResult:
        """
        Parse standard ccxt order response.

        Args:
            order: Order response from ccxt

        Returns:
            ExecutionResult; ``executed`` is True only when something filled
        """
        try:
            order_id = order.get('id')
            filled_qty = float(order.get('filled') or 0)
            avg_price = float(order.get('average') or order.get('price') or 0)
            order_status = (order.get('status') or '').lower()

            executed = filled_qty > 0
            error = None
            if not executed:
                error = f"Order not filled (status: {order_status or 'unknown'})"

            return ExecutionResult(
                executed=executed,
                order_id=str(order_id) if order_id else None,
                filled_size=filled_qty if executed else None,
                fill_price=avg_price if avg_price > 0 else None,
                error=error,
            )
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to parse order response: {e}")
            return ExecutionResult(
                executed=False,
                order_id=None,
                filled_size=None,
                fill_price=None,
                error=f"Failed to parse order response: {e}",
            )

    def check_order_status(self, order_id: str, symbol: str) -> Optional[ExecutionResult]:
        """
        Re-query an order that came back unfilled.

        Args:
            order_id: Exchange order id
            symbol: Unified market symbol

        Returns:
            ExecutionResult, or None if the status query itself failed
        """
        try:
            order = self.exchange.fetch_order(order_id, symbol)
        except Exception as e:
            logger.error(f"Failed to check order status for {symbol} order {order_id}: {e}")
            return None
        return self.parse_order_response(order)

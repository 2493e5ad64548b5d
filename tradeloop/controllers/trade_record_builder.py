"""Builds the TradeRecord persisted for each decision.

Field precedence is the same everywhere: a value confirmed by the exchange
wins over the value the model requested, which wins over the default.
"""

from typing import Optional, TypeVar

from tradeloop.decision_parser import Decision
from tradeloop.models import ExecutionResult, Operation, TradeRecord


T = TypeVar("T")


def _first_present(*values: Optional[T]) -> Optional[T]:
    for value in values:
        if value is not None:
            return value
    return None


def build_trade_record(
    decision: Decision,
    operation: Optional[Operation] = None,
    execution: Optional[ExecutionResult] = None,
    leverage: Optional[float] = None,
    default_amount: Optional[float] = None,
    block_reason: Optional[str] = None,
    error: Optional[str] = None,
) -> TradeRecord:
    """
    Build the immutable record for one decision.

    Args:
        decision: The validated decision
        operation: Final operation; defaults to the decision's own. Blocked
            decisions pass ``Operation.HOLD``
        execution: Exchange outcome, if an order was sent
        leverage: Leverage known from elsewhere (e.g. the open position for a
            sell); wins over the requested leverage
        default_amount: Amount recorded when neither the fill nor the request
            carries one
        block_reason: Why the decision was downgraded
        error: Failure to record when there is no execution result carrying one

    Returns:
        TradeRecord
    """
    requested = decision.buy if decision.operation == Operation.BUY else None
    adjustment = decision.adjust_profit
    fill = execution if execution is not None and execution.executed else None

    pricing = _first_present(
        fill.fill_price if fill else None,
        execution.fill_price if execution else None,
        requested.pricing if requested else None,
    )
    amount = _first_present(
        fill.filled_size if fill else None,
        requested.amount if requested else None,
        default_amount,
    )
    stop_loss = _first_present(
        execution.stop_loss_price if execution else None,
        adjustment.stop_loss if adjustment else None,
    )
    take_profit = _first_present(
        execution.take_profit_price if execution else None,
        adjustment.take_profit if adjustment else None,
    )
    if execution is not None and not execution.executed:
        error = _first_present(execution.error, error)

    return TradeRecord(
        symbol=decision.symbol.value,
        operation=(operation or decision.operation).value,
        pricing=pricing,
        amount=amount,
        leverage=_first_present(leverage, requested.leverage if requested else None),
        stop_loss=stop_loss,
        take_profit=take_profit,
        prediction=decision.prediction.model_dump(mode="json"),
        order_id=execution.order_id if execution else None,
        block_reason=block_reason,
        error=error,
    )

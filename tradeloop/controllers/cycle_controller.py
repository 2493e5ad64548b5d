"""Cycle controller: drives one decision-and-execution cycle end to end."""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from tradeloop.account_information import AccountGateway
from tradeloop.config import Config, RiskConfig
from tradeloop.controllers.trade_record_builder import build_trade_record
from tradeloop.data_acquisition import DataAcquisition
from tradeloop.decision_ledger import DecisionLedger
from tradeloop.decision_parser import Decision
from tradeloop.decision_provider import DecisionProvider
from tradeloop.exceptions import CycleInterrupted
from tradeloop.models import AccountState, CycleRecord, Operation, TradeRecord
from tradeloop.prompts import build_system_prompt, build_user_prompt
from tradeloop.risk_manager import check_buy_risk, check_daily_loss_limit, log_trade
from tradeloop.trade_executor import TradeExecutor

logger = logging.getLogger(__name__)


@dataclass
class DecisionOutcome:
    """What processing one decision produced."""

    record: TradeRecord
    remaining_cash: float
    note: Optional[str] = None  # Appended to the cycle chat when a decision is blocked


class CycleController:
    """Runs the trading cycle.

    SnapshotCollection -> PromptBuild -> OracleInvoke -> DailyLossGate ->
    PerDecisionProcessing -> LedgerWrite. Only oracle, account and ledger
    failures propagate; everything else ends up on a TradeRecord or in the log.
    """

    def __init__(self, config: Config, data_acquisition: DataAcquisition, account_gateway: AccountGateway,
                 decision_provider: DecisionProvider, trade_executor: TradeExecutor, ledger: DecisionLedger,
                 risk_config_loader: Callable[[], RiskConfig] = RiskConfig.from_env):
        """
        Initialize cycle controller.

        Args:
            config: Configuration object
            data_acquisition: Market snapshot gateway
            account_gateway: Account gateway
            decision_provider: Decision model
            trade_executor: Execution gateway
            ledger: Decision ledger
            risk_config_loader: Called once at the start of every cycle
        """
        self.config = config
        self.data_acquisition = data_acquisition
        self.account_gateway = account_gateway
        self.decision_provider = decision_provider
        self.trade_executor = trade_executor
        self.ledger = ledger
        self.risk_config_loader = risk_config_loader

        self._handlers: Dict[Operation, Callable[[Decision, float, AccountState, RiskConfig], DecisionOutcome]] = {
            Operation.BUY: self._process_buy,
            Operation.SELL: self._process_sell,
            Operation.HOLD: self._process_hold,
        }

        self.running = True

    def run_cycle(self, initial_capital: Optional[float] = None) -> Optional[CycleRecord]:
        """
        Execute one full cycle.

        Args:
            initial_capital: Optional capital override for account sizing

        Returns:
            The persisted CycleRecord, or None when no market data could be
            fetched and the cycle was skipped

        Raises:
            AccountUnavailableError: If the account cannot be read
            OracleError: On model timeout or invalid output (nothing traded)
            CycleInterrupted: If shutdown was requested mid-batch (nothing persisted)
            LedgerWriteError: If the cycle record cannot be persisted
        """
        risk_config = self.risk_config_loader()
        mode_label = "LIVE (REAL MONEY)" if risk_config.is_live else "SIMULATED"
        logger.info(f"Mode: {mode_label}")

        # Step 1: Market snapshots (parallel, per-instrument failures tolerated)
        snapshots = self.data_acquisition.fetch_snapshots(self.config.symbols)
        if not snapshots:
            logger.error("No market snapshots available, skipping cycle")
            return None

        account = self.account_gateway.get_account_state(initial_capital)

        # Step 2: Prompt and model call (single attempt, hard timeout)
        system_prompt = build_system_prompt(self.config.symbols, risk_config)
        user_prompt = build_user_prompt(snapshots, account, datetime.now(timezone.utc))
        response = self.decision_provider.propose(system_prompt, user_prompt, self.config.oracle_timeout_seconds)
        decisions = response.decisions

        # Step 3: Daily loss gate
        daily_loss_check = check_daily_loss_limit(account.unrealized_pnl, account.total_cash_value, risk_config)
        if not daily_loss_check.approved:
            logger.error(f"Daily loss limit: {daily_loss_check.reason}")
            return self._record_blocked_cycle(decisions, daily_loss_check.reason, response.reasoning, user_prompt)

        # Step 4: Sequential processing with running balance
        records, chat_messages, remaining_cash = self._process_decisions(decisions, account, risk_config)
        logger.info(f"Remaining available cash after batch: ${remaining_cash:.2f}")

        # Step 5: Ledger
        record = self._new_cycle_record(
            chat="\n\n".join(chat_messages) if chat_messages else "<no chat>",
            reasoning=response.reasoning,
            user_prompt=user_prompt,
            tradings=records,
        )
        self.ledger.append(record)
        return record

    def _process_decisions(self, decisions: List[Decision], account: AccountState,
                           risk_config: RiskConfig) -> Tuple[List[TradeRecord], List[str], float]:
        """
        Process decisions strictly in order, threading the remaining cash through.

        Returns:
            (trade records in input order, chat messages, remaining cash)
        """
        remaining_cash = account.available_cash
        records: List[TradeRecord] = []
        chat_messages: List[str] = []

        for decision in decisions:
            if not self.running:
                raise CycleInterrupted(
                    f"Shutdown requested after {len(records)}/{len(decisions)} decision(s); cycle not recorded"
                )

            symbol = decision.symbol.value
            logger.info(f"{decision.operation.value} {symbol}")
            if decision.chat:
                chat_messages.append(f"[{symbol}] {decision.chat}")

            try:
                outcome = self._handlers[decision.operation](decision, remaining_cash, account, risk_config)
            except Exception as e:
                logger.error(f"Unexpected error processing {decision.operation.value} {symbol}: {e}", exc_info=True)
                outcome = DecisionOutcome(build_trade_record(decision, error=str(e)), remaining_cash)

            records.append(outcome.record)
            remaining_cash = outcome.remaining_cash
            if outcome.note:
                chat_messages.append(outcome.note)

        return records, chat_messages, remaining_cash

    def _process_buy(self, decision: Decision, remaining_cash: float, account: AccountState,
                     risk_config: RiskConfig) -> DecisionOutcome:
        symbol = decision.symbol.value
        order = decision.buy
        if order is None:
            reason = "Buy decision missing required fields (pricing, amount, leverage)"
            logger.warning(f"Buy {symbol}: missing required fields")
            return DecisionOutcome(
                build_trade_record(decision, operation=Operation.HOLD, block_reason=reason),
                remaining_cash,
                f"[{symbol} BLOCKED] {reason}",
            )

        required_margin = order.amount * order.pricing / order.leverage
        logger.info(f"  Amount: {order.amount} | Price: {order.pricing} | Lev: {order.leverage:g}x")
        logger.info(f"  Margin: ${required_margin:.2f} | Available: ${remaining_cash:.2f}")

        # Checked against the already-decremented balance, not the cycle-start one
        risk_check = check_buy_risk(
            amount=order.amount,
            price=order.pricing,
            leverage=order.leverage,
            current_balance=remaining_cash,
            config=risk_config,
            total_capital=account.total_cash_value,
        )
        if not risk_check.approved:
            logger.warning(f"Risk control blocked {symbol}: {risk_check.reason}")
            return DecisionOutcome(
                build_trade_record(decision, operation=Operation.HOLD, block_reason=risk_check.reason),
                remaining_cash,
                f"[{symbol} BLOCKED] {risk_check.reason}",
            )

        logger.info(f"Executing buy {symbol} (Mode: {risk_config.trading_mode})...")
        result = self.trade_executor.buy(
            decision.symbol,
            amount=order.amount,
            leverage=order.leverage,
            stop_loss_percent=order.stop_loss_percent,
            take_profit_percent=order.take_profit_percent,
        )
        log_trade(
            action="buy" if risk_config.is_live else "dry-run-buy",
            symbol=decision.symbol.display_symbol,
            amount=order.amount,
            price=result.fill_price,
            leverage=order.leverage,
            order_id=result.order_id,
            reason="Success" if result.executed else result.error,
        )

        if result.executed:
            # Reserve the requested margin, not the fill margin
            remaining_cash -= required_margin
        else:
            logger.error(f"Buy failed for {symbol}: {result.error}")

        return DecisionOutcome(build_trade_record(decision, execution=result), remaining_cash)

    def _process_sell(self, decision: Decision, remaining_cash: float, account: AccountState,
                      risk_config: RiskConfig) -> DecisionOutcome:
        symbol = decision.symbol.value
        if decision.sell is None:
            reason = "Sell decision missing percentage"
            logger.warning(f"Sell {symbol}: missing percentage")
            return DecisionOutcome(
                build_trade_record(decision, operation=Operation.HOLD, block_reason=reason),
                remaining_cash,
                f"[{symbol} BLOCKED] {reason}",
            )

        position = account.position_for(decision.symbol)
        if position is not None:
            logger.info(f"Current position: {position.contracts:g} contracts @ {position.leverage}x leverage")

        percentage = decision.sell.percentage
        logger.info(f"Executing sell {symbol} ({percentage:g}%) (Mode: {risk_config.trading_mode})...")
        result = self.trade_executor.sell(decision.symbol, percentage)
        if not result.executed:
            logger.error(f"Sell failed for {symbol}: {result.error}")

        log_trade(
            action="sell" if risk_config.is_live else "dry-run-sell",
            symbol=decision.symbol.display_symbol,
            amount=result.filled_size or 0,
            price=result.fill_price,
            order_id=result.order_id,
            reason="Success" if result.executed else result.error,
        )

        record = build_trade_record(
            decision,
            execution=result,
            leverage=position.leverage if position is not None else None,
            default_amount=0.0,
        )
        return DecisionOutcome(record, remaining_cash)

    def _process_hold(self, decision: Decision, remaining_cash: float, account: AccountState,
                      risk_config: RiskConfig) -> DecisionOutcome:
        adjustment = decision.adjust_profit
        error = None
        if adjustment is not None and adjustment.requested:
            logger.info(f"Setting SL/TP for {decision.symbol.value} (Mode: {risk_config.trading_mode})...")
            result = self.trade_executor.set_protective(
                decision.symbol,
                stop_loss=adjustment.stop_loss,
                take_profit=adjustment.take_profit,
            )
            if result.success:
                logger.info(
                    f"SL/TP set (stop loss order: {result.stop_loss_order_id}, "
                    f"take profit order: {result.take_profit_order_id})"
                )
            else:
                logger.error(f"Failed to set SL/TP: {result.error}")
                error = result.error

        return DecisionOutcome(build_trade_record(decision, error=error), remaining_cash)

    def _record_blocked_cycle(self, decisions: List[Decision], reason: str, reasoning: str,
                              user_prompt: str) -> CycleRecord:
        """Persist the model's decisions as Holds without touching the exchange."""
        original = json.dumps([d.model_dump(mode="json") for d in decisions])[:1000]
        record = self._new_cycle_record(
            chat=f"[BLOCKED BY RISK CONTROL] {reason}\n\nOriginal AI decisions: {original}",
            reasoning=reasoning,
            user_prompt=user_prompt,
            tradings=[build_trade_record(d, operation=Operation.HOLD, block_reason=reason) for d in decisions],
        )
        self.ledger.append(record)
        return record

    @staticmethod
    def _new_cycle_record(chat: str, reasoning: str, user_prompt: str,
                          tradings: List[TradeRecord]) -> CycleRecord:
        return CycleRecord(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc).isoformat(),
            chat=chat,
            reasoning=reasoning or "<no reasoning>",
            user_prompt=user_prompt,
            tradings=tradings,
        )

    def shutdown(self) -> None:
        """Stop after the decision currently being processed."""
        self.running = False

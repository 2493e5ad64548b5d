"""Loop controller: wires the components and schedules cycles."""

import logging
import threading
import time
from typing import Optional

from tradeloop.account_information import AccountGateway
from tradeloop.config import Config, RiskConfig
from tradeloop.controllers.cycle_controller import CycleController
from tradeloop.data_acquisition import DataAcquisition
from tradeloop.decision_ledger import DecisionLedger
from tradeloop.decision_provider import DeepSeekDecisionProvider
from tradeloop.exceptions import CycleInProgressError, TradingLoopError
from tradeloop.exchange_adapters.exchange_adapter import ExchangeAdapter
from tradeloop.models import CycleRecord
from tradeloop.services.shutdown_service import ShutdownService
from tradeloop.trade_executor import TradeExecutor


logger = logging.getLogger(__name__)


class LoopController:
    """Owns one CycleController and guarantees cycles never overlap."""

    def __init__(self, config: Config, cycle_controller: Optional[CycleController] = None):
        """
        Initialize loop controller with all components.

        Args:
            config: Configuration object
            cycle_controller: Pre-built controller (tests); built from
                ``config`` when omitted
        """
        self.config = config

        if cycle_controller is None:
            logger.info("Initializing loop controller components...")
            # Mode picks the exchange endpoints, so switching it needs a restart
            startup_risk = RiskConfig.from_env()
            exchange = ExchangeAdapter(config, startup_risk.trading_mode).exchange
            cycle_controller = CycleController(
                config,
                data_acquisition=DataAcquisition(exchange),
                account_gateway=AccountGateway(exchange, config.symbols),
                decision_provider=DeepSeekDecisionProvider(
                    config.deepseek_api_key, config.deepseek_base_url, config.deepseek_model
                ),
                trade_executor=TradeExecutor(exchange),
                ledger=DecisionLedger(
                    config.ledger_path,
                    secrets=[config.exchange_api_key, config.exchange_api_secret, config.deepseek_api_key],
                ),
            )

        self.cycle_controller = cycle_controller
        self.shutdown_service = ShutdownService(self)
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()

        logger.info("Loop controller initialized successfully")

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    def run_once(self, initial_capital: Optional[float] = None) -> Optional[CycleRecord]:
        """
        Run exactly one cycle.

        Args:
            initial_capital: Optional capital override; falls back to
                INITIAL_CAPITAL from the configuration

        Returns:
            The persisted CycleRecord, or None if the cycle was skipped

        Raises:
            CycleInProgressError: If another cycle is still running
            TradingLoopError: Any cycle-fatal error
        """
        if not self._cycle_lock.acquire(blocking=False):
            raise CycleInProgressError("A trading cycle is already running")
        try:
            capital = initial_capital if initial_capital is not None else self.config.initial_capital
            return self.cycle_controller.run_cycle(capital)
        finally:
            self._cycle_lock.release()

    def run(self) -> None:
        """
        Run cycles every LOOP_INTERVAL_SECONDS until stopped.

        Cycle-fatal errors are logged and the next cycle runs on schedule.
        """
        cycle_count = 0
        while self.running:
            cycle_count += 1
            cycle_start_time = time.time()
            logger.info(f"CYCLE {cycle_count} - {time.strftime('%H:%M:%S', time.gmtime())}")

            try:
                record = self.run_once()
                if record is not None:
                    logger.info(f"CYCLE {cycle_count} COMPLETE ({len(record.tradings)} decision(s))")
            except TradingLoopError as e:
                logger.error(f"Cycle {cycle_count} failed: {e}")
            except Exception as e:
                logger.error(f"Cycle {cycle_count} failed unexpectedly: {e}", exc_info=True)

            self._sleep_until_next_cycle(cycle_start_time)

    def _sleep_until_next_cycle(self, cycle_start_time: float) -> None:
        """Sleep until the next cycle, waking early on shutdown."""
        cycle_duration = time.time() - cycle_start_time
        sleep_time = max(0, self.config.loop_interval_seconds - cycle_duration)

        if sleep_time > 0:
            logger.debug(f"Sleeping for {sleep_time:.1f} seconds until next cycle")
            self._stop_event.wait(sleep_time)
        else:
            logger.warning(f"Cycle took {cycle_duration:.1f}s, longer than interval {self.config.loop_interval_seconds}s")

    def stop(self) -> None:
        """Stop scheduling and interrupt the running cycle between decisions."""
        self._stop_event.set()
        self.cycle_controller.shutdown()

    def register_signal_handlers(self) -> None:
        self.shutdown_service.register_signal_handlers()

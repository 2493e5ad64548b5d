"""Signal handling that stops the trading loop between decisions."""

import logging
import signal

logger = logging.getLogger(__name__)


class ShutdownService:
    """Turns SIGINT/SIGTERM into a stop request for the loop controller.

    A stop never cuts an order in half. The decision being executed when the
    signal lands runs to completion, the rest of that batch is dropped and
    the cycle raises CycleInterrupted, so nothing is written to the decision
    ledger for it. The interval loop then returns instead of sleeping.

    A second signal while the stop is pending exits at once, for a process
    stuck on a slow exchange or model call.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, loop_controller):
        """
        Args:
            loop_controller: LoopController whose stop() ends the loop
        """
        self.loop_controller = loop_controller
        self.stop_requested = False

    def shutdown(self) -> None:
        """Ask the loop to stop once the decision in flight has finished."""
        self.stop_requested = True
        logger.info("Stop requested: finishing the decision in flight, the current cycle will not be recorded")
        self.loop_controller.stop()

    def register_signal_handlers(self) -> None:
        for signum in self.SIGNALS:
            signal.signal(signum, self._handle_signal)
        logger.info("Signal handlers registered (SIGINT, SIGTERM)")

    def _handle_signal(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        if self.stop_requested:
            logger.warning(f"{name} received while stopping, exiting without waiting for the cycle")
            raise SystemExit(128 + signum)

        logger.info(f"{name} received")
        self.shutdown()

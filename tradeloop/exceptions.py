"""Errors that abort a trading cycle.

Everything else (a failed snapshot, a rejected order, a risk denial) is
absorbed into log lines or TradeRecord fields and never raised to the caller.
"""


class TradingLoopError(Exception):
    """Base class for cycle-fatal errors."""


class OracleError(TradingLoopError):
    """The decision model could not produce a usable batch."""


class OracleTimeoutError(OracleError):
    """The decision model did not answer within the configured timeout."""


class OracleResponseError(OracleError):
    """The decision model answered with malformed or out-of-schema output."""


class AccountUnavailableError(TradingLoopError):
    """Account balance or positions could not be read."""


class LedgerWriteError(TradingLoopError):
    """The cycle record could not be persisted."""


class CycleInterrupted(TradingLoopError):
    """Shutdown was requested while decisions were being processed."""


class CycleInProgressError(TradingLoopError):
    """Another cycle is still running."""

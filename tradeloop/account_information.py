"""Account gateway: balance and open positions."""

import logging
from typing import List, Optional

from tradeloop.exceptions import AccountUnavailableError
from tradeloop.models import AccountState, Instrument, Position


logger = logging.getLogger(__name__)

QUOTE_CURRENCY = "USDT"


class AccountGateway:
    """Reads cash and positions from the exchange once per cycle."""

    def __init__(self, exchange, instruments: List[Instrument]):
        """
        Args:
            exchange: ccxt exchange instance
            instruments: Instruments whose positions are reported
        """
        self.exchange = exchange
        self.instruments = instruments

    def fetch_positions(self) -> List[Position]:
        """Open positions for the configured instruments."""
        by_symbol = {i.market_symbol: i for i in self.instruments}
        raw_positions = self.exchange.fetch_positions(list(by_symbol))

        positions = []
        for raw in raw_positions:
            instrument = by_symbol.get(raw.get('symbol'))
            contracts = float(raw.get('contracts') or 0)
            if instrument is None or contracts == 0:
                continue
            leverage = raw.get('leverage')
            positions.append(Position(
                instrument=instrument,
                side=raw.get('side') or ('long' if contracts > 0 else 'short'),
                contracts=abs(contracts),
                entry_price=float(raw.get('entryPrice') or 0),
                mark_price=float(raw.get('markPrice') or 0),
                leverage=float(leverage) if leverage is not None else None,
                unrealized_pnl=float(raw.get('unrealizedPnl') or 0),
                initial_margin=float(raw.get('initialMargin') or 0),
            ))
        return positions

    def get_account_state(self, capital_override: Optional[float] = None) -> AccountState:
        """
        Read the account snapshot used for the whole cycle.

        When ``capital_override`` is given the account is sized as if it held
        that much capital: total cash equals the override, available cash is
        the override minus margin already tied up in open positions, and the
        return is measured against the override.

        Args:
            capital_override: Optional capital to size the account with

        Returns:
            AccountState

        Raises:
            AccountUnavailableError: If balance or positions cannot be read
        """
        try:
            balance = self.exchange.fetch_balance()
            positions = self.fetch_positions()
        except Exception as e:
            logger.error(f"Failed to read account state: {e}")
            raise AccountUnavailableError(f"Account state unavailable: {e}") from e

        total = float(balance.get('total', {}).get(QUOTE_CURRENCY) or 0.0)
        free = float(balance.get('free', {}).get(QUOTE_CURRENCY) or 0.0)

        if capital_override is not None:
            used_margin = sum(p.initial_margin for p in positions)
            total = capital_override
            free = max(0.0, capital_override - used_margin)

        account = AccountState(
            total_cash_value=total,
            available_cash=free,
            positions=positions,
            initial_capital=capital_override,
        )
        logger.info(
            f"Account: total=${account.total_cash_value:.2f} available=${account.available_cash:.2f} "
            f"positions={len(positions)} unrealized=${account.unrealized_pnl:.2f}"
        )
        return account

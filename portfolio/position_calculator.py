"""Position calculation module.

This module provides the PositionCalculator class, which aggregates a ticker's
transactions into a weighted-average position and computes realized and
unrealized profit and loss in the home currency.

Stock lots are not tracked individually: a sale removes cost in proportion to
the shares sold, leaving the average cost of the remaining shares unchanged.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from data.models.position import Position, UnrealizedPnl
from data.models.stock_split import StockSplit
from data.models.stock_transaction import StockTransaction, TransactionType
from financial.calculations import (
    ZERO,
    NumericInput,
    to_decimal,
    round_money,
    calculate_percentage,
)
from financial.errors import InvalidSellQuantityError
from .split_adjustment import StockSplitAdjuster

logger = logging.getLogger(__name__)


def _ticker_history(ticker: str, transactions: Iterable[StockTransaction],
                    as_of: Optional[date] = None) -> List[StockTransaction]:
    ticker = ticker.strip().upper()
    selected = [
        t for t in transactions
        if t.ticker == ticker and not t.is_deleted
        and (as_of is None or t.transaction_date <= as_of)
    ]
    return sorted(selected, key=lambda t: (t.transaction_date, t.sequence))


class PositionCalculator:
    """Aggregates transactions into positions and computes P&L.

    The calculator is stateless; all history is passed in by the caller.
    """

    def __init__(self, split_adjuster: Optional[StockSplitAdjuster] = None):
        self.split_adjuster = split_adjuster or StockSplitAdjuster()

    def position(self, ticker: str, transactions: Iterable[StockTransaction],
                 splits: Optional[Iterable[StockSplit]] = None,
                 as_of: Optional[date] = None) -> Position:
        """Compute the weighted-average position for a ticker.

        Buys and adjustments add shares and their total cost. Sells remove
        ``shares / held`` of the running cost. SPLIT transactions multiply
        the share count by their ratio and keep the cost. When recorded
        splits are supplied, share counts of earlier transactions are
        restated in post-split terms.

        Args:
            ticker: Ticker symbol
            transactions: Transactions of the portfolio (any tickers, any order)
            splits: Optional recorded splits
            as_of: Optional cut-off date (inclusive)

        Returns:
            Position for the ticker

        Raises:
            InvalidSellQuantityError: If a sell in the history exceeds the
                shares held at that point
        """
        split_list = list(splits or [])
        position = Position(ticker=ticker.strip().upper())

        for tx in _ticker_history(ticker, transactions, as_of):
            shares = tx.shares
            if split_list and tx.transaction_type is not TransactionType.SPLIT:
                shares = self.split_adjuster.adjust_shares(tx, split_list)
            self._apply(position, tx, shares)

        return position

    def _apply(self, position: Position, tx: StockTransaction, shares: Decimal) -> None:
        if tx.transaction_type is TransactionType.BUY or tx.transaction_type is TransactionType.ADJUSTMENT:
            position.total_shares += shares
            position.total_cost_source += tx.total_cost_source
            position.total_cost_home += tx.total_cost_home

        elif tx.transaction_type is TransactionType.SELL:
            if shares > position.total_shares:
                raise InvalidSellQuantityError(
                    f"Cannot sell {shares} {tx.ticker} on {tx.transaction_date}: "
                    f"only {position.total_shares} held",
                    ticker=tx.ticker,
                    requested=shares,
                    held=position.total_shares,
                    as_of=tx.transaction_date,
                )
            fraction = shares / position.total_shares
            position.total_cost_source -= position.total_cost_source * fraction
            position.total_cost_home -= position.total_cost_home * fraction
            position.total_shares -= shares
            if position.total_shares == 0:
                position.total_cost_source = ZERO
                position.total_cost_home = ZERO

        elif tx.transaction_type is TransactionType.SPLIT:
            position.total_shares *= tx.shares

    def validate_sell(self, ticker: str, transactions: Iterable[StockTransaction],
                      sell: StockTransaction, splits: Optional[Iterable[StockSplit]] = None) -> Position:
        """Check that a new sell does not exceed the shares held on its date.

        Args:
            ticker: Ticker symbol
            transactions: Existing transactions (the sell itself excluded)
            sell: Proposed sell
            splits: Optional recorded splits

        Returns:
            The position immediately before the sell

        Raises:
            InvalidSellQuantityError: If the sell exceeds the holdings
        """
        before = self.position(ticker, transactions, splits, as_of=sell.transaction_date)
        requested = sell.shares
        if splits:
            requested = self.split_adjuster.adjust_shares(sell, list(splits))
        if requested > before.total_shares:
            logger.warning(f"Rejected sell of {requested} {ticker}: {before.total_shares} held")
            raise InvalidSellQuantityError(
                f"Cannot sell {requested} {ticker}: only {before.total_shares} held "
                f"as of {sell.transaction_date}",
                ticker=ticker,
                requested=requested,
                held=before.total_shares,
                as_of=sell.transaction_date,
            )
        return before

    def realized_pnl(self, position_before_sale: Position, sell: StockTransaction,
                     splits: Optional[Iterable[StockSplit]] = None) -> Decimal:
        """Realized P&L of a sell in home currency.

        ``(subtotal - fees) * sell_rate - shares * average_cost_home``, where
        Taiwan subtotals are floored to whole dollars before fees.

        Args:
            position_before_sale: Position immediately before the sell
            sell: The sell transaction
            splits: Recorded splits, when the position is in post-split terms

        Returns:
            Realized P&L rounded to 2 places

        Raises:
            ValueError: If the transaction is not a sell
        """
        if sell.transaction_type is not TransactionType.SELL:
            raise ValueError("Realized P&L requires a sell transaction")

        proceeds_home = sell.net_proceeds_source * sell.exchange_rate
        shares = self.split_adjuster.adjust_shares(sell, list(splits)) if splits else sell.shares
        if position_before_sale.total_shares > 0:
            cost_removed = position_before_sale.total_cost_home * shares / position_before_sale.total_shares
        else:
            cost_removed = ZERO
        return round_money(proceeds_home - cost_removed)

    def unrealized_pnl(self, position: Position, current_price: NumericInput,
                       current_rate: NumericInput) -> UnrealizedPnl:
        """Mark a position to market in home currency.

        Args:
            position: Position to value
            current_price: Current price in the trading currency
            current_rate: Current exchange rate to the home currency

        Returns:
            UnrealizedPnl; the percentage is 0 when the cost basis is 0
        """
        if position.total_shares == 0:
            return UnrealizedPnl(ZERO, ZERO, ZERO)

        current_value = position.total_shares * to_decimal(current_price) * to_decimal(current_rate)
        amount = current_value - position.total_cost_home
        percentage = calculate_percentage(amount, position.total_cost_home)
        return UnrealizedPnl(current_value_home=current_value, amount=amount, percentage=percentage)

    def recalculate_all_positions(self, transactions: Iterable[StockTransaction],
                                  splits: Optional[Iterable[StockSplit]] = None) -> Dict[str, Position]:
        """Compute positions for every ticker in the history.

        Returns:
            Positions keyed by ticker, in order of first appearance
        """
        tx_list = [t for t in transactions if not t.is_deleted]
        split_list = list(splits or [])
        tickers = list(dict.fromkeys(t.ticker for t in tx_list))
        return {ticker: self.position(ticker, tx_list, split_list) for ticker in tickers}

"""Stock split adjustment.

Transactions recorded before a split are restated in post-split terms so that
positions, prices and charts line up across the split date. A transaction
dated on the split date is already post-split and is not adjusted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from data.models.stock_split import StockSplit
from data.models.stock_transaction import StockTransaction, StockMarket
from financial.calculations import ONE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdjustedValues:
    """Split-adjusted view of a transaction; total cost is unchanged."""
    original_shares: Decimal
    original_price: Decimal
    adjusted_shares: Decimal
    adjusted_price: Decimal
    split_ratio: Decimal

    @property
    def has_split(self) -> bool:
        return self.split_ratio != ONE


class StockSplitAdjuster:
    """Applies recorded stock splits to historical transactions."""

    def cumulative_ratio(self, symbol: str, market: Optional[StockMarket], as_of: date,
                         splits: Iterable[StockSplit]) -> Decimal:
        """Product of the ratios of every split dated after ``as_of``.

        Args:
            symbol: Ticker symbol
            market: Market of the ticker; splits on other markets are ignored
            as_of: Transaction date
            splits: Known splits

        Returns:
            Cumulative ratio (1 when no split applies)
        """
        symbol = symbol.strip().upper()
        ratio = ONE
        for split in splits:
            if split.symbol != symbol:
                continue
            if market is not None and split.market is not market:
                continue
            if split.split_date > as_of:
                ratio *= split.split_ratio
        return ratio

    def adjusted_values(self, transaction: StockTransaction, splits: Iterable[StockSplit]) -> AdjustedValues:
        """Restate a transaction's shares and price in post-split terms."""
        ratio = self.cumulative_ratio(
            transaction.ticker, transaction.market, transaction.transaction_date, splits
        )
        return AdjustedValues(
            original_shares=transaction.shares,
            original_price=transaction.price_per_share,
            adjusted_shares=transaction.shares * ratio,
            adjusted_price=transaction.price_per_share / ratio,
            split_ratio=ratio,
        )

    def adjust_shares(self, transaction: StockTransaction, splits: Iterable[StockSplit]) -> Decimal:
        return self.adjusted_values(transaction, splits).adjusted_shares

    def adjust_price(self, symbol: str, market: Optional[StockMarket], price: Decimal,
                     price_date: date, splits: Iterable[StockSplit]) -> Decimal:
        """Restate a historical market price in post-split terms."""
        return price / self.cumulative_ratio(symbol, market, price_date, splits)

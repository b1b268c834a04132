"""Stock split data model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Any, Optional

from financial.calculations import to_decimal
from utils.timezone_utils import parse_date
from .stock_transaction import StockMarket


@dataclass(frozen=True)
class StockSplit:
    """A corporate split: ``split_ratio`` new shares for each old share."""
    symbol: str
    split_date: date
    split_ratio: Decimal
    market: Optional[StockMarket] = None

    def __post_init__(self):
        object.__setattr__(self, 'symbol', self.symbol.strip().upper())
        object.__setattr__(self, 'split_date', parse_date(self.split_date))
        object.__setattr__(self, 'split_ratio', to_decimal(self.split_ratio))
        if self.market is None:
            object.__setattr__(self, 'market', StockMarket.guess(self.symbol))
        elif not isinstance(self.market, StockMarket):
            object.__setattr__(self, 'market', StockMarket(str(self.market).upper()))
        if self.split_ratio <= 0:
            raise ValueError(f"Split ratio must be positive, got {self.split_ratio}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StockSplit:
        return cls(
            symbol=data['symbol'],
            split_date=data['split_date'],
            split_ratio=to_decimal(data['split_ratio']),
            market=data.get('market'),
        )

"""Stock transaction data models."""

from __future__ import annotations

from dataclasses import dataclass, replace, fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Any

from financial.calculations import (
    to_decimal,
    optional_decimal,
    round_money,
    round_rate,
    round_shares,
    quantize_places,
    floor_to_units,
)
from config.constants import SHARE_PLACES
from utils.timezone_utils import parse_date


class TransactionType(Enum):
    """Kinds of stock transactions.

    For SPLIT transactions the split ratio is carried in ``shares`` (2 for a
    2-for-1 split).
    """
    BUY = "BUY"
    SELL = "SELL"
    SPLIT = "SPLIT"
    ADJUSTMENT = "ADJUSTMENT"


class StockMarket(Enum):
    """Market a ticker trades on."""
    TW = "TW"
    US = "US"
    UK = "UK"

    @classmethod
    def guess(cls, ticker: str) -> StockMarket:
        """Guess the market from a ticker symbol.

        Taiwan tickers start with a digit, London listings carry a ``.L``
        suffix, everything else is treated as US.

        Examples:
            >>> StockMarket.guess("2330")
            <StockMarket.TW: 'TW'>
            >>> StockMarket.guess("VWRA.L")
            <StockMarket.UK: 'UK'>
        """
        symbol = (ticker or "").strip().upper()
        if symbol[:1].isdigit():
            return cls.TW
        if symbol.endswith(".L"):
            return cls.UK
        return cls.US


# Editable fields; realized P&L is not one of them.
MUTABLE_FIELDS = frozenset({
    'transaction_date', 'shares', 'price_per_share', 'exchange_rate', 'fees', 'notes',
})


@dataclass(frozen=True)
class StockTransaction:
    """Represents a single stock transaction within a portfolio.

    ``realized_pnl_home`` is set once when a sell is created and is never
    recomputed, including on later edits made through :meth:`with_changes`.
    """
    portfolio_id: str
    transaction_date: date
    ticker: str
    transaction_type: TransactionType
    shares: Decimal
    price_per_share: Decimal
    fees: Decimal = Decimal('0')
    exchange_rate: Decimal = Decimal('1')
    realized_pnl_home: Optional[Decimal] = None
    market: Optional[StockMarket] = None
    currency_ledger_id: Optional[str] = None
    notes: Optional[str] = None
    is_deleted: bool = False
    sequence: int = 0
    transaction_id: Optional[str] = None

    def __post_init__(self):
        """Normalize field types, apply precision and validate."""
        set_ = object.__setattr__
        set_(self, 'transaction_date', parse_date(self.transaction_date))
        set_(self, 'ticker', self.ticker.strip().upper())
        if not isinstance(self.transaction_type, TransactionType):
            set_(self, 'transaction_type', TransactionType(str(self.transaction_type).upper()))
        if self.market is None:
            set_(self, 'market', StockMarket.guess(self.ticker))
        elif not isinstance(self.market, StockMarket):
            set_(self, 'market', StockMarket(str(self.market).upper()))

        set_(self, 'shares', round_shares(self.shares))
        set_(self, 'price_per_share', quantize_places(self.price_per_share, SHARE_PLACES))
        set_(self, 'fees', round_money(self.fees))
        set_(self, 'exchange_rate', round_rate(self.exchange_rate))
        if self.realized_pnl_home is not None:
            set_(self, 'realized_pnl_home', round_money(self.realized_pnl_home))

        self._validate()

    def _validate(self) -> None:
        if not self.ticker:
            raise ValueError("Ticker is required")
        if self.shares <= 0:
            raise ValueError(f"Shares must be positive, got {self.shares}")
        if self.transaction_type in (TransactionType.BUY, TransactionType.SELL):
            if self.price_per_share <= 0:
                raise ValueError(f"Price per share must be positive, got {self.price_per_share}")
        elif self.price_per_share < 0:
            raise ValueError(f"Price per share cannot be negative, got {self.price_per_share}")
        if self.fees < 0:
            raise ValueError(f"Fees cannot be negative, got {self.fees}")
        if self.exchange_rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {self.exchange_rate}")

    @property
    def is_taiwan_stock(self) -> bool:
        return self.market is StockMarket.TW

    @property
    def subtotal(self) -> Decimal:
        """Shares times price; Taiwan trades drop fractional dollars."""
        value = self.shares * self.price_per_share
        if self.is_taiwan_stock:
            return floor_to_units(value)
        return value

    @property
    def total_cost_source(self) -> Decimal:
        return self.subtotal + self.fees

    @property
    def total_cost_home(self) -> Decimal:
        return self.total_cost_source * self.exchange_rate

    @property
    def net_proceeds_source(self) -> Decimal:
        """Sale proceeds after fees, in the trading currency."""
        return self.subtotal - self.fees

    def is_buy(self) -> bool:
        return self.transaction_type is TransactionType.BUY

    def is_sell(self) -> bool:
        return self.transaction_type is TransactionType.SELL

    def with_changes(self, **changes: Any) -> StockTransaction:
        """Return a copy with edited mutable fields.

        Args:
            **changes: New values for any of ``MUTABLE_FIELDS``

        Returns:
            The edited transaction; realized P&L is carried over unchanged

        Raises:
            ValueError: If a non-editable field is passed
        """
        invalid = set(changes) - MUTABLE_FIELDS
        if invalid:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(invalid))}")
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Returns:
            Dictionary with Decimals rendered as strings
        """
        return {
            'transaction_id': self.transaction_id,
            'portfolio_id': self.portfolio_id,
            'transaction_date': self.transaction_date.isoformat(),
            'ticker': self.ticker,
            'transaction_type': self.transaction_type.value,
            'shares': str(self.shares),
            'price_per_share': str(self.price_per_share),
            'fees': str(self.fees),
            'exchange_rate': str(self.exchange_rate),
            'realized_pnl_home': str(self.realized_pnl_home) if self.realized_pnl_home is not None else None,
            'market': self.market.value,
            'currency_ledger_id': self.currency_ledger_id,
            'notes': self.notes,
            'is_deleted': self.is_deleted,
            'sequence': self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StockTransaction:
        """Create a StockTransaction from a dictionary (JSON or database record).

        Args:
            data: Dictionary containing transaction data

        Returns:
            StockTransaction instance
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs['shares'] = to_decimal(data['shares'])
        kwargs['price_per_share'] = to_decimal(data['price_per_share'])
        kwargs['fees'] = to_decimal(data.get('fees', 0))
        kwargs['exchange_rate'] = to_decimal(data.get('exchange_rate', 1))
        kwargs['realized_pnl_home'] = optional_decimal(data.get('realized_pnl_home'))
        return cls(**kwargs)

"""Currency ledger event data models."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Any

from financial.calculations import (
    to_decimal,
    optional_decimal,
    round_money,
    round_rate,
    round_foreign_amount,
)
from config.constants import TOP_UP_NOTE_PREFIX
from utils.timezone_utils import parse_date


class CategoryKind(Enum):
    """How an event category affects the LIFO layer stack."""
    COST_BEARING_INFLOW = "cost_bearing_inflow"
    FREE_INFLOW = "free_inflow"
    OUTFLOW = "outflow"


class CurrencyEventCategory(Enum):
    """Currency ledger event categories."""
    EXCHANGE_BUY = "exchange_buy"
    EXCHANGE_SELL = "exchange_sell"
    INITIAL_BALANCE = "initial_balance"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    INTEREST = "interest"
    SPEND = "spend"
    OTHER_INCOME = "other_income"
    OTHER_EXPENSE = "other_expense"
    STOCK_BUY = "stock_buy"
    STOCK_SELL = "stock_sell"


# DEPOSIT is listed as free; it becomes cost-bearing when it carries a rate.
CATEGORY_KINDS: Dict[CurrencyEventCategory, CategoryKind] = {
    CurrencyEventCategory.EXCHANGE_BUY: CategoryKind.COST_BEARING_INFLOW,
    CurrencyEventCategory.INITIAL_BALANCE: CategoryKind.COST_BEARING_INFLOW,
    CurrencyEventCategory.DEPOSIT: CategoryKind.FREE_INFLOW,
    CurrencyEventCategory.INTEREST: CategoryKind.FREE_INFLOW,
    CurrencyEventCategory.OTHER_INCOME: CategoryKind.FREE_INFLOW,
    CurrencyEventCategory.STOCK_SELL: CategoryKind.FREE_INFLOW,
    CurrencyEventCategory.SPEND: CategoryKind.OUTFLOW,
    CurrencyEventCategory.EXCHANGE_SELL: CategoryKind.OUTFLOW,
    CurrencyEventCategory.WITHDRAW: CategoryKind.OUTFLOW,
    CurrencyEventCategory.OTHER_EXPENSE: CategoryKind.OUTFLOW,
    CurrencyEventCategory.STOCK_BUY: CategoryKind.OUTFLOW,
}


def category_kind(category: CurrencyEventCategory, exchange_rate: Optional[Decimal] = None) -> CategoryKind:
    """Resolve the layer behaviour of a category.

    Args:
        category: Event category
        exchange_rate: Rate carried by the event, if any

    Returns:
        The category's kind
    """
    kind = CATEGORY_KINDS[category]
    if category is CurrencyEventCategory.DEPOSIT and exchange_rate is not None and exchange_rate > 0:
        return CategoryKind.COST_BEARING_INFLOW
    return kind


@dataclass(frozen=True)
class CurrencyLedgerEvent:
    """A single append-only event on a foreign currency ledger.

    ``amount`` is signed: positive for inflows, negative for outflows, and
    must agree with the category. Events are never edited in place; removal
    is a soft delete through ``is_deleted``.
    """
    ledger_id: str
    event_date: date
    amount: Decimal
    category: CurrencyEventCategory
    home_amount: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    related_transaction_id: Optional[str] = None
    notes: Optional[str] = None
    is_deleted: bool = False
    sequence: int = 0
    event_id: Optional[str] = None

    def __post_init__(self):
        """Normalize field types, apply precision and validate invariants."""
        set_ = object.__setattr__
        set_(self, 'event_date', parse_date(self.event_date))
        if not isinstance(self.category, CurrencyEventCategory):
            set_(self, 'category', CurrencyEventCategory(str(self.category).lower()))

        set_(self, 'amount', round_foreign_amount(self.amount))
        home_amount = optional_decimal(self.home_amount)
        rate = optional_decimal(self.exchange_rate)
        if home_amount is not None:
            home_amount = round_money(home_amount)
        if rate is not None:
            rate = round_rate(rate)
        elif home_amount is not None and self.amount != 0:
            rate = round_rate(home_amount / abs(self.amount))
        set_(self, 'home_amount', home_amount)
        set_(self, 'exchange_rate', rate)

        self._validate()

    def _validate(self) -> None:
        if self.amount == 0:
            raise ValueError("Ledger event amount must be non-zero")
        if self.is_inflow and self.amount < 0:
            raise ValueError(f"{self.category.value} is an inflow but amount {self.amount} is negative")
        if not self.is_inflow and self.amount > 0:
            raise ValueError(f"{self.category.value} is an outflow but amount {self.amount} is positive")
        if self.exchange_rate is not None and self.exchange_rate < 0:
            raise ValueError(f"Exchange rate cannot be negative, got {self.exchange_rate}")
        if CATEGORY_KINDS[self.category] is CategoryKind.COST_BEARING_INFLOW:
            if self.exchange_rate is None or self.exchange_rate <= 0:
                raise ValueError(f"{self.category.value} requires a positive exchange rate")

    @classmethod
    def create(cls, ledger_id: str, event_date: date, category: CurrencyEventCategory,
               amount: Decimal, **kwargs: Any) -> CurrencyLedgerEvent:
        """Create an event from an unsigned amount, applying the category's sign.

        Args:
            ledger_id: Owning ledger
            event_date: Date of the event
            category: Event category
            amount: Unsigned foreign currency amount
            **kwargs: Remaining optional fields

        Returns:
            CurrencyLedgerEvent instance
        """
        magnitude = abs(to_decimal(amount))
        signed = -magnitude if CATEGORY_KINDS[category] is CategoryKind.OUTFLOW else magnitude
        return cls(ledger_id=ledger_id, event_date=event_date, amount=signed, category=category, **kwargs)

    @property
    def kind(self) -> CategoryKind:
        return category_kind(self.category, self.exchange_rate)

    @property
    def is_inflow(self) -> bool:
        return CATEGORY_KINDS[self.category] is not CategoryKind.OUTFLOW

    @property
    def is_cost_bearing(self) -> bool:
        return self.kind is CategoryKind.COST_BEARING_INFLOW

    @property
    def units(self) -> Decimal:
        """Unsigned foreign currency amount."""
        return abs(self.amount)

    @property
    def unit_cost(self) -> Optional[Decimal]:
        """Home currency cost of one foreign unit, if the event carries one."""
        if self.home_amount is not None:
            return self.home_amount / self.units
        return self.exchange_rate

    @property
    def home_value(self) -> Optional[Decimal]:
        """Home currency value of the event, derived from the rate when not recorded."""
        if self.home_amount is not None:
            return self.home_amount
        if self.exchange_rate is not None:
            return round_money(self.units * self.exchange_rate)
        return None

    @property
    def is_top_up(self) -> bool:
        """Whether this inflow was synthesized to fund a stock purchase."""
        return (
            self.related_transaction_id is not None
            and self.is_inflow
            and (self.notes or "").startswith(TOP_UP_NOTE_PREFIX)
        )

    def sort_key(self):
        return (self.event_date, self.sequence)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Returns:
            Dictionary with Decimals rendered as strings
        """
        return {
            'event_id': self.event_id,
            'ledger_id': self.ledger_id,
            'event_date': self.event_date.isoformat(),
            'amount': str(self.amount),
            'category': self.category.value,
            'home_amount': str(self.home_amount) if self.home_amount is not None else None,
            'exchange_rate': str(self.exchange_rate) if self.exchange_rate is not None else None,
            'related_transaction_id': self.related_transaction_id,
            'notes': self.notes,
            'is_deleted': self.is_deleted,
            'sequence': self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CurrencyLedgerEvent:
        """Create a CurrencyLedgerEvent from a dictionary.

        An unsigned ``amount`` is accepted and signed from the category, so
        hand-written scenario files can list positive amounts throughout.

        Args:
            data: Dictionary containing event data

        Returns:
            CurrencyLedgerEvent instance
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        category = CurrencyEventCategory(str(data['category']).lower())
        kwargs.pop('amount')
        kwargs.pop('category')
        kwargs.pop('ledger_id', None)
        kwargs.pop('event_date', None)
        return cls.create(
            ledger_id=data['ledger_id'],
            event_date=data['event_date'],
            category=category,
            amount=to_decimal(data['amount']),
            **kwargs,
        )

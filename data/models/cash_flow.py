"""Cash flow and valuation data models used by the return calculators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Any

from financial.calculations import to_decimal
from utils.timezone_utils import parse_date


@dataclass(frozen=True)
class CashFlowEvent:
    """External capital movement into (positive) or out of (negative) a portfolio."""
    date: date
    amount: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'date', parse_date(self.date))
        object.__setattr__(self, 'amount', to_decimal(self.amount))

    def to_dict(self) -> Dict[str, Any]:
        return {'date': self.date.isoformat(), 'amount': str(self.amount)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CashFlowEvent:
        return cls(date=data['date'], amount=to_decimal(data['amount']))


@dataclass(frozen=True)
class ValuationPoint:
    """Total portfolio value on a date; on a flow date, the value after the flow."""
    date: date
    value: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'date', parse_date(self.date))
        object.__setattr__(self, 'value', to_decimal(self.value))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ValuationPoint:
        return cls(date=data['date'], value=to_decimal(data['value']))


@dataclass(frozen=True)
class ValuationSnapshot:
    """Portfolio value immediately before and after an external flow."""
    date: date
    value_before: Decimal
    value_after: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'date', parse_date(self.date))
        object.__setattr__(self, 'value_before', to_decimal(self.value_before))
        object.__setattr__(self, 'value_after', to_decimal(self.value_after))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ValuationSnapshot:
        return cls(
            date=data['date'],
            value_before=to_decimal(data['value_before']),
            value_after=to_decimal(data['value_after']),
        )

"""Position data models."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any

from financial.calculations import ZERO, round_money, round_shares, quantize_places


@dataclass
class Position:
    """Weighted-average aggregate of one ticker's transactions.

    Totals are kept at full precision so that ``total_cost / total_shares``
    always equals the average cost; rounding happens only in :meth:`to_dict`.
    """
    ticker: str
    total_shares: Decimal = ZERO
    total_cost_source: Decimal = ZERO
    total_cost_home: Decimal = ZERO

    @property
    def average_cost_source(self) -> Decimal:
        if self.total_shares <= 0:
            return ZERO
        return self.total_cost_source / self.total_shares

    @property
    def average_cost_home(self) -> Decimal:
        if self.total_shares <= 0:
            return ZERO
        return self.total_cost_home / self.total_shares

    @property
    def is_closed(self) -> bool:
        return self.total_shares == 0

    def copy(self) -> Position:
        return Position(self.ticker, self.total_shares, self.total_cost_source, self.total_cost_home)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display and JSON output.

        Returns:
            Dictionary with shares at 4 places, money at 2 and averages at 6
        """
        return {
            'ticker': self.ticker,
            'total_shares': round_shares(self.total_shares),
            'total_cost_source': round_money(self.total_cost_source),
            'total_cost_home': round_money(self.total_cost_home),
            'average_cost_source': quantize_places(self.average_cost_source, 6),
            'average_cost_home': quantize_places(self.average_cost_home, 6),
        }


@dataclass(frozen=True)
class UnrealizedPnl:
    """Mark-to-market result for a position, in home currency."""
    current_value_home: Decimal
    amount: Decimal
    percentage: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_value_home': round_money(self.current_value_home),
            'amount': round_money(self.amount),
            'percentage': self.percentage,
        }

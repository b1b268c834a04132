"""Domain errors and typed calculation results.

Expected financial outcomes (a missing rate, a shortfall, an XIRR that does
not converge) are represented here either as exceptions raised by the
orchestration layer or as tagged result values returned by the calculators.
Programming errors such as ``ValueError`` and ``TypeError`` are never wrapped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Dict, Any

from .calculations import HUNDRED


class CostBasisError(Exception):
    """Base exception for cost basis and pricing operations."""
    pass


class RateUnavailableError(CostBasisError):
    """Raised when no ledger layer and no market rate can price a purchase."""

    def __init__(self, message: str, ledger_id: Optional[str] = None,
                 amount: Optional[Decimal] = None):
        super().__init__(message)
        self.ledger_id = ledger_id
        self.amount = amount


class InsufficientBalanceError(CostBasisError):
    """Raised when a purchase exceeds the ledger balance and the action is reject."""

    def __init__(self, message: str, balance: Decimal, required: Decimal, shortfall: Decimal):
        super().__init__(message)
        self.balance = balance
        self.required = required
        self.shortfall = shortfall


class InvalidSellQuantityError(CostBasisError):
    """Raised when a sell exceeds the shares held as of the sell date."""

    def __init__(self, message: str, ticker: str, requested: Decimal, held: Decimal,
                 as_of: Optional[date] = None):
        super().__init__(message)
        self.ticker = ticker
        self.requested = requested
        self.held = held
        self.as_of = as_of


class TransactionValidationError(CostBasisError):
    """Raised when a transaction request fails validation."""
    pass


class ResultStatus(Enum):
    """Outcome tag for return calculations."""
    OK = "ok"
    NOT_COMPUTABLE = "not_computable"
    NOT_CONVERGED = "not_converged"
    MISSING_VALUATION = "missing_valuation"


@dataclass(frozen=True)
class ReturnResult:
    """Result of a return calculation.

    ``rate`` is a fraction (0.1 for 10%) and is only set when the status is
    OK. Callers should treat any other status as a displayable "N/A" rather
    than a fault.
    """
    status: ResultStatus
    rate: Optional[Decimal] = None
    message: Optional[str] = None
    missing_dates: Tuple[date, ...] = field(default_factory=tuple)
    iterations: int = 0

    @classmethod
    def ok(cls, rate: Decimal, iterations: int = 0) -> ReturnResult:
        return cls(status=ResultStatus.OK, rate=rate, iterations=iterations)

    @classmethod
    def not_computable(cls, message: str) -> ReturnResult:
        return cls(status=ResultStatus.NOT_COMPUTABLE, message=message)

    @classmethod
    def not_converged(cls, message: str, iterations: int = 0) -> ReturnResult:
        return cls(status=ResultStatus.NOT_CONVERGED, message=message, iterations=iterations)

    @classmethod
    def missing_valuation(cls, missing_dates: Tuple[date, ...]) -> ReturnResult:
        dates = ", ".join(d.isoformat() for d in missing_dates)
        return cls(
            status=ResultStatus.MISSING_VALUATION,
            message=f"Missing valuation points for: {dates}",
            missing_dates=tuple(missing_dates),
        )

    @property
    def is_ok(self) -> bool:
        return self.status is ResultStatus.OK

    @property
    def percentage(self) -> Optional[Decimal]:
        """Rate expressed as a percentage, or None when not available."""
        if self.rate is None:
            return None
        return self.rate * HUNDRED

    def display(self) -> str:
        if self.percentage is None:
            return "N/A"
        return f"{self.percentage:.2f}%"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'rate': str(self.rate) if self.rate is not None else None,
            'percentage': str(self.percentage) if self.percentage is not None else None,
            'message': self.message,
            'missing_dates': [d.isoformat() for d in self.missing_dates],
        }

"""Abstract base repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models.currency_event import CurrencyLedgerEvent
from ..models.stock_split import StockSplit
from ..models.stock_transaction import StockTransaction


@dataclass
class UnitOfWork:
    """A set of writes committed atomically.

    ``expected_ledger_versions`` maps each touched ledger to the version the
    caller read; the commit fails if any ledger moved on in the meantime.
    """
    ledger_events: List[CurrencyLedgerEvent] = field(default_factory=list)
    transactions: List[StockTransaction] = field(default_factory=list)
    expected_ledger_versions: Dict[str, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.ledger_events and not self.transactions


class BaseRepository(ABC):
    """Abstract base class for data access operations.

    This interface defines the contract for storage backends, so the pricing
    and reporting services work unchanged against any implementation.
    """

    @abstractmethod
    def get_ledger_events(self, ledger_id: str, include_deleted: bool = False) -> List[CurrencyLedgerEvent]:
        """Retrieve a ledger's events ordered by date, then insertion order.

        Args:
            ledger_id: Ledger identifier
            include_deleted: Whether soft-deleted events are returned

        Returns:
            List of CurrencyLedgerEvent objects

        Raises:
            DataNotFoundError: If the ledger does not exist
        """
        pass

    @abstractmethod
    def get_ledger_version(self, ledger_id: str) -> int:
        """Get the ledger's current version for optimistic concurrency checks.

        Raises:
            DataNotFoundError: If the ledger does not exist
        """
        pass

    @abstractmethod
    def get_ledger_currency(self, ledger_id: str) -> str:
        """Get the currency code a ledger is kept in.

        Raises:
            DataNotFoundError: If the ledger does not exist
        """
        pass

    @abstractmethod
    def get_transactions(self, portfolio_id: str, ticker: Optional[str] = None) -> List[StockTransaction]:
        """Retrieve a portfolio's non-deleted transactions.

        Args:
            portfolio_id: Portfolio identifier
            ticker: Optional ticker symbol to filter by

        Returns:
            List of StockTransaction objects ordered by date
        """
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> StockTransaction:
        """Retrieve a single transaction.

        Raises:
            DataNotFoundError: If the transaction does not exist
        """
        pass

    @abstractmethod
    def get_splits(self, symbol: Optional[str] = None) -> List[StockSplit]:
        """Retrieve recorded stock splits, optionally for one symbol."""
        pass

    @abstractmethod
    def commit(self, unit_of_work: UnitOfWork) -> None:
        """Persist all writes of a unit of work, or none of them.

        Args:
            unit_of_work: Events and transactions to write

        Raises:
            ConcurrencyConflictError: If a ledger version no longer matches
            RepositoryError: If the write fails
        """
        pass


class RepositoryError(Exception):
    """Base exception for repository operations."""
    pass


class DataValidationError(RepositoryError):
    """Exception raised when data validation fails."""
    pass


class DataNotFoundError(RepositoryError):
    """Exception raised when requested data is not found."""
    pass


class ConcurrencyConflictError(RepositoryError):
    """Exception raised when a ledger changed between read and write."""

    def __init__(self, ledger_id: str, expected: int, actual: int):
        super().__init__(
            f"Ledger {ledger_id} was modified concurrently (expected version {expected}, found {actual})"
        )
        self.ledger_id = ledger_id
        self.expected = expected
        self.actual = actual

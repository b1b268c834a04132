"""In-memory repository implementation."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base_repository import (
    BaseRepository,
    UnitOfWork,
    ConcurrencyConflictError,
    DataNotFoundError,
    DataValidationError,
)
from ..models.currency_event import CurrencyLedgerEvent
from ..models.stock_split import StockSplit
from ..models.stock_transaction import StockTransaction

logger = logging.getLogger(__name__)


class InMemoryRepository(BaseRepository):
    """Thread-safe repository holding ledgers and transactions in memory.

    Commits are serialized with a lock and each ledger carries a version that
    increases on every committed event, so two purchases that read the same
    balance cannot both commit.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ledgers: Dict[str, Dict[str, Any]] = {}
        self._events: Dict[str, List[CurrencyLedgerEvent]] = {}
        self._transactions: Dict[str, StockTransaction] = {}
        self._splits: List[StockSplit] = []
        self._next_sequence = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InMemoryRepository:
        """Build a repository from a scenario dictionary.

        Expected keys: ``ledgers`` (``id``, ``currency``, ``events``),
        ``transactions`` and ``splits``. Events and transactions get
        sequence numbers in listed order.

        Args:
            data: Scenario dictionary

        Returns:
            Populated repository
        """
        repo = cls()
        for ledger in data.get('ledgers', []):
            repo.add_ledger(ledger['id'], ledger['currency'])
            events = [
                CurrencyLedgerEvent.from_dict({**event, 'ledger_id': ledger['id']})
                for event in ledger.get('events', [])
            ]
            repo.commit(UnitOfWork(ledger_events=events))
        transactions = [StockTransaction.from_dict(tx) for tx in data.get('transactions', [])]
        if transactions:
            repo.commit(UnitOfWork(transactions=transactions))
        for split in data.get('splits', []):
            repo.add_split(StockSplit.from_dict(split))
        return repo

    @classmethod
    def from_json_file(cls, path: str) -> InMemoryRepository:
        with open(Path(path), 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info(f"Loaded scenario from: {path}")
        return cls.from_dict(data)

    def add_ledger(self, ledger_id: str, currency: str) -> None:
        with self._lock:
            if ledger_id in self._ledgers:
                raise DataValidationError(f"Ledger already exists: {ledger_id}")
            self._ledgers[ledger_id] = {'currency': currency.upper(), 'version': 0}
            self._events[ledger_id] = []

    def add_split(self, split: StockSplit) -> None:
        with self._lock:
            self._splits.append(split)

    def get_ledger_events(self, ledger_id: str, include_deleted: bool = False) -> List[CurrencyLedgerEvent]:
        with self._lock:
            self._require_ledger(ledger_id)
            events = [e for e in self._events[ledger_id] if include_deleted or not e.is_deleted]
        return sorted(events, key=CurrencyLedgerEvent.sort_key)

    def get_ledger_version(self, ledger_id: str) -> int:
        with self._lock:
            return self._require_ledger(ledger_id)['version']

    def get_ledger_currency(self, ledger_id: str) -> str:
        with self._lock:
            return self._require_ledger(ledger_id)['currency']

    def get_transactions(self, portfolio_id: str, ticker: Optional[str] = None) -> List[StockTransaction]:
        with self._lock:
            selected = [
                t for t in self._transactions.values()
                if t.portfolio_id == portfolio_id and not t.is_deleted
                and (ticker is None or t.ticker == ticker.upper())
            ]
        return sorted(selected, key=lambda t: (t.transaction_date, t.sequence))

    def get_transaction(self, transaction_id: str) -> StockTransaction:
        with self._lock:
            if transaction_id not in self._transactions:
                raise DataNotFoundError(f"Transaction not found: {transaction_id}")
            return self._transactions[transaction_id]

    def get_splits(self, symbol: Optional[str] = None) -> List[StockSplit]:
        with self._lock:
            return [s for s in self._splits if symbol is None or s.symbol == symbol.upper()]

    def delete_ledger_event(self, ledger_id: str, event_id: str) -> None:
        """Soft-delete a ledger event and bump the ledger version."""
        with self._lock:
            ledger = self._require_ledger(ledger_id)
            events = self._events[ledger_id]
            for i, event in enumerate(events):
                if event.event_id == event_id:
                    events[i] = replace(event, is_deleted=True)
                    ledger['version'] += 1
                    return
            raise DataNotFoundError(f"Event not found: {event_id}")

    def commit(self, unit_of_work: UnitOfWork) -> None:
        """Validate every write first, then apply them all under the lock."""
        with self._lock:
            for ledger_id, expected in unit_of_work.expected_ledger_versions.items():
                actual = self._require_ledger(ledger_id)['version']
                if actual != expected:
                    logger.warning(f"Version conflict on ledger {ledger_id}: {expected} != {actual}")
                    raise ConcurrencyConflictError(ledger_id, expected, actual)
            for event in unit_of_work.ledger_events:
                self._require_ledger(event.ledger_id)

            for event in unit_of_work.ledger_events:
                stored = replace(
                    event,
                    event_id=event.event_id or str(uuid.uuid4()),
                    sequence=self._take_sequence(),
                )
                self._events[event.ledger_id].append(stored)
                self._ledgers[event.ledger_id]['version'] += 1

            for tx in unit_of_work.transactions:
                if tx.transaction_id and tx.transaction_id in self._transactions:
                    self._transactions[tx.transaction_id] = tx
                    continue
                stored = replace(
                    tx,
                    transaction_id=tx.transaction_id or str(uuid.uuid4()),
                    sequence=self._take_sequence(),
                )
                self._transactions[stored.transaction_id] = stored

        logger.debug(
            f"Committed {len(unit_of_work.ledger_events)} ledger events and "
            f"{len(unit_of_work.transactions)} transactions"
        )

    def _take_sequence(self) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence

    def _require_ledger(self, ledger_id: str) -> Dict[str, Any]:
        if ledger_id not in self._ledgers:
            raise DataNotFoundError(f"Ledger not found: {ledger_id}")
        return self._ledgers[ledger_id]

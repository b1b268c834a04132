"""
Unit tests for the in-memory repository.

Tests cover atomic commits, ledger version checks, sequence assignment,
soft deletes and loading scenarios from dictionaries.
"""

import unittest
from datetime import date
from decimal import Decimal
import sys
from pathlib import Path

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from data.models.currency_event import CurrencyEventCategory
from data.models.stock_transaction import TransactionType
from data.repositories import (
    ConcurrencyConflictError,
    DataNotFoundError,
    DataValidationError,
    InMemoryRepository,
    UnitOfWork,
)
from tests.test_helpers import (
    LEDGER_ID,
    PORTFOLIO_ID,
    build_usd_ledger_repository,
    event,
    exchange_buy,
    transaction,
)


class TestInMemoryRepository(unittest.TestCase):

    def setUp(self):
        self.repository = build_usd_ledger_repository()

    def test_commit_assigns_ids_and_sequences(self):
        events = self.repository.get_ledger_events(LEDGER_ID)
        self.assertEqual([e.sequence for e in events], [1, 2])
        self.assertTrue(all(e.event_id for e in events))
        self.assertEqual(self.repository.get_ledger_version(LEDGER_ID), 2)

    def test_stale_version_rejected(self):
        version = self.repository.get_ledger_version(LEDGER_ID)
        self.repository.commit(UnitOfWork(
            ledger_events=[exchange_buy(10, '32.0', date(2024, 3, 1))],
            expected_ledger_versions={LEDGER_ID: version},
        ))

        with self.assertRaises(ConcurrencyConflictError) as ctx:
            self.repository.commit(UnitOfWork(
                ledger_events=[exchange_buy(10, '32.0', date(2024, 3, 2))],
                expected_ledger_versions={LEDGER_ID: version},
            ))
        self.assertEqual(ctx.exception.expected, version)
        self.assertEqual(ctx.exception.actual, version + 1)
        self.assertEqual(len(self.repository.get_ledger_events(LEDGER_ID)), 3)

    def test_failed_commit_writes_nothing(self):
        tx = transaction(TransactionType.BUY, "AAPL", 1, 100, date(2024, 3, 1))
        with self.assertRaises(DataNotFoundError):
            self.repository.commit(UnitOfWork(
                ledger_events=[event(CurrencyEventCategory.EXCHANGE_BUY, 10, date(2024, 3, 1), rate='35',
                                     ledger_id="EUR-1")],
                transactions=[tx],
            ))
        self.assertEqual(self.repository.get_transactions(PORTFOLIO_ID), [])

    def test_soft_delete_hides_event_and_bumps_version(self):
        event_id = self.repository.get_ledger_events(LEDGER_ID)[0].event_id
        self.repository.delete_ledger_event(LEDGER_ID, event_id)

        self.assertEqual(len(self.repository.get_ledger_events(LEDGER_ID)), 1)
        self.assertEqual(len(self.repository.get_ledger_events(LEDGER_ID, include_deleted=True)), 2)
        self.assertEqual(self.repository.get_ledger_version(LEDGER_ID), 3)

    def test_delete_unknown_event(self):
        with self.assertRaises(DataNotFoundError):
            self.repository.delete_ledger_event(LEDGER_ID, "missing")

    def test_duplicate_ledger_rejected(self):
        with self.assertRaises(DataValidationError):
            self.repository.add_ledger(LEDGER_ID, "USD")

    def test_transactions_filtered_and_ordered(self):
        self.repository.commit(UnitOfWork(transactions=[
            transaction(TransactionType.BUY, "MSFT", 1, 400, date(2024, 2, 1)),
            transaction(TransactionType.BUY, "aapl", 1, 100, date(2024, 1, 1)),
            transaction(TransactionType.BUY, "AAPL", 1, 100, date(2024, 1, 1), portfolio_id="P2"),
        ]))
        self.assertEqual([t.ticker for t in self.repository.get_transactions(PORTFOLIO_ID)], ["AAPL", "MSFT"])
        self.assertEqual(len(self.repository.get_transactions(PORTFOLIO_ID, "aapl")), 1)

    def test_existing_transaction_replaced(self):
        self.repository.commit(UnitOfWork(transactions=[
            transaction(TransactionType.BUY, "AAPL", 1, 100, date(2024, 1, 1), transaction_id="tx-1"),
        ]))
        stored = self.repository.get_transaction("tx-1")
        self.repository.commit(UnitOfWork(transactions=[stored.with_changes(shares=Decimal('2'))]))

        updated = self.repository.get_transaction("tx-1")
        self.assertEqual(updated.shares, Decimal('2'))
        self.assertEqual(updated.sequence, stored.sequence)

    def test_missing_transaction(self):
        with self.assertRaises(DataNotFoundError):
            self.repository.get_transaction("missing")


class TestFromDict(unittest.TestCase):

    def test_scenario_loading(self):
        repository = InMemoryRepository.from_dict({
            'ledgers': [{
                'id': 'USD-1',
                'currency': 'usd',
                'events': [
                    {'event_date': '2024-01-10', 'category': 'exchange_buy', 'amount': '100', 'exchange_rate': '30.5'},
                    {'event_date': '2024-02-01', 'category': 'spend', 'amount': '20'},
                ],
            }],
            'transactions': [
                {'portfolio_id': 'P1', 'transaction_date': '2024-01-15', 'ticker': 'AAPL',
                 'transaction_type': 'buy', 'shares': '1', 'price_per_share': '50'},
            ],
            'splits': [{'symbol': 'AAPL', 'split_date': '2024-06-10', 'split_ratio': '4'}],
        })

        self.assertEqual(repository.get_ledger_currency('USD-1'), 'USD')
        events = repository.get_ledger_events('USD-1')
        self.assertEqual(events[1].amount, Decimal('-20'))
        self.assertEqual(repository.get_transactions('P1')[0].transaction_type, TransactionType.BUY)
        self.assertEqual(repository.get_splits('aapl')[0].split_ratio, Decimal('4'))


if __name__ == '__main__':
    unittest.main()

"""
Unit tests for data models.

Tests cover ledger event sign and rate rules, stock transaction precision and
Taiwan subtotal flooring, split adjustment and dictionary conversion.
"""

import unittest
from datetime import date, datetime
from decimal import Decimal
import sys
from pathlib import Path

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from data.models.cash_flow import CashFlowEvent, ValuationSnapshot
from data.models.currency_event import (
    CategoryKind,
    CurrencyEventCategory,
    CurrencyLedgerEvent,
    category_kind,
)
from data.models.lifo_layer import LayerStack, LifoLayer
from data.models.stock_split import StockSplit
from data.models.stock_transaction import StockMarket, StockTransaction, TransactionType
from portfolio.split_adjustment import StockSplitAdjuster


class TestCurrencyLedgerEvent(unittest.TestCase):
    """Test cases for CurrencyLedgerEvent model."""

    def test_create_signs_outflows(self):
        event = CurrencyLedgerEvent.create("USD-1", date(2024, 1, 1), CurrencyEventCategory.SPEND, Decimal('25'))
        self.assertEqual(event.amount, Decimal('-25'))
        self.assertFalse(event.is_inflow)

    def test_sign_must_match_category(self):
        with self.assertRaises(ValueError):
            CurrencyLedgerEvent("USD-1", date(2024, 1, 1), Decimal('-10'), CurrencyEventCategory.INTEREST)
        with self.assertRaises(ValueError):
            CurrencyLedgerEvent("USD-1", date(2024, 1, 1), Decimal('10'), CurrencyEventCategory.WITHDRAW)

    def test_zero_amount_rejected(self):
        with self.assertRaises(ValueError):
            CurrencyLedgerEvent("USD-1", date(2024, 1, 1), Decimal('0'), CurrencyEventCategory.INTEREST)

    def test_exchange_buy_requires_rate(self):
        with self.assertRaises(ValueError):
            CurrencyLedgerEvent.create("USD-1", date(2024, 1, 1), CurrencyEventCategory.EXCHANGE_BUY, Decimal('10'))

    def test_rate_derived_from_home_amount(self):
        event = CurrencyLedgerEvent.create(
            "USD-1", date(2024, 1, 1), CurrencyEventCategory.EXCHANGE_BUY, Decimal('250'),
            home_amount=Decimal('7725'),
        )
        self.assertEqual(event.exchange_rate, Decimal('30.900000'))
        self.assertEqual(event.unit_cost, Decimal('30.9'))

    def test_deposit_kind_depends_on_rate(self):
        self.assertIs(category_kind(CurrencyEventCategory.DEPOSIT), CategoryKind.FREE_INFLOW)
        self.assertIs(category_kind(CurrencyEventCategory.DEPOSIT, Decimal('30')), CategoryKind.COST_BEARING_INFLOW)

    def test_home_value(self):
        event = CurrencyLedgerEvent.create(
            "USD-1", date(2024, 1, 1), CurrencyEventCategory.EXCHANGE_BUY, Decimal('100'),
            exchange_rate=Decimal('31.25'),
        )
        self.assertEqual(event.home_value, Decimal('3125.00'))

    def test_dict_round_trip_accepts_unsigned_amounts(self):
        event = CurrencyLedgerEvent.from_dict({
            'ledger_id': 'USD-1', 'event_date': '2024-02-01', 'category': 'SPEND', 'amount': '40',
        })
        self.assertEqual(event.amount, Decimal('-40'))
        self.assertEqual(CurrencyLedgerEvent.from_dict(event.to_dict()), event)


class TestStockTransaction(unittest.TestCase):
    """Test cases for StockTransaction model."""

    def test_precision_applied(self):
        tx = StockTransaction("P1", date(2024, 1, 1), " aapl ", TransactionType.BUY,
                              Decimal('1.23456'), Decimal('100.123456'), Decimal('1.005'), Decimal('31.1234567'))
        self.assertEqual(tx.ticker, "AAPL")
        self.assertEqual(tx.shares, Decimal('1.2346'))
        self.assertEqual(tx.price_per_share, Decimal('100.1235'))
        self.assertEqual(tx.fees, Decimal('1.01'))
        self.assertEqual(tx.exchange_rate, Decimal('31.123457'))

    def test_market_guessed_from_ticker(self):
        self.assertIs(StockTransaction("P1", date(2024, 1, 1), "2330", "buy", 1, 500).market, StockMarket.TW)
        self.assertIs(StockTransaction("P1", date(2024, 1, 1), "VWRA.L", "buy", 1, 100).market, StockMarket.UK)

    def test_taiwan_subtotal_floored(self):
        tx = StockTransaction("P1", date(2024, 1, 1), "2330", TransactionType.BUY,
                              Decimal('3'), Decimal('100.5'), Decimal('20'))
        self.assertEqual(tx.subtotal, Decimal('301'))
        self.assertEqual(tx.total_cost_source, Decimal('321'))

    def test_us_subtotal_not_floored(self):
        tx = StockTransaction("P1", date(2024, 1, 1), "AAPL", TransactionType.SELL,
                              Decimal('3'), Decimal('100.5'), Decimal('1'), Decimal('32'))
        self.assertEqual(tx.net_proceeds_source, Decimal('300.5'))

    def test_validation(self):
        with self.assertRaises(ValueError):
            StockTransaction("P1", date(2024, 1, 1), "AAPL", TransactionType.BUY, Decimal('1'), Decimal('0'))
        with self.assertRaises(ValueError):
            StockTransaction("P1", date(2024, 1, 1), "AAPL", TransactionType.BUY, Decimal('1'), Decimal('1'),
                             fees=Decimal('-1'))
        with self.assertRaises(ValueError):
            StockTransaction("P1", date(2024, 1, 1), "AAPL", TransactionType.BUY, Decimal('1'), Decimal('1'),
                             exchange_rate=Decimal('0'))

    def test_with_changes_keeps_realized_pnl(self):
        tx = StockTransaction("P1", date(2024, 1, 1), "AAPL", TransactionType.SELL, Decimal('1'), Decimal('10'),
                              realized_pnl_home=Decimal('12.345'))
        edited = tx.with_changes(price_per_share=Decimal('11'))
        self.assertEqual(edited.realized_pnl_home, Decimal('12.35'))
        with self.assertRaises(ValueError):
            tx.with_changes(ticker="MSFT")

    def test_from_dict_round_trip(self):
        tx = StockTransaction("P1", "2024-01-01", "AAPL", "BUY", Decimal('2'), Decimal('10'),
                              exchange_rate=Decimal('31'), transaction_id="tx-1")
        self.assertEqual(StockTransaction.from_dict(tx.to_dict()), tx)


class TestStockSplit(unittest.TestCase):
    """Test cases for splits and split adjustment."""

    def setUp(self):
        self.adjuster = StockSplitAdjuster()
        self.splits = [
            StockSplit("AAPL", date(2024, 6, 10), Decimal('4')),
            StockSplit("AAPL", date(2025, 1, 1), Decimal('2')),
        ]

    def test_ratio_must_be_positive(self):
        with self.assertRaises(ValueError):
            StockSplit("AAPL", date(2024, 6, 10), Decimal('0'))

    def test_cumulative_ratio_counts_later_splits(self):
        ratio = self.adjuster.cumulative_ratio("AAPL", StockMarket.US, date(2024, 1, 1), self.splits)
        self.assertEqual(ratio, Decimal('8'))
        ratio = self.adjuster.cumulative_ratio("AAPL", StockMarket.US, date(2024, 6, 10), self.splits)
        self.assertEqual(ratio, Decimal('2'))

    def test_other_market_ignored(self):
        ratio = self.adjuster.cumulative_ratio("AAPL", StockMarket.TW, date(2024, 1, 1), self.splits)
        self.assertEqual(ratio, Decimal('1'))

    def test_adjusted_values_keep_total_cost(self):
        tx = StockTransaction("P1", date(2024, 1, 1), "AAPL", TransactionType.BUY, Decimal('10'), Decimal('160'))
        adjusted = self.adjuster.adjusted_values(tx, self.splits)
        self.assertTrue(adjusted.has_split)
        self.assertEqual(adjusted.adjusted_shares, Decimal('80'))
        self.assertEqual(adjusted.adjusted_price * adjusted.adjusted_shares, Decimal('1600'))


class TestLayerStack(unittest.TestCase):

    def test_consumes_free_units_then_newest_layer(self):
        stack = LayerStack()
        stack.push(LifoLayer(Decimal('100'), Decimal('30'), date(2024, 1, 1), 1))
        stack.push(LifoLayer(Decimal('100'), Decimal('31'), date(2024, 2, 1), 2))
        stack.free_units = Decimal('10')

        taken, uncovered = stack.consume(Decimal('150'))
        self.assertEqual(uncovered, Decimal('0'))
        self.assertTrue(taken[0].is_free)
        self.assertEqual(taken[1].unit_cost, Decimal('31'))
        self.assertEqual(taken[2].units, Decimal('40'))
        self.assertEqual(stack.total_units, Decimal('60'))


class TestCashFlowModels(unittest.TestCase):

    def test_cash_flow_normalizes_inputs(self):
        flow = CashFlowEvent(datetime(2024, 1, 1, 15, 30), '100.5')
        self.assertEqual(flow.date, date(2024, 1, 1))
        self.assertEqual(flow.amount, Decimal('100.5'))
        self.assertEqual(CashFlowEvent.from_dict(flow.to_dict()), flow)

    def test_snapshot_from_dict(self):
        snapshot = ValuationSnapshot.from_dict({'date': '2024-07-01', 'value_before': '1100', 'value_after': '1300'})
        self.assertEqual(snapshot.value_after, Decimal('1300'))


if __name__ == '__main__':
    unittest.main()

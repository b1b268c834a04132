"""
Unit tests for the position calculator.

Tests cover the weighted-average position, sell validation as of the sell
date, realized and unrealized P&L and stock split handling.
"""

import unittest
from datetime import date
from decimal import Decimal
import sys
from pathlib import Path

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from data.models.position import Position
from data.models.stock_split import StockSplit
from data.models.stock_transaction import TransactionType
from financial.errors import InvalidSellQuantityError
from portfolio.position_calculator import PositionCalculator
from tests.test_helpers import transaction

BUY = TransactionType.BUY
SELL = TransactionType.SELL


class TestPosition(unittest.TestCase):

    def setUp(self):
        self.calculator = PositionCalculator()
        self.transactions = [
            transaction(BUY, "AAPL", 10, 100, date(2024, 1, 10), rate='30', sequence=1),
            transaction(BUY, "AAPL", 10, 120, date(2024, 2, 10), rate='31', sequence=2),
            transaction(BUY, "MSFT", 5, 400, date(2024, 2, 11), rate='31', sequence=3),
        ]

    def test_weighted_average(self):
        position = self.calculator.position("AAPL", self.transactions)
        self.assertEqual(position.total_shares, Decimal('20'))
        self.assertEqual(position.total_cost_source, Decimal('2200'))
        self.assertEqual(position.total_cost_home, Decimal('67200'))
        self.assertEqual(position.average_cost_home, Decimal('3360'))
        self.assertEqual(position.average_cost_source * position.total_shares, position.total_cost_source)

    def test_sell_removes_proportional_cost(self):
        transactions = self.transactions + [
            transaction(SELL, "AAPL", 5, 150, date(2024, 3, 1), rate='32', sequence=4),
        ]
        position = self.calculator.position("AAPL", transactions)
        self.assertEqual(position.total_shares, Decimal('15'))
        self.assertEqual(position.total_cost_home, Decimal('50400'))
        self.assertEqual(position.average_cost_home, Decimal('3360'))

    def test_as_of_cutoff(self):
        position = self.calculator.position("AAPL", self.transactions, as_of=date(2024, 1, 31))
        self.assertEqual(position.total_shares, Decimal('10'))

    def test_full_sell_closes_position(self):
        transactions = self.transactions + [
            transaction(SELL, "AAPL", 20, 150, date(2024, 3, 1), sequence=4),
        ]
        position = self.calculator.position("AAPL", transactions)
        self.assertTrue(position.is_closed)
        self.assertEqual(position.total_cost_home, Decimal('0'))
        self.assertEqual(position.average_cost_home, Decimal('0'))

    def test_historical_oversell_raises(self):
        transactions = self.transactions + [
            transaction(SELL, "AAPL", 25, 150, date(2024, 3, 1), sequence=4),
        ]
        with self.assertRaises(InvalidSellQuantityError):
            self.calculator.position("AAPL", transactions)

    def test_recalculate_all_positions(self):
        positions = self.calculator.recalculate_all_positions(self.transactions)
        self.assertEqual(list(positions), ["AAPL", "MSFT"])
        self.assertEqual(positions["MSFT"].total_cost_home, Decimal('62000'))


class TestValidateSell(unittest.TestCase):

    def setUp(self):
        self.calculator = PositionCalculator()

    def test_later_buys_do_not_cover_earlier_sell(self):
        transactions = [
            transaction(BUY, "AAPL", 10, 100, date(2024, 1, 1), sequence=1),
            transaction(BUY, "AAPL", 10, 100, date(2024, 3, 1), sequence=2),
        ]
        sell = transaction(SELL, "AAPL", 15, 120, date(2024, 2, 1))
        with self.assertRaises(InvalidSellQuantityError) as ctx:
            self.calculator.validate_sell("AAPL", transactions, sell)
        self.assertEqual(ctx.exception.held, Decimal('10'))
        self.assertEqual(ctx.exception.requested, Decimal('15'))

    def test_valid_sell_returns_position_before(self):
        transactions = [transaction(BUY, "AAPL", 10, 100, date(2024, 1, 1), rate='30', sequence=1)]
        sell = transaction(SELL, "AAPL", 10, 120, date(2024, 2, 1))
        before = self.calculator.validate_sell("AAPL", transactions, sell)
        self.assertEqual(before.total_shares, Decimal('10'))
        self.assertEqual(before.total_cost_home, Decimal('30000'))


class TestRealizedPnl(unittest.TestCase):

    def setUp(self):
        self.calculator = PositionCalculator()

    def test_realized_pnl_in_home_currency(self):
        before = Position("AAPL", Decimal('20'), Decimal('2200'), Decimal('67200'))
        sell = transaction(SELL, "AAPL", 5, 150, date(2024, 3, 1), rate='32', fees='10')
        # (750 - 10) * 32 - 67200 * 5 / 20
        self.assertEqual(self.calculator.realized_pnl(before, sell), Decimal('6880.00'))

    def test_taiwan_subtotal_floored_before_fees(self):
        buy = transaction(BUY, "2330", 3, '100.5', date(2024, 1, 1))
        self.assertEqual(buy.subtotal, Decimal('301'))
        before = self.calculator.position("2330", [buy])

        sell = transaction(SELL, "2330", 1, '100.7', date(2024, 2, 1), fees='1')
        # floor(100.7) - 1 - 301 / 3
        self.assertEqual(self.calculator.realized_pnl(before, sell), Decimal('-1.33'))

    def test_requires_sell(self):
        before = Position("AAPL", Decimal('10'), Decimal('1000'), Decimal('30000'))
        buy = transaction(BUY, "AAPL", 1, 100, date(2024, 1, 1))
        with self.assertRaises(ValueError):
            self.calculator.realized_pnl(before, buy)


class TestUnrealizedPnl(unittest.TestCase):

    def setUp(self):
        self.calculator = PositionCalculator()

    def test_mark_to_market(self):
        position = Position("AAPL", Decimal('20'), Decimal('2200'), Decimal('67200'))
        pnl = self.calculator.unrealized_pnl(position, Decimal('200'), Decimal('32'))
        self.assertEqual(pnl.current_value_home, Decimal('128000'))
        self.assertEqual(pnl.amount, Decimal('60800'))
        self.assertEqual(pnl.percentage, Decimal('90.4762'))

    def test_zero_cost_percentage_is_zero(self):
        adjustment = transaction(TransactionType.ADJUSTMENT, "AAPL", 10, 0, date(2024, 1, 1))
        position = self.calculator.position("AAPL", [adjustment])
        pnl = self.calculator.unrealized_pnl(position, Decimal('10'), Decimal('1'))
        self.assertEqual(pnl.amount, Decimal('100'))
        self.assertEqual(pnl.percentage, Decimal('0'))

    def test_closed_position(self):
        pnl = self.calculator.unrealized_pnl(Position("AAPL"), Decimal('10'), Decimal('1'))
        self.assertEqual(pnl.amount, Decimal('0'))


class TestSplits(unittest.TestCase):

    def setUp(self):
        self.calculator = PositionCalculator()

    def test_split_transaction_multiplies_shares(self):
        transactions = [
            transaction(BUY, "AAPL", 10, 100, date(2024, 1, 1), rate='30', sequence=1),
            transaction(TransactionType.SPLIT, "AAPL", 2, 0, date(2024, 2, 1), sequence=2),
        ]
        position = self.calculator.position("AAPL", transactions)
        self.assertEqual(position.total_shares, Decimal('20'))
        self.assertEqual(position.total_cost_home, Decimal('30000'))
        self.assertEqual(position.average_cost_home, Decimal('1500'))

    def test_recorded_split_restates_earlier_shares(self):
        transactions = [
            transaction(BUY, "AAPL", 10, 100, date(2024, 1, 1), sequence=1),
            transaction(SELL, "AAPL", 20, 30, date(2024, 7, 1), sequence=2),
        ]
        splits = [StockSplit("AAPL", date(2024, 6, 10), Decimal('4'))]
        position = self.calculator.position("AAPL", transactions, splits)
        self.assertEqual(position.total_shares, Decimal('20'))
        self.assertEqual(position.total_cost_source, Decimal('500'))

    def test_split_of_other_symbol_ignored(self):
        transactions = [transaction(BUY, "AAPL", 10, 100, date(2024, 1, 1))]
        splits = [StockSplit("MSFT", date(2024, 6, 10), Decimal('4'))]
        position = self.calculator.position("AAPL", transactions, splits)
        self.assertEqual(position.total_shares, Decimal('10'))


if __name__ == '__main__':
    unittest.main()

"""
Unit tests for financial calculations module.

Tests cover precision, edge cases, and various input types to ensure
accurate financial calculations using Decimal arithmetic.
"""

import unittest
from decimal import Decimal
import sys
from pathlib import Path

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from financial.calculations import (
    to_decimal,
    optional_decimal,
    money_to_decimal,
    round_money,
    round_rate,
    round_shares,
    floor_to_units,
    calculate_percentage,
    calculate_weighted_average,
    validate_no_float_usage,
)


class TestToDecimal(unittest.TestCase):
    """Test to_decimal and optional_decimal."""

    def test_float_goes_through_str(self):
        self.assertEqual(to_decimal(0.1), Decimal('0.1'))
        self.assertEqual(to_decimal(31.5), Decimal('31.5'))

    def test_string_and_int(self):
        self.assertEqual(to_decimal(" 42.50 "), Decimal('42.50'))
        self.assertEqual(to_decimal(7), Decimal('7'))

    def test_decimal_passthrough(self):
        value = Decimal('1.23456789')
        self.assertIs(to_decimal(value), value)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            to_decimal(None)
        with self.assertRaises(ValueError):
            to_decimal("abc")

    def test_optional(self):
        self.assertIsNone(optional_decimal(None))
        self.assertIsNone(optional_decimal("  "))
        self.assertEqual(optional_decimal("3"), Decimal('3'))


class TestRounding(unittest.TestCase):
    """Test precision helpers."""

    def test_money_rounds_half_up(self):
        self.assertEqual(money_to_decimal(10.99), Decimal('10.99'))
        self.assertEqual(money_to_decimal("15.555"), Decimal('15.56'))
        self.assertEqual(round_money(Decimal('-2.345')), Decimal('-2.35'))
        self.assertEqual(str(round_money(100)), '100.00')

    def test_rate_six_places(self):
        self.assertEqual(round_rate(Decimal('7725') / Decimal('250')), Decimal('30.900000'))
        self.assertEqual(str(round_rate(Decimal('12450') / Decimal('400'))), '31.125000')
        self.assertEqual(round_rate(Decimal('1') / Decimal('3')), Decimal('0.333333'))

    def test_share_places(self):
        self.assertEqual(round_shares(Decimal('1.23456')), Decimal('1.2346'))

    def test_floor_to_units(self):
        self.assertEqual(floor_to_units(Decimal('1234.99')), Decimal('1234'))
        self.assertEqual(floor_to_units(Decimal('-0.5')), Decimal('-1'))


class TestCalculatePercentage(unittest.TestCase):

    def test_basic(self):
        self.assertEqual(calculate_percentage(Decimal('150'), Decimal('1000')), Decimal('15.0000'))

    def test_negative(self):
        self.assertEqual(calculate_percentage(Decimal('-1'), Decimal('3')), Decimal('-33.3333'))

    def test_zero_base(self):
        self.assertEqual(calculate_percentage(Decimal('10'), Decimal('0')), Decimal('0'))


class TestWeightedAverage(unittest.TestCase):

    def test_basic_calculation(self):
        result = calculate_weighted_average([Decimal('31.0'), Decimal('32.0')], [Decimal('100'), Decimal('100')])
        self.assertEqual(result, Decimal('31.5'))

    def test_unequal_weights(self):
        result = calculate_weighted_average([Decimal('31.0'), Decimal('30.5')], [Decimal('200'), Decimal('50')])
        self.assertEqual(result, Decimal('30.9'))

    def test_length_mismatch(self):
        with self.assertRaises(ValueError):
            calculate_weighted_average([Decimal('1')], [])

    def test_zero_weight(self):
        with self.assertRaises(ZeroDivisionError):
            calculate_weighted_average([Decimal('1')], [Decimal('0')])

    def test_float_rejected(self):
        with self.assertRaises(ValueError):
            calculate_weighted_average([31.0], [Decimal('1')])


class TestValidateNoFloatUsage(unittest.TestCase):

    def test_accepts_decimals_and_strings(self):
        validate_no_float_usage(Decimal('1'), "2", [Decimal('3')])

    def test_rejects_nested_float(self):
        with self.assertRaises(ValueError) as ctx:
            validate_no_float_usage([Decimal('1'), 2.5], function_name="blend")
        self.assertIn("blend", str(ctx.exception))


if __name__ == '__main__':
    unittest.main()

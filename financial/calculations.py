"""
Financial calculations module with precise Decimal arithmetic.

This module provides the shared rounding and arithmetic helpers used by the
ledger, position and return calculators. Money is always handled as Decimal;
floats are only accepted at the edges and converted through ``str`` so that
binary representation errors never reach a cost basis.
"""

from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Union, List, Optional

from config.constants import (
    MONEY_PLACES,
    RATE_PLACES,
    SHARE_PLACES,
    FOREIGN_AMOUNT_PLACES,
    PERCENT_PLACES,
)

# Type alias for numeric inputs that will be converted to Decimal
NumericInput = Union[float, int, str, Decimal]

# Type alias for validated financial values (should always be Decimal)
FinancialDecimal = Decimal

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')


def validate_no_float_usage(*args, function_name: str = "financial_function") -> None:
    """Validate that no float values are being passed to financial functions.

    Args:
        *args: Arguments to validate
        function_name: Name of the function for error messages

    Raises:
        ValueError: If any argument is a float
    """
    for i, arg in enumerate(args):
        if isinstance(arg, float):
            raise ValueError(
                f"Float usage detected in {function_name} (argument {i}): {arg}. "
                f"Use Decimal instead to avoid precision issues."
            )
        elif hasattr(arg, '__iter__') and not isinstance(arg, (str, bytes)):
            for j, item in enumerate(arg):
                if isinstance(item, float):
                    raise ValueError(
                        f"Float usage detected in {function_name} (argument {i}[{j}]): {item}. "
                        f"Use Decimal instead to avoid precision issues."
                    )


def to_decimal(value: NumericInput) -> FinancialDecimal:
    """
    Convert a numeric value to Decimal without rounding.

    Args:
        value: The value to convert (float, int, str, or Decimal)

    Returns:
        Decimal: The exact Decimal value (floats go through ``str``)

    Raises:
        ValueError: If the value is None or cannot be parsed

    Examples:
        >>> to_decimal("31.5")
        Decimal('31.5')
        >>> to_decimal(0.1)
        Decimal('0.1')
    """
    if value is None:
        raise ValueError("Cannot convert None to Decimal")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except ArithmeticError as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e


def optional_decimal(value: Optional[NumericInput]) -> Optional[FinancialDecimal]:
    """Convert to Decimal, passing None (and blank strings) through."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return to_decimal(value)


def quantize_places(value: NumericInput, places: int) -> FinancialDecimal:
    """
    Round a value half-up to a fixed number of fractional digits.

    Args:
        value: The value to round
        places: Number of fractional digits to keep

    Returns:
        Decimal: The rounded value

    Examples:
        >>> quantize_places(Decimal('30.9000004'), 6)
        Decimal('30.900000')
    """
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def money_to_decimal(value: NumericInput) -> FinancialDecimal:
    """
    Convert monetary values to Decimal for precise calculations.

    Args:
        value: The monetary value to convert (float, int, str, or Decimal)

    Returns:
        Decimal: The value as a Decimal rounded to 2 decimal places

    Examples:
        >>> money_to_decimal(10.99)
        Decimal('10.99')
        >>> money_to_decimal("15.555")
        Decimal('15.56')
    """
    return quantize_places(value, MONEY_PLACES)


def round_money(value: NumericInput) -> FinancialDecimal:
    """Round a home or source currency amount to 2 decimal places."""
    return quantize_places(value, MONEY_PLACES)


def round_rate(value: NumericInput) -> FinancialDecimal:
    """
    Round an exchange rate or return rate to 6 decimal places.

    Examples:
        >>> round_rate(Decimal('7725') / Decimal('250'))
        Decimal('30.900000')
    """
    return quantize_places(value, RATE_PLACES)


def round_shares(value: NumericInput) -> FinancialDecimal:
    return quantize_places(value, SHARE_PLACES)


def round_foreign_amount(value: NumericInput) -> FinancialDecimal:
    return quantize_places(value, FOREIGN_AMOUNT_PLACES)


def floor_to_units(value: NumericInput) -> FinancialDecimal:
    """
    Truncate a value down to whole currency units.

    Used for markets that drop fractional currency from a trade subtotal
    before fees are applied.

    Examples:
        >>> floor_to_units(Decimal('1234.99'))
        Decimal('1234')
    """
    return to_decimal(value).to_integral_value(rounding=ROUND_FLOOR)


def calculate_percentage(amount: NumericInput, base: NumericInput) -> FinancialDecimal:
    """
    Express ``amount`` as a percentage of ``base``.

    Args:
        amount: The numerator (e.g. an unrealized P&L)
        base: The denominator (e.g. the cost basis)

    Returns:
        Decimal: ``amount / base * 100`` rounded to 4 places, or 0 when the
        base is zero

    Examples:
        >>> calculate_percentage(Decimal('150'), Decimal('1000'))
        Decimal('15.0000')
        >>> calculate_percentage(Decimal('10'), Decimal('0'))
        Decimal('0')
    """
    base_dec = to_decimal(base)
    if base_dec == 0:
        return ZERO
    return quantize_places(to_decimal(amount) / base_dec * HUNDRED, PERCENT_PLACES)


def calculate_weighted_average(values: List[NumericInput], weights: List[NumericInput]) -> FinancialDecimal:
    """
    Calculate a weighted average given values and weights, without rounding.

    Args:
        values: List of values (prices, unit costs, rates)
        weights: List of corresponding weights (quantities)

    Returns:
        Decimal: ``sum(value * weight) / sum(weight)``

    Raises:
        ValueError: If values and weights lists have different lengths
        ZeroDivisionError: If total weight is zero

    Examples:
        >>> calculate_weighted_average([Decimal('31.0'), Decimal('32.0')], [Decimal('100'), Decimal('100')])
        Decimal('31.5')
    """
    if len(values) != len(weights):
        raise ValueError("Values and weights lists must have the same length")

    validate_no_float_usage(values, weights, function_name="calculate_weighted_average")

    total_value = ZERO
    total_weight = ZERO

    for value, weight in zip(values, weights):
        weight_dec = to_decimal(weight)
        total_value += to_decimal(value) * weight_dec
        total_weight += weight_dec

    if total_weight == 0:
        raise ZeroDivisionError("Total weight cannot be zero")

    return total_value / total_weight

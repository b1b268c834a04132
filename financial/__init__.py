"""
Financial calculations and utilities for the ledger engine.

This package provides precise Decimal arithmetic helpers, the currency ledger
cost engine, balance resolution, and return calculations. The calculator
modules depend on the data models and are imported from their own modules
(``financial.currency_ledger``, ``financial.balance_resolver``,
``financial.return_calculator``, ``financial.cash_flow_strategy``).
"""

from .calculations import (
    to_decimal,
    optional_decimal,
    quantize_places,
    money_to_decimal,
    round_money,
    round_rate,
    round_shares,
    round_foreign_amount,
    floor_to_units,
    calculate_percentage,
    calculate_weighted_average,
    validate_no_float_usage,
)

from .errors import (
    CostBasisError,
    RateUnavailableError,
    InsufficientBalanceError,
    InvalidSellQuantityError,
    TransactionValidationError,
    ResultStatus,
    ReturnResult,
)

__all__ = [
    # Calculations
    'to_decimal',
    'optional_decimal',
    'quantize_places',
    'money_to_decimal',
    'round_money',
    'round_rate',
    'round_shares',
    'round_foreign_amount',
    'floor_to_units',
    'calculate_percentage',
    'calculate_weighted_average',
    'validate_no_float_usage',

    # Errors and typed results
    'CostBasisError',
    'RateUnavailableError',
    'InsufficientBalanceError',
    'InvalidSellQuantityError',
    'TransactionValidationError',
    'ResultStatus',
    'ReturnResult',
]

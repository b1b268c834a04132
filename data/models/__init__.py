"""Data models for the ledger engine.

This module contains the core data structures: currency ledger events, stock
transactions and splits, derived positions and LIFO layers, and the cash flow
and valuation inputs of the return calculators.
"""

from .currency_event import CurrencyLedgerEvent, CurrencyEventCategory, CategoryKind, category_kind
from .stock_transaction import StockTransaction, TransactionType, StockMarket
from .stock_split import StockSplit
from .position import Position, UnrealizedPnl
from .lifo_layer import LifoLayer, LayerConsumption, LayerStack
from .cash_flow import CashFlowEvent, ValuationPoint, ValuationSnapshot

__all__ = [
    'CurrencyLedgerEvent', 'CurrencyEventCategory', 'CategoryKind', 'category_kind',
    'StockTransaction', 'TransactionType', 'StockMarket',
    'StockSplit',
    'Position', 'UnrealizedPnl',
    'LifoLayer', 'LayerConsumption', 'LayerStack',
    'CashFlowEvent', 'ValuationPoint', 'ValuationSnapshot',
]

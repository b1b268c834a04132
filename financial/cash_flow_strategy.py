"""
Cash flow extraction strategies for return calculations.

A portfolio's external cash flows depend on how it is funded. A portfolio
without a bound currency ledger treats every buy as capital in and every sell
as capital out. A ledger-bound portfolio only counts money crossing the
ledger's boundary; stock purchases and sales inside the ledger are internal
transfers.

All strategies yield flows in portfolio sign (capital in positive).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, List, Optional

from config.constants import DEFAULT_HOME_CURRENCY
from data.models.cash_flow import CashFlowEvent
from data.models.currency_event import CurrencyLedgerEvent, CurrencyEventCategory
from data.models.stock_transaction import StockTransaction, TransactionType

logger = logging.getLogger(__name__)

EXTERNAL_CATEGORIES = frozenset({
    CurrencyEventCategory.INITIAL_BALANCE,
    CurrencyEventCategory.DEPOSIT,
    CurrencyEventCategory.WITHDRAW,
    CurrencyEventCategory.OTHER_INCOME,
    CurrencyEventCategory.OTHER_EXPENSE,
})

# Exchanges only move money across the boundary on foreign ledgers
EXCHANGE_CATEGORIES = frozenset({
    CurrencyEventCategory.EXCHANGE_BUY,
    CurrencyEventCategory.EXCHANGE_SELL,
})


def _in_range(value: date, start_date: Optional[date], end_date: Optional[date]) -> bool:
    if start_date is not None and value < start_date:
        return False
    if end_date is not None and value > end_date:
        return False
    return True


class CashFlowStrategy(ABC):
    """Interface for deriving external cash flows from a portfolio's records."""

    @abstractmethod
    def get_cash_flows(self, records: Iterable, start_date: Optional[date] = None,
                       end_date: Optional[date] = None) -> List[CashFlowEvent]:
        """Extract external cash flows within an optional date range.

        Args:
            records: Stock transactions or ledger events, depending on the strategy
            start_date: Optional inclusive start
            end_date: Optional inclusive end

        Returns:
            Cash flows in portfolio sign, ordered by date
        """
        pass


class StockTransactionCashFlowStrategy(CashFlowStrategy):
    """Buys bring capital in; sells take net proceeds out."""

    def get_cash_flows(self, records: Iterable[StockTransaction], start_date: Optional[date] = None,
                       end_date: Optional[date] = None) -> List[CashFlowEvent]:
        flows = []
        for tx in records:
            if tx.is_deleted or not _in_range(tx.transaction_date, start_date, end_date):
                continue
            if tx.transaction_type is TransactionType.BUY:
                flows.append(CashFlowEvent(date=tx.transaction_date, amount=tx.total_cost_source))
            elif tx.transaction_type is TransactionType.SELL:
                flows.append(CashFlowEvent(date=tx.transaction_date, amount=-tx.net_proceeds_source))
        return sorted(flows, key=lambda f: f.date)


class CurrencyLedgerCashFlowStrategy(CashFlowStrategy):
    """Counts only money entering or leaving a bound currency ledger.

    Stock-linked events are internal, except synthesized top-ups, which
    bring new money into the ledger and count as deposits.
    """

    def __init__(self, ledger_currency: str, home_currency: str = DEFAULT_HOME_CURRENCY):
        self.ledger_currency = ledger_currency.upper()
        self.home_currency = home_currency.upper()

    @property
    def is_home_ledger(self) -> bool:
        return self.ledger_currency == self.home_currency

    def is_external(self, event: CurrencyLedgerEvent) -> bool:
        if event.is_top_up:
            return True
        if event.related_transaction_id is not None:
            return False
        if event.category in EXTERNAL_CATEGORIES:
            return True
        return event.category in EXCHANGE_CATEGORIES and not self.is_home_ledger

    def get_cash_flows(self, records: Iterable[CurrencyLedgerEvent], start_date: Optional[date] = None,
                       end_date: Optional[date] = None) -> List[CashFlowEvent]:
        flows = []
        for event in records:
            if event.is_deleted or not _in_range(event.event_date, start_date, end_date):
                continue
            if self.is_external(event):
                flows.append(CashFlowEvent(date=event.event_date, amount=event.amount))
        logger.debug(f"Extracted {len(flows)} external flows from {self.ledger_currency} ledger")
        return sorted(flows, key=lambda f: f.date)


def select_strategy(has_bound_ledger: bool, ledger_currency: Optional[str] = None,
                    home_currency: str = DEFAULT_HOME_CURRENCY) -> CashFlowStrategy:
    """Pick the cash flow strategy for a portfolio.

    Args:
        has_bound_ledger: Whether the portfolio is funded from a currency ledger
        ledger_currency: Currency of the bound ledger
        home_currency: Investor's home currency

    Returns:
        The matching strategy

    Raises:
        ValueError: If a bound ledger is declared without its currency
    """
    if has_bound_ledger:
        if not ledger_currency:
            raise ValueError("A ledger-bound portfolio needs its ledger currency")
        return CurrencyLedgerCashFlowStrategy(ledger_currency, home_currency)
    return StockTransactionCashFlowStrategy()

"""Portfolio performance reporting.

This module provides the PerformanceService, which reads a portfolio's
history from the repository and reports positions, realized and unrealized
P&L and investor returns (XIRR, Modified Dietz, time-weighted).

Return calculations work in the portfolio's trading currency. A portfolio
bound to a currency ledger measures flows across the ledger boundary and
includes the ledger balance in its value.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pandas as pd

from config.settings import Settings, get_settings
from data.models.cash_flow import CashFlowEvent, ValuationPoint
from data.models.position import Position, UnrealizedPnl
from data.models.stock_transaction import StockTransaction, TransactionType
from data.repositories.base_repository import BaseRepository
from financial.calculations import ZERO, NumericInput, to_decimal, round_money
from financial.cash_flow_strategy import select_strategy
from financial.currency_ledger import CurrencyLedgerCostEngine
from financial.errors import RateUnavailableError, ReturnResult
from financial.return_calculator import ReturnCalculator
from market_data.rate_provider import RateProvider
from utils.ticker_utils import get_ticker_currency
from .position_calculator import PositionCalculator

logger = logging.getLogger(__name__)

POSITION_COLUMNS = [
    'ticker', 'currency', 'shares', 'average_cost_source', 'average_cost_home',
    'total_cost_home', 'current_price', 'market_value_home', 'unrealized_pnl', 'unrealized_pct',
]


class PerformanceService:
    """Computes positions, P&L and returns for stored portfolios.

    Args:
        repository: Storage backend
        settings: Settings (defaults to the global settings)
        rate_provider: Source of current prices and rates; required for
            anything that marks positions to market
    """

    def __init__(self, repository: BaseRepository, settings: Optional[Settings] = None,
                 rate_provider: Optional[RateProvider] = None):
        self.repository = repository
        self.settings = settings or get_settings()
        self.rate_provider = rate_provider
        self.position_calculator = PositionCalculator()
        self.return_calculator = ReturnCalculator.from_settings(self.settings)
        self.ledger_engine = CurrencyLedgerCostEngine()

    @property
    def home_currency(self) -> str:
        return self.settings.get_home_currency()

    # ------------------------------------------------------------------
    # Positions and P&L
    # ------------------------------------------------------------------

    def compute_position(self, portfolio_id: str, ticker: str, as_of: Optional[date] = None) -> Position:
        transactions = self.repository.get_transactions(portfolio_id, ticker)
        return self.position_calculator.position(ticker, transactions, self.repository.get_splits(ticker), as_of)

    def compute_realized_pnl(self, portfolio_id: str, ticker: Optional[str] = None,
                             start_date: Optional[date] = None, end_date: Optional[date] = None) -> Decimal:
        """Sum of the realized P&L booked on sells.

        Uses the values recorded when each sell was created.
        """
        total = ZERO
        for tx in self.repository.get_transactions(portfolio_id, ticker):
            if tx.transaction_type is not TransactionType.SELL or tx.realized_pnl_home is None:
                continue
            if start_date is not None and tx.transaction_date < start_date:
                continue
            if end_date is not None and tx.transaction_date > end_date:
                continue
            total += tx.realized_pnl_home
        return round_money(total)

    def compute_unrealized_pnl(self, portfolio_id: str, ticker: str, as_of: date,
                               current_price: Optional[NumericInput] = None,
                               current_rate: Optional[NumericInput] = None) -> UnrealizedPnl:
        """Mark a position to market.

        Missing price or rate is looked up from the rate provider.

        Raises:
            RateUnavailableError: If a price or rate cannot be found
        """
        position = self.compute_position(portfolio_id, ticker, as_of)
        if position.is_closed:
            return self.position_calculator.unrealized_pnl(position, ZERO, ZERO)
        price = to_decimal(current_price) if current_price is not None else self._price(ticker, as_of)
        rate = to_decimal(current_rate) if current_rate is not None else self._rate(ticker, as_of)
        return self.position_calculator.unrealized_pnl(position, price, rate)

    def _price(self, ticker: str, as_of: date) -> Decimal:
        price = self.rate_provider.get_price(ticker, as_of) if self.rate_provider else None
        if price is None:
            raise RateUnavailableError(f"No price for {ticker} on {as_of}")
        return price

    def _rate(self, ticker: str, as_of: date) -> Decimal:
        currency = get_ticker_currency(ticker)
        if currency == self.home_currency:
            return Decimal('1')
        rate = self.rate_provider.get_exchange_rate(currency, self.home_currency, as_of) if self.rate_provider else None
        if rate is None:
            raise RateUnavailableError(f"No {currency}/{self.home_currency} rate for {as_of}")
        return rate

    def positions_frame(self, portfolio_id: str, as_of: Optional[date] = None,
                        include_closed: bool = False) -> pd.DataFrame:
        """Summarize all positions of a portfolio as a DataFrame.

        Market columns are left empty when no price or rate is available.
        """
        transactions = self.repository.get_transactions(portfolio_id)
        positions = self.position_calculator.recalculate_all_positions(
            [t for t in transactions if as_of is None or t.transaction_date <= as_of],
            self.repository.get_splits(),
        )

        rows = []
        for ticker, position in positions.items():
            if position.is_closed and not include_closed:
                continue
            row = {
                'ticker': ticker,
                'currency': get_ticker_currency(ticker),
                'shares': position.total_shares,
                'average_cost_source': position.average_cost_source,
                'average_cost_home': position.average_cost_home,
                'total_cost_home': round_money(position.total_cost_home),
                'current_price': None,
                'market_value_home': None,
                'unrealized_pnl': None,
                'unrealized_pct': None,
            }
            if as_of is not None and self.rate_provider is not None and not position.is_closed:
                try:
                    pnl = self.position_calculator.unrealized_pnl(
                        position, self._price(ticker, as_of), self._rate(ticker, as_of)
                    )
                except RateUnavailableError as e:
                    logger.warning(f"Cannot value {ticker}: {e}")
                else:
                    row['current_price'] = self.rate_provider.get_price(ticker, as_of)
                    row['market_value_home'] = round_money(pnl.current_value_home)
                    row['unrealized_pnl'] = round_money(pnl.amount)
                    row['unrealized_pct'] = pnl.percentage
            rows.append(row)

        return pd.DataFrame(rows, columns=POSITION_COLUMNS)

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    def _transactions(self, portfolio_id: str, ticker: Optional[str]) -> List[StockTransaction]:
        return self.repository.get_transactions(portfolio_id, ticker)

    def portfolio_cash_flows(self, portfolio_id: str, ticker: Optional[str] = None,
                             ledger_id: Optional[str] = None, start_date: Optional[date] = None,
                             end_date: Optional[date] = None) -> List[CashFlowEvent]:
        """External cash flows in portfolio sign (capital in positive).

        A single-ticker view always uses the ticker's buys and sells.
        """
        bound = ledger_id is not None and ticker is None
        if bound:
            strategy = select_strategy(True, self.repository.get_ledger_currency(ledger_id), self.home_currency)
            return strategy.get_cash_flows(self.repository.get_ledger_events(ledger_id), start_date, end_date)
        strategy = select_strategy(False)
        return strategy.get_cash_flows(self._transactions(portfolio_id, ticker), start_date, end_date)

    def market_value(self, portfolio_id: str, as_of: date, ticker: Optional[str] = None,
                     ledger_id: Optional[str] = None) -> Decimal:
        """Value of holdings in the trading currency, plus the ledger balance when bound.

        Raises:
            RateUnavailableError: If a held ticker has no price
        """
        transactions = self._transactions(portfolio_id, ticker)
        positions = self.position_calculator.recalculate_all_positions(
            [t for t in transactions if t.transaction_date <= as_of], self.repository.get_splits()
        )
        value = ZERO
        for symbol, position in positions.items():
            if position.is_closed:
                continue
            value += position.total_shares * self._price(symbol, as_of)
        if ledger_id is not None and ticker is None:
            value += self.ledger_engine.balance(
                [e for e in self.repository.get_ledger_events(ledger_id) if e.event_date <= as_of]
            )
        return value

    def _single_currency(self, portfolio_id: str, ticker: Optional[str]) -> bool:
        currencies = {get_ticker_currency(t.ticker) for t in self._transactions(portfolio_id, ticker)}
        return len(currencies) <= 1

    def compute_xirr(self, portfolio_id: str, as_of: date, ticker: Optional[str] = None,
                     ledger_id: Optional[str] = None,
                     final_value: Optional[NumericInput] = None) -> ReturnResult:
        """Annualized money-weighted return up to ``as_of``.

        Args:
            portfolio_id: Portfolio identifier
            as_of: Valuation date
            ticker: Restrict to one ticker
            ledger_id: Bound currency ledger, if any
            final_value: Value on ``as_of``; computed from current prices when omitted

        Returns:
            ReturnResult
        """
        if ticker is None and ledger_id is None and not self._single_currency(portfolio_id, ticker):
            return ReturnResult.not_computable("Portfolio trades in more than one currency")

        flows = self.portfolio_cash_flows(portfolio_id, ticker, ledger_id, end_date=as_of)
        try:
            value = to_decimal(final_value) if final_value is not None else \
                self.market_value(portfolio_id, as_of, ticker, ledger_id)
        except RateUnavailableError as e:
            logger.warning(f"XIRR not computable for {portfolio_id}: {e}")
            return ReturnResult.not_computable(str(e))

        # Investor sign: contributions negative
        investor_flows = [CashFlowEvent(date=f.date, amount=-f.amount) for f in flows]
        result = self.return_calculator.xirr(investor_flows, value, as_of)
        logger.info(f"XIRR for {portfolio_id}{'/' + ticker if ticker else ''}: {result.display()}")
        return result

    def compute_modified_dietz(self, portfolio_id: str, start_date: date, end_date: date,
                               start_value: Optional[NumericInput] = None,
                               end_value: Optional[NumericInput] = None,
                               ticker: Optional[str] = None,
                               ledger_id: Optional[str] = None) -> ReturnResult:
        """Modified Dietz return over ``[start_date, end_date]``.

        Flows on ``start_date`` are treated as part of the opening value.
        Values default to market values computed from current prices.
        """
        try:
            start = to_decimal(start_value) if start_value is not None else \
                self.market_value(portfolio_id, start_date, ticker, ledger_id)
            end = to_decimal(end_value) if end_value is not None else \
                self.market_value(portfolio_id, end_date, ticker, ledger_id)
        except RateUnavailableError as e:
            return ReturnResult.not_computable(str(e))

        flows = [
            f for f in self.portfolio_cash_flows(portfolio_id, ticker, ledger_id, start_date, end_date)
            if f.date > start_date
        ]
        return self.return_calculator.modified_dietz(start, end, flows, start_date, end_date)

    def compute_time_weighted_return(self, portfolio_id: str, valuation_points: Iterable[ValuationPoint],
                                     ticker: Optional[str] = None,
                                     ledger_id: Optional[str] = None) -> ReturnResult:
        """Time-weighted return across the supplied valuation points.

        Only flows inside the valuation range are considered.
        """
        points = sorted(valuation_points, key=lambda p: p.date)
        if len(points) < 2:
            return ReturnResult.not_computable("Time-weighted return needs at least two valuation points")
        flows = self.portfolio_cash_flows(portfolio_id, ticker, ledger_id, points[0].date, points[-1].date)
        return self.return_calculator.time_weighted_return(points, flows)

    def returns_summary(self, portfolio_id: str, start_date: date, end_date: date,
                        ledger_id: Optional[str] = None) -> Dict[str, ReturnResult]:
        """XIRR and Modified Dietz for a period, keyed by method name."""
        return {
            'xirr': self.compute_xirr(portfolio_id, end_date, ledger_id=ledger_id),
            'modified_dietz': self.compute_modified_dietz(portfolio_id, start_date, end_date, ledger_id=ledger_id),
        }

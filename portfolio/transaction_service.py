"""Stock transaction orchestration.

This module wires the pricing core to storage and market data: it validates a
requested trade, prices ledger-funded purchases from the ledger's history,
resolves shortfalls, books realized P&L on sells and writes the trade
together with its ledger events in one unit of work.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from config.constants import MAX_NOTES_LENGTH, MAX_TICKER_LENGTH, HOME_CURRENCY_RATE
from config.settings import Settings, get_settings
from data.models.currency_event import CurrencyLedgerEvent, CurrencyEventCategory
from data.models.lifo_layer import LayerConsumption
from data.models.stock_transaction import StockTransaction, StockMarket, TransactionType
from data.repositories.base_repository import BaseRepository, UnitOfWork
from financial.balance_resolver import (
    BalanceAction,
    BalanceActionResolver,
    PricingSource,
    ResolutionStatus,
    ResolvedPurchase,
)
from financial.calculations import NumericInput, to_decimal, optional_decimal, round_money
from financial.currency_ledger import CurrencyLedgerCostEngine
from financial.errors import (
    InsufficientBalanceError,
    RateUnavailableError,
    TransactionValidationError,
)
from market_data.rate_provider import RateProvider
from utils.ticker_utils import normalize_ticker, get_ticker_currency
from utils.timezone_utils import parse_date, is_future_date, today_in_home_timezone
from .position_calculator import PositionCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchasePricing:
    """Exchange rate for a foreign purchase and how it was obtained."""
    rate: Decimal
    source: PricingSource
    breakdown: List[LayerConsumption] = field(default_factory=list)


@dataclass
class TransactionRequest:
    """Input for recording a stock trade.

    ``exchange_rate`` is only honoured for trades not funded from a ledger;
    ledger-funded purchases are always priced from the ledger history.
    """
    portfolio_id: str
    transaction_date: Any
    ticker: str
    transaction_type: TransactionType
    shares: NumericInput
    price_per_share: NumericInput
    fees: NumericInput = Decimal('0')
    exchange_rate: Optional[NumericInput] = None
    currency_ledger_id: Optional[str] = None
    balance_action: Optional[BalanceAction] = None
    top_up_category: Optional[CurrencyEventCategory] = None
    market: Optional[StockMarket] = None
    notes: Optional[str] = None


class TransactionService:
    """Records stock trades against portfolios and currency ledgers.

    Args:
        repository: Storage backend
        rate_provider: Source of market exchange rates
        settings: Settings (defaults to the global settings)
    """

    def __init__(self, repository: BaseRepository, rate_provider: RateProvider,
                 settings: Optional[Settings] = None):
        self.repository = repository
        self.rate_provider = rate_provider
        self.settings = settings or get_settings()
        self.engine = CurrencyLedgerCostEngine()
        self.resolver = BalanceActionResolver(self.engine)
        self.position_calculator = PositionCalculator()

    @property
    def home_currency(self) -> str:
        return self.settings.get_home_currency()

    def _market_rate(self, currency: str, on_date: date) -> Optional[Decimal]:
        if currency.upper() == self.home_currency:
            return HOME_CURRENCY_RATE
        rate = self.rate_provider.get_exchange_rate(currency, self.home_currency, on_date)
        if rate is None:
            logger.warning(f"No market rate for {currency}/{self.home_currency} on {on_date}")
        return rate

    def _default_action(self) -> BalanceAction:
        return BalanceAction(self.settings.get_ledger_config().get('default_balance_action', 'reject'))

    def _default_top_up_category(self) -> CurrencyEventCategory:
        return CurrencyEventCategory(
            self.settings.get_ledger_config().get('default_top_up_category', 'exchange_buy')
        )

    def price_foreign_purchase(self, ledger_id: str, amount: NumericInput, on_date: date) -> PurchasePricing:
        """Exchange rate for spending ``amount`` of a ledger's currency.

        Units covered by the ledger's cost layers are priced LIFO. Any part
        the balance cannot cover is priced at the market rate and blended in.
        A ledger with no cost layers falls back to the market rate.

        Args:
            ledger_id: Ledger funding the purchase
            amount: Foreign amount to spend
            on_date: Purchase date

        Returns:
            PurchasePricing

        Raises:
            RateUnavailableError: If part of the amount needs a market rate and
                none is available
        """
        on_date = parse_date(on_date)
        events = self.repository.get_ledger_events(ledger_id)
        pricing = self.engine.rate_for_purchase(events, on_date, amount)

        if pricing.rate is not None and pricing.is_fully_covered:
            return PurchasePricing(pricing.rate, PricingSource.LIFO, list(pricing.breakdown))

        market = self._market_rate(self.repository.get_ledger_currency(ledger_id), on_date)
        if market is None:
            if pricing.rate is not None:
                message = (f"{pricing.uncovered_amount} of the purchase exceeds the balance of ledger "
                           f"{ledger_id} and there is no market rate for {on_date}")
            else:
                message = f"No cost layers on ledger {ledger_id} and no market rate for {on_date}"
            logger.warning(message)
            raise RateUnavailableError(message, ledger_id=ledger_id, amount=to_decimal(amount))

        if pricing.rate is None:
            return PurchasePricing(market, PricingSource.MARKET, list(pricing.breakdown))

        rate = self.engine.blended_rate(pricing.covered_from_layers, pricing.rate,
                                        pricing.uncovered_amount, market)
        return PurchasePricing(rate, PricingSource.BLENDED, list(pricing.breakdown))

    def resolve_insufficient_balance(self, ledger_id: str, required: NumericInput,
                                     action: Optional[BalanceAction] = None,
                                     top_up_category: Optional[CurrencyEventCategory] = None,
                                     on_date: Optional[date] = None,
                                     related_transaction_id: Optional[str] = None) -> ResolvedPurchase:
        """Decide and price a purchase against a ledger without writing anything.

        Returns:
            ResolvedPurchase; any top-up event it carries is not yet persisted
        """
        on_date = parse_date(on_date) if on_date is not None else self._today()
        events = self.repository.get_ledger_events(ledger_id)
        currency = self.repository.get_ledger_currency(ledger_id)
        return self.resolver.resolve(
            events,
            on_date,
            required,
            action or self._default_action(),
            market_rate=self._market_rate(currency, on_date),
            top_up_category=top_up_category or self._default_top_up_category(),
            related_transaction_id=related_transaction_id,
            ledger_id=ledger_id,
        )

    def create_stock_transaction(self, request: TransactionRequest) -> StockTransaction:
        """Validate, price and record a stock trade.

        Args:
            request: Trade to record

        Returns:
            The stored transaction

        Raises:
            TransactionValidationError: If the request is malformed
            InsufficientBalanceError: If a ledger-funded buy is short and the
                action is reject
            RateUnavailableError: If no exchange rate can be determined
            InvalidSellQuantityError: If a sell exceeds the holdings
            ConcurrencyConflictError: If the ledger changed while pricing
        """
        transaction = self._build_transaction(request)
        ledger_id = request.currency_ledger_id
        unit_of_work = UnitOfWork()

        if ledger_id:
            expected_version = self.repository.get_ledger_version(ledger_id)
            ledger_currency = self.repository.get_ledger_currency(ledger_id)
            trade_currency = get_ticker_currency(transaction.ticker, transaction.market)
            if ledger_currency != trade_currency:
                raise TransactionValidationError(
                    f"Ledger {ledger_id} holds {ledger_currency} but {transaction.ticker} trades in {trade_currency}"
                )
            unit_of_work.expected_ledger_versions[ledger_id] = expected_version

        if transaction.is_buy() and ledger_id:
            transaction, events = self._fund_purchase(transaction, request)
            unit_of_work.ledger_events.extend(events)
        elif transaction.transaction_type is not TransactionType.SPLIT and request.exchange_rate is None:
            transaction = transaction.with_changes(exchange_rate=self._trade_rate(transaction))

        if transaction.is_sell():
            existing = self.repository.get_transactions(transaction.portfolio_id, transaction.ticker)
            splits = self.repository.get_splits(transaction.ticker)
            before = self.position_calculator.validate_sell(transaction.ticker, existing, transaction, splits)
            # A back-dated sell must leave every later sell covered
            last_sequence = max((t.sequence for t in existing), default=0)
            self.position_calculator.position(
                transaction.ticker, existing + [replace(transaction, sequence=last_sequence + 1)], splits
            )
            realized = self.position_calculator.realized_pnl(before, transaction, splits)
            transaction = self._with_realized_pnl(transaction, realized)
            if ledger_id and transaction.net_proceeds_source > 0:
                unit_of_work.ledger_events.append(CurrencyLedgerEvent.create(
                    ledger_id=ledger_id,
                    event_date=transaction.transaction_date,
                    category=CurrencyEventCategory.STOCK_SELL,
                    amount=transaction.net_proceeds_source,
                    related_transaction_id=transaction.transaction_id,
                    notes=f"Sell {transaction.shares} {transaction.ticker}",
                ))

        unit_of_work.transactions.append(transaction)
        self.repository.commit(unit_of_work)
        logger.info(
            f"Recorded {transaction.transaction_type.value} {transaction.shares} {transaction.ticker} "
            f"@ {transaction.price_per_share} (rate {transaction.exchange_rate})"
        )
        return self.repository.get_transaction(transaction.transaction_id)

    def update_stock_transaction(self, transaction_id: str, **changes: Any) -> StockTransaction:
        """Edit a recorded trade.

        Only mutable fields can change. Realized P&L and the ledger events
        written at creation are left as recorded.

        Raises:
            ValueError: If a non-editable field is passed
            TransactionValidationError: If the edited values are invalid
            InvalidSellQuantityError: If the edit leaves a sell uncovered
        """
        current = self.repository.get_transaction(transaction_id)
        try:
            updated = current.with_changes(**changes)
        except (TypeError, ValueError) as e:
            raise TransactionValidationError(str(e)) from e
        self._validate_common(updated.transaction_date, updated.notes)

        others = [
            t for t in self.repository.get_transactions(updated.portfolio_id, updated.ticker)
            if t.transaction_id != transaction_id
        ]
        self.position_calculator.position(
            updated.ticker, others + [updated], self.repository.get_splits(updated.ticker)
        )

        self.repository.commit(UnitOfWork(transactions=[updated]))
        logger.info(f"Updated transaction {transaction_id}: {', '.join(sorted(changes))}")
        return self.repository.get_transaction(transaction_id)

    def _build_transaction(self, request: TransactionRequest) -> StockTransaction:
        try:
            ticker = normalize_ticker(request.ticker)
        except ValueError as e:
            raise TransactionValidationError(str(e)) from e
        if len(ticker) > MAX_TICKER_LENGTH:
            raise TransactionValidationError(f"Ticker too long: {ticker}")

        try:
            transaction_date = parse_date(request.transaction_date)
        except ValueError as e:
            raise TransactionValidationError(str(e)) from e
        self._validate_common(transaction_date, request.notes)

        exchange_rate = optional_decimal(request.exchange_rate)
        try:
            return StockTransaction(
                portfolio_id=request.portfolio_id,
                transaction_date=transaction_date,
                ticker=ticker,
                transaction_type=request.transaction_type,
                shares=to_decimal(request.shares),
                price_per_share=to_decimal(request.price_per_share),
                fees=to_decimal(request.fees),
                exchange_rate=exchange_rate if exchange_rate is not None else HOME_CURRENCY_RATE,
                market=request.market,
                currency_ledger_id=request.currency_ledger_id,
                notes=request.notes,
                transaction_id=str(uuid.uuid4()),
            )
        except (TypeError, ValueError) as e:
            raise TransactionValidationError(str(e)) from e

    def _validate_common(self, transaction_date: date, notes: Optional[str]) -> None:
        if is_future_date(transaction_date, today=self._today()):
            raise TransactionValidationError(f"Transaction date is in the future: {transaction_date}")
        if notes and len(notes) > MAX_NOTES_LENGTH:
            raise TransactionValidationError(f"Notes exceed {MAX_NOTES_LENGTH} characters")

    def _today(self) -> date:
        return today_in_home_timezone(self.settings.get_timezone_name())

    def _trade_rate(self, transaction: StockTransaction) -> Decimal:
        currency = get_ticker_currency(transaction.ticker, transaction.market)
        rate = self._market_rate(currency, transaction.transaction_date)
        if rate is None:
            raise RateUnavailableError(
                f"No {currency}/{self.home_currency} rate for {transaction.transaction_date}; "
                f"supply the exchange rate explicitly"
            )
        return rate

    def _fund_purchase(self, transaction: StockTransaction, request: TransactionRequest):
        ledger_id = request.currency_ledger_id
        currency = self.repository.get_ledger_currency(ledger_id)
        required = transaction.total_cost_source

        resolved = self.resolver.resolve(
            self.repository.get_ledger_events(ledger_id),
            transaction.transaction_date,
            required,
            request.balance_action or self._default_action(),
            market_rate=self._market_rate(currency, transaction.transaction_date),
            top_up_category=request.top_up_category or self._default_top_up_category(),
            related_transaction_id=transaction.transaction_id,
            ledger_id=ledger_id,
        )

        if resolved.status is ResolutionStatus.INSUFFICIENT_BALANCE:
            decision = resolved.decision
            raise InsufficientBalanceError(
                resolved.message,
                balance=decision.balance,
                required=decision.required,
                shortfall=decision.shortfall,
            )
        if resolved.status is ResolutionStatus.RATE_UNAVAILABLE:
            raise RateUnavailableError(resolved.message, ledger_id=ledger_id, amount=required)

        rate = resolved.final_rate
        if currency == self.home_currency:
            rate = HOME_CURRENCY_RATE
        priced = transaction.with_changes(exchange_rate=rate)

        events = []
        if resolved.top_up_event is not None:
            events.append(resolved.top_up_event)
        events.append(CurrencyLedgerEvent.create(
            ledger_id=ledger_id,
            event_date=priced.transaction_date,
            category=CurrencyEventCategory.STOCK_BUY,
            amount=required,
            exchange_rate=rate,
            home_amount=round_money(required * rate),
            related_transaction_id=priced.transaction_id,
            notes=f"Buy {priced.shares} {priced.ticker}",
        ))

        logger.info(
            f"Priced {required} {currency} on ledger {ledger_id} at {rate} "
            f"({resolved.source.value}, balance after {resolved.resulting_balance})"
        )
        return priced, events

    def _with_realized_pnl(self, transaction: StockTransaction, realized: Decimal) -> StockTransaction:
        return replace(transaction, realized_pnl_home=realized)

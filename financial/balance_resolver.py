"""
Balance action resolution for ledger-funded purchases.

When a purchase needs more foreign currency than a ledger holds, the investor
chooses what happens: reject the purchase, fund the gap on margin (the ledger
goes negative) or top the ledger up with a synthesized inflow first. The
resolver decides the outcome and prices the purchase; it never writes
anything. Committing the top-up event together with the purchase is the
orchestrator's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional

from config.constants import TOP_UP_NOTE_PREFIX
from data.models.currency_event import (
    CurrencyLedgerEvent,
    CurrencyEventCategory,
    CategoryKind,
    CATEGORY_KINDS,
)
from .calculations import ZERO, NumericInput, to_decimal, round_money, round_rate
from .currency_ledger import CurrencyLedgerCostEngine, LifoPricing, active_events

logger = logging.getLogger(__name__)


class BalanceAction(Enum):
    """What to do when a purchase exceeds the ledger balance."""
    REJECT = "reject"
    MARGIN = "margin"
    TOP_UP = "top_up"


class BalanceOutcome(Enum):
    PROCEED = "proceed"
    REJECT = "reject"
    MARGIN = "margin"
    TOP_UP = "top_up"


class ResolutionStatus(Enum):
    PRICED = "priced"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    RATE_UNAVAILABLE = "rate_unavailable"


class PricingSource(Enum):
    LIFO = "lifo"
    MARKET = "market"
    BLENDED = "blended"


@dataclass(frozen=True)
class BalanceDecision:
    balance: Decimal
    required: Decimal
    shortfall: Decimal
    outcome: BalanceOutcome


@dataclass(frozen=True)
class ResolvedPurchase:
    """Priced (or refused) purchase against a ledger.

    ``top_up_event`` is set only for TOP_UP outcomes and has not been
    persisted yet.
    """
    status: ResolutionStatus
    decision: BalanceDecision
    final_rate: Optional[Decimal] = None
    source: Optional[PricingSource] = None
    pricing: Optional[LifoPricing] = None
    resulting_balance: Optional[Decimal] = None
    top_up_event: Optional[CurrencyLedgerEvent] = None
    message: Optional[str] = None

    @property
    def is_priced(self) -> bool:
        return self.status is ResolutionStatus.PRICED

    @property
    def shortfall(self) -> Decimal:
        return self.decision.shortfall


class BalanceActionResolver:
    """Decides and prices purchases that may overdraw a currency ledger."""

    def __init__(self, engine: Optional[CurrencyLedgerCostEngine] = None):
        self.engine = engine or CurrencyLedgerCostEngine()

    def decide(self, balance: NumericInput, required: NumericInput, action: BalanceAction) -> BalanceDecision:
        """Decide the outcome for a purchase of ``required`` units.

        Args:
            balance: Current ledger balance
            required: Units the purchase needs
            action: Investor's chosen action for a shortfall

        Returns:
            BalanceDecision; PROCEED whenever there is no shortfall
        """
        balance_dec = to_decimal(balance)
        required_dec = to_decimal(required)
        if required_dec <= 0:
            raise ValueError(f"Required amount must be positive, got {required_dec}")

        shortfall = max(ZERO, required_dec - balance_dec)
        if shortfall == 0:
            outcome = BalanceOutcome.PROCEED
        else:
            outcome = BalanceOutcome(BalanceAction(action).value)

        return BalanceDecision(balance=balance_dec, required=required_dec, shortfall=shortfall, outcome=outcome)

    def resolve(self, events: Iterable[CurrencyLedgerEvent], as_of: date, required: NumericInput,
                action: BalanceAction, market_rate: Optional[NumericInput] = None,
                top_up_category: Optional[CurrencyEventCategory] = None,
                related_transaction_id: Optional[str] = None,
                ledger_id: Optional[str] = None) -> ResolvedPurchase:
        """Resolve and price a purchase against the ledger history.

        Args:
            events: Ledger events
            as_of: Purchase date
            required: Foreign units the purchase needs
            action: Action to take on a shortfall
            market_rate: Market rate for the purchase date, if known
            top_up_category: Inflow category for a synthesized top-up
                (defaults to an exchange buy)
            related_transaction_id: Purchase the top-up is linked to
            ledger_id: Ledger to book the top-up on (defaults to the events' ledger)

        Returns:
            ResolvedPurchase describing the outcome
        """
        history = active_events(events, as_of)
        market = to_decimal(market_rate) if market_rate is not None else None
        decision = self.decide(self.engine.balance(history), required, BalanceAction(action))

        logger.info(
            f"Resolving purchase of {decision.required} (balance {decision.balance}, "
            f"shortfall {decision.shortfall}): {decision.outcome.value}"
        )

        if decision.outcome is BalanceOutcome.PROCEED:
            return self._price(history, as_of, decision, market)

        if decision.outcome is BalanceOutcome.REJECT:
            return ResolvedPurchase(
                status=ResolutionStatus.INSUFFICIENT_BALANCE,
                decision=decision,
                message=(
                    f"Insufficient balance: need {decision.required}, have {decision.balance} "
                    f"(short {decision.shortfall})"
                ),
            )

        if decision.outcome is BalanceOutcome.MARGIN:
            return self._price_on_margin(history, as_of, decision, market)

        return self._price_with_top_up(
            history, as_of, decision, market,
            top_up_category or CurrencyEventCategory.EXCHANGE_BUY,
            related_transaction_id,
            ledger_id or (history[0].ledger_id if history else None),
        )

    def _price(self, history: List[CurrencyLedgerEvent], as_of: date, decision: BalanceDecision,
               market: Optional[Decimal], top_up: Optional[CurrencyLedgerEvent] = None) -> ResolvedPurchase:
        pricing = self.engine.rate_for_purchase(history, as_of, decision.required)
        resulting = decision.balance + decision.shortfall - decision.required

        if pricing.rate is not None:
            rate, source = pricing.rate, PricingSource.LIFO
        elif market is not None:
            rate, source = round_rate(market), PricingSource.MARKET
        else:
            return self._rate_unavailable(decision, pricing)

        return ResolvedPurchase(
            status=ResolutionStatus.PRICED,
            decision=decision,
            final_rate=rate,
            source=source,
            pricing=pricing,
            resulting_balance=resulting,
            top_up_event=top_up,
        )

    def _price_on_margin(self, history: List[CurrencyLedgerEvent], as_of: date,
                         decision: BalanceDecision, market: Optional[Decimal]) -> ResolvedPurchase:
        pricing = self.engine.rate_for_purchase(history, as_of, decision.required)
        if market is None:
            return self._rate_unavailable(decision, pricing)

        covered = pricing.covered_from_layers
        rate = self.engine.blended_rate(covered, pricing.rate, decision.shortfall, market)
        source = PricingSource.BLENDED if covered > 0 else PricingSource.MARKET

        return ResolvedPurchase(
            status=ResolutionStatus.PRICED,
            decision=decision,
            final_rate=rate,
            source=source,
            pricing=pricing,
            resulting_balance=decision.balance - decision.required,
        )

    def _price_with_top_up(self, history: List[CurrencyLedgerEvent], as_of: date,
                           decision: BalanceDecision, market: Optional[Decimal],
                           category: CurrencyEventCategory, related_transaction_id: Optional[str],
                           ledger_id: Optional[str]) -> ResolvedPurchase:
        if CATEGORY_KINDS[category] is CategoryKind.OUTFLOW:
            raise ValueError(f"Top-up category must be an inflow, got {category.value}")
        if ledger_id is None:
            raise ValueError("A ledger id is required to book a top-up")

        cost_bearing = CATEGORY_KINDS[category] is CategoryKind.COST_BEARING_INFLOW
        if cost_bearing and market is None:
            return self._rate_unavailable(decision, None)

        next_sequence = max((e.sequence for e in history), default=0) + 1
        top_up = CurrencyLedgerEvent.create(
            ledger_id=ledger_id,
            event_date=as_of,
            category=category,
            amount=decision.shortfall,
            exchange_rate=market if cost_bearing else None,
            home_amount=round_money(decision.shortfall * market) if cost_bearing else None,
            related_transaction_id=related_transaction_id,
            notes=f"{TOP_UP_NOTE_PREFIX} {related_transaction_id or ''}".strip(),
            sequence=next_sequence,
        )
        logger.info(f"Synthesized top-up of {decision.shortfall} ({category.value}) on ledger {ledger_id}")

        return self._price(history + [top_up], as_of, decision, market, top_up=top_up)

    def _rate_unavailable(self, decision: BalanceDecision, pricing: Optional[LifoPricing]) -> ResolvedPurchase:
        logger.warning(f"No exchange rate available for purchase of {decision.required}")
        return ResolvedPurchase(
            status=ResolutionStatus.RATE_UNAVAILABLE,
            decision=decision,
            pricing=pricing,
            message="No ledger cost layers and no market rate available; fund the ledger first",
        )

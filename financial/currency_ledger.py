"""
Currency ledger cost engine.

Prices foreign currency spending by replaying a ledger's event history into a
LIFO layer stack. Each cost-bearing inflow (a currency purchase, an initial
balance) becomes a layer carrying its home-currency unit cost; free inflows
such as interest add zero-cost units that are spent first and never enter the
weighted rate.

The stack is rebuilt from events on every call and is never stored, so
deleting or back-dating an event is reflected automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from data.models.currency_event import CurrencyLedgerEvent, CurrencyEventCategory
from data.models.lifo_layer import LifoLayer, LayerConsumption, LayerStack
from .calculations import (
    ZERO,
    NumericInput,
    to_decimal,
    round_money,
    round_rate,
    calculate_weighted_average,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LifoPricing:
    """Result of pricing a purchase against a ledger's layer stack.

    ``rate`` is None when no cost layer was touched; the caller then needs a
    market rate or must reject the purchase as unpriceable.
    """
    requested_amount: Decimal
    rate: Optional[Decimal]
    covered_from_layers: Decimal
    covered_from_free: Decimal
    uncovered_amount: Decimal
    home_cost: Decimal
    breakdown: List[LayerConsumption] = field(default_factory=list)

    @property
    def has_rate(self) -> bool:
        return self.rate is not None

    @property
    def is_fully_covered(self) -> bool:
        return self.uncovered_amount == 0


@dataclass(frozen=True)
class LedgerSummary:
    """Moving weighted-average view of a ledger."""
    balance: Decimal
    average_cost: Decimal
    total_cost: Decimal
    realized_pnl: Decimal


def active_events(events: Iterable[CurrencyLedgerEvent], as_of: Optional[date] = None) -> List[CurrencyLedgerEvent]:
    """Filter out deleted and future events and order by (date, sequence).

    Args:
        events: Ledger events in any order
        as_of: Optional cut-off date (inclusive)

    Returns:
        Events that are in effect on ``as_of``, oldest first
    """
    selected = [
        e for e in events
        if not e.is_deleted and (as_of is None or e.event_date <= as_of)
    ]
    return sorted(selected, key=CurrencyLedgerEvent.sort_key)


class CurrencyLedgerCostEngine:
    """Computes LIFO exchange rates, balances and margin blends for a ledger.

    All methods are pure: they take the event history as input and never
    modify it.
    """

    def layer_stack(self, events: Iterable[CurrencyLedgerEvent], as_of: Optional[date] = None) -> LayerStack:
        """Replay events into a layer stack.

        Inflows first repay any negative free pool left by margin use; the
        rest becomes a cost layer or free units depending on the category.
        Outflows consume the stack and push the free pool negative when they
        exceed it.

        Args:
            events: Ledger events
            as_of: Optional cut-off date (inclusive)

        Returns:
            The replayed LayerStack
        """
        stack = LayerStack()

        for event in active_events(events, as_of):
            units = event.units
            if event.is_inflow:
                if stack.free_units < 0:
                    repaid = min(units, -stack.free_units)
                    stack.free_units += repaid
                    units -= repaid
                if units <= 0:
                    continue
                if event.is_cost_bearing:
                    stack.push(LifoLayer(
                        units=units,
                        unit_cost=event.unit_cost,
                        event_date=event.event_date,
                        sequence=event.sequence,
                    ))
                else:
                    stack.free_units += units
            else:
                _, uncovered = stack.consume(units)
                if uncovered > 0:
                    stack.free_units -= uncovered

        return stack

    def rate_for_purchase(self, events: Iterable[CurrencyLedgerEvent], as_of: date,
                          purchase_amount: NumericInput) -> LifoPricing:
        """Price a purchase of foreign units using the LIFO layer stack.

        Free units are consumed first and reduce the home cost without
        entering the rate. The rate is the weighted unit cost of the layer
        units consumed, rounded to 6 places.

        Args:
            events: Ledger events
            as_of: Purchase date; events after it are ignored
            purchase_amount: Foreign units to price

        Returns:
            LifoPricing with the rate (or None) and the consumption breakdown

        Raises:
            ValueError: If the purchase amount is not positive

        Examples:
            With 100 units at 30.5 followed by 200 units at 31.0, a purchase
            of 150 units is priced at 31.0 and 250 units at 30.9.
        """
        amount = to_decimal(purchase_amount)
        if amount <= 0:
            raise ValueError(f"Purchase amount must be positive, got {amount}")

        stack = self.layer_stack(events, as_of)
        breakdown, uncovered = stack.consume(amount)

        layered = [c for c in breakdown if not c.is_free]
        covered_from_layers = sum((c.units for c in layered), ZERO)
        covered_from_free = sum((c.units for c in breakdown if c.is_free), ZERO)
        home_cost = sum((c.home_cost for c in layered), ZERO)

        rate = None
        if covered_from_layers > 0:
            rate = round_rate(calculate_weighted_average(
                [c.unit_cost for c in layered],
                [c.units for c in layered],
            ))

        logger.debug(
            f"LIFO pricing of {amount} as of {as_of}: rate={rate}, layers={covered_from_layers}, "
            f"free={covered_from_free}, uncovered={uncovered}"
        )

        return LifoPricing(
            requested_amount=amount,
            rate=rate,
            covered_from_layers=covered_from_layers,
            covered_from_free=covered_from_free,
            uncovered_amount=uncovered,
            home_cost=round_money(home_cost),
            breakdown=breakdown,
        )

    def balance(self, events: Iterable[CurrencyLedgerEvent], as_of: Optional[date] = None) -> Decimal:
        """Sum of signed amounts up to ``as_of``; negative after margin use."""
        return sum((e.amount for e in active_events(events, as_of)), ZERO)

    def blended_rate(self, covered: NumericInput, lifo_rate: Optional[NumericInput],
                     margin: NumericInput, market_rate: NumericInput) -> Decimal:
        """Blend the LIFO rate of covered units with the market rate of margin units.

        Args:
            covered: Units priced from ledger layers
            lifo_rate: LIFO rate of the covered units
            margin: Units funded on margin
            market_rate: Market rate for the margin units

        Returns:
            The blended rate rounded to 6 places; exactly the market rate when
            nothing was covered

        Examples:
            >>> CurrencyLedgerCostEngine().blended_rate(Decimal('100'), Decimal('31.0'),
            ...                                          Decimal('100'), Decimal('32.0'))
            Decimal('31.500000')
        """
        covered_dec = to_decimal(covered)
        market_dec = to_decimal(market_rate)
        if covered_dec <= 0 or lifo_rate is None:
            return round_rate(market_dec)
        return round_rate(calculate_weighted_average(
            [to_decimal(lifo_rate), market_dec],
            [covered_dec, to_decimal(margin)],
        ))

    def summarize(self, events: Iterable[CurrencyLedgerEvent], as_of: Optional[date] = None) -> LedgerSummary:
        """Summarize a ledger with a moving weighted-average cost.

        Cost-bearing inflows add their home value, free inflows add units
        only (lowering the average), and every outflow removes cost in
        proportion to the units it takes. Exchange sells also book the
        difference between proceeds and removed cost as realized P&L.

        Args:
            events: Ledger events
            as_of: Optional cut-off date (inclusive)

        Returns:
            LedgerSummary with balance, average cost, total cost and realized P&L
        """
        balance = ZERO
        total_cost = ZERO
        realized = ZERO

        for event in active_events(events, as_of):
            if event.is_inflow:
                balance += event.units
                if event.is_cost_bearing:
                    total_cost += event.home_value
                continue

            average = total_cost / balance if balance > 0 else ZERO
            removed = average * min(event.units, max(balance, ZERO))
            if event.category is CurrencyEventCategory.EXCHANGE_SELL and event.home_value is not None:
                realized += event.home_value - removed
            total_cost -= removed
            balance -= event.units

            if balance <= 0:
                total_cost = ZERO

        average_cost = round_rate(total_cost / balance) if balance > 0 else ZERO
        return LedgerSummary(
            balance=balance,
            average_cost=average_cost,
            total_cost=round_money(total_cost),
            realized_pnl=round_money(realized),
        )

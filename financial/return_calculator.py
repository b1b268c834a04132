"""
Investor return calculations.

Provides the money-weighted return (XIRR), the Modified Dietz return and the
time-weighted return over irregular cash flow histories. Every calculation
returns a :class:`~financial.errors.ReturnResult`; degenerate histories such
as a brand new portfolio are expected inputs and produce a tagged result
rather than an exception.

Sign conventions:
    * ``xirr`` takes flows in investor sign: contributions negative,
      withdrawals positive.
    * ``modified_dietz`` and the time-weighted calculations take flows in
      portfolio sign: capital in positive, capital out negative.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal, localcontext
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from config.constants import (
    DAYS_PER_YEAR,
    XIRR_INITIAL_GUESS,
    XIRR_MAX_ITERATIONS,
    XIRR_TOLERANCE,
    XIRR_LOWER_BOUND,
    XIRR_UPPER_BOUND,
    XIRR_MAX_UPPER_BOUND,
)
from data.models.cash_flow import CashFlowEvent, ValuationPoint, ValuationSnapshot
from .calculations import ZERO, ONE, NumericInput, to_decimal, round_rate
from .errors import ReturnResult

logger = logging.getLogger(__name__)

FlowInput = Union[CashFlowEvent, Tuple[date, NumericInput]]

DERIVATIVE_EPSILON = Decimal("1e-10")
DERIVATIVE_NUDGE = Decimal("0.1")
DECIMAL_PRECISION = 28


def _coerce_flows(cash_flows: Iterable[FlowInput]) -> List[CashFlowEvent]:
    flows = []
    for flow in cash_flows:
        if isinstance(flow, CashFlowEvent):
            flows.append(flow)
        else:
            flow_date, amount = flow
            flows.append(CashFlowEvent(date=flow_date, amount=amount))
    return flows


class ReturnCalculator:
    """Computes XIRR, Modified Dietz and time-weighted returns.

    Args:
        max_iterations: Hard cap on Newton-Raphson and bisection iterations
        tolerance: Convergence tolerance on the rate (Newton) and NPV (bisection)
        initial_guess: Newton-Raphson starting rate
        days_per_year: Day-count denominator (actual/365 by default)
    """

    def __init__(self, max_iterations: int = XIRR_MAX_ITERATIONS,
                 tolerance: NumericInput = XIRR_TOLERANCE,
                 initial_guess: NumericInput = XIRR_INITIAL_GUESS,
                 days_per_year: int = DAYS_PER_YEAR):
        self.max_iterations = max_iterations
        self.tolerance = to_decimal(tolerance)
        self.initial_guess = to_decimal(initial_guess)
        self.days_per_year = Decimal(days_per_year)

    @classmethod
    def from_settings(cls, settings) -> ReturnCalculator:
        config = settings.get_return_config()
        return cls(
            max_iterations=config['max_iterations'],
            tolerance=config['tolerance'],
            initial_guess=config['initial_guess'],
            days_per_year=config['days_per_year'],
        )

    # ------------------------------------------------------------------
    # XIRR
    # ------------------------------------------------------------------

    def xirr(self, cash_flows: Iterable[FlowInput], final_value: NumericInput,
             final_date: date) -> ReturnResult:
        """Annualized money-weighted return.

        Solves ``sum(CF_i / (1 + r) ** (t_i / 365)) = 0`` over the supplied
        flows plus ``final_value`` received on ``final_date``.

        Args:
            cash_flows: Flows in investor sign (contributions negative)
            final_value: Value of the holdings on ``final_date``
            final_date: Valuation date

        Returns:
            ReturnResult with the annual rate rounded to 6 places,
            NOT_COMPUTABLE for degenerate inputs or NOT_CONVERGED when no
            root could be found

        Examples:
            A contribution of 1000 followed a year later by a value of 1100
            yields a rate of 0.1.
        """
        flows = _coerce_flows(cash_flows)
        flows.append(CashFlowEvent(date=final_date, amount=final_value))
        flows = sorted((f for f in flows if f.amount != 0), key=lambda f: f.date)

        if len(flows) < 2:
            return ReturnResult.not_computable("XIRR needs at least two non-zero cash flows")
        if not any(f.amount > 0 for f in flows) or not any(f.amount < 0 for f in flows):
            return ReturnResult.not_computable("XIRR needs both positive and negative cash flows")

        first_date = flows[0].date
        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            amounts = [f.amount for f in flows]
            years = [Decimal((f.date - first_date).days) / self.days_per_year for f in flows]

            rate = self._newton(amounts, years)
            if rate is not None:
                return ReturnResult.ok(round_rate(rate))

            logger.debug("Newton-Raphson did not converge, falling back to bisection")
            rate = self._bisection(amounts, years)
            if rate is not None:
                return ReturnResult.ok(round_rate(rate))

        return ReturnResult.not_converged("XIRR did not converge", iterations=self.max_iterations)

    def _npv(self, amounts: Sequence[Decimal], years: Sequence[Decimal], rate: Decimal) -> Decimal:
        base = ONE + rate
        return sum((cf / base ** t for cf, t in zip(amounts, years)), ZERO)

    def _npv_derivative(self, amounts: Sequence[Decimal], years: Sequence[Decimal], rate: Decimal) -> Decimal:
        base = ONE + rate
        total = ZERO
        for cf, t in zip(amounts, years):
            if t == 0:
                continue
            total -= t * cf / base ** (t + ONE)
        return total

    def _newton(self, amounts: Sequence[Decimal], years: Sequence[Decimal]) -> Optional[Decimal]:
        rate = self.initial_guess
        for _ in range(self.max_iterations):
            npv = self._npv(amounts, years, rate)
            derivative = self._npv_derivative(amounts, years, rate)

            if abs(derivative) < DERIVATIVE_EPSILON:
                rate = rate + DERIVATIVE_NUDGE
                continue

            new_rate = rate - npv / derivative
            if abs(new_rate - rate) < self.tolerance:
                return new_rate

            rate = min(max(new_rate, XIRR_LOWER_BOUND), XIRR_MAX_UPPER_BOUND)
        return None

    def _bisection(self, amounts: Sequence[Decimal], years: Sequence[Decimal]) -> Optional[Decimal]:
        low, high = XIRR_LOWER_BOUND, XIRR_UPPER_BOUND
        npv_low = self._npv(amounts, years, low)
        npv_high = self._npv(amounts, years, high)

        while npv_low * npv_high > 0 and high < XIRR_MAX_UPPER_BOUND:
            high = min(high * 10, XIRR_MAX_UPPER_BOUND)
            npv_high = self._npv(amounts, years, high)

        if npv_low * npv_high > 0:
            logger.debug("XIRR bisection found no sign change")
            return None

        mid = low
        for _ in range(self.max_iterations):
            mid = (low + high) / 2
            npv_mid = self._npv(amounts, years, mid)
            if abs(npv_mid) < self.tolerance:
                return mid
            if npv_low * npv_mid < 0:
                high = mid
            else:
                low, npv_low = mid, npv_mid
        return mid

    # ------------------------------------------------------------------
    # Modified Dietz
    # ------------------------------------------------------------------

    def modified_dietz(self, start_value: NumericInput, end_value: NumericInput,
                       cash_flows: Iterable[FlowInput], period_start: Optional[date] = None,
                       period_end: Optional[date] = None) -> ReturnResult:
        """Modified Dietz return for a single period.

        ``(end - start - sum(CF)) / (start + sum(CF * w))`` with
        ``w = (period_days - days_since_start) / period_days``.

        Args:
            start_value: Portfolio value at the start of the period
            end_value: Portfolio value at the end of the period
            cash_flows: External flows in portfolio sign
            period_start: Start date; defaults to the first flow's date and
                is moved to it when there is no opening value
            period_end: End date; defaults to the last flow's date

        Returns:
            ReturnResult with the period (not annualized) rate
        """
        start = to_decimal(start_value)
        end = to_decimal(end_value)
        flows = sorted(_coerce_flows(cash_flows), key=lambda f: f.date)

        if period_start is None and flows:
            period_start = flows[0].date
        if period_end is None and flows:
            period_end = flows[-1].date
        if period_start is not None and period_end is not None:
            flows = [f for f in flows if period_start <= f.date <= period_end]

        if not flows:
            if start <= 0:
                return ReturnResult.not_computable("Modified Dietz needs a positive start value or cash flows")
            return ReturnResult.ok(round_rate((end - start) / start))

        if start <= 0:
            # No opening value: the period begins with the first contribution
            period_start = flows[0].date

        total_days = (period_end - period_start).days
        if total_days <= 0:
            return ReturnResult.not_computable("Modified Dietz period must be longer than zero days")

        days = Decimal(total_days)
        net_flow = ZERO
        weighted_flow = ZERO
        for flow in flows:
            weight = (days - Decimal((flow.date - period_start).days)) / days
            net_flow += flow.amount
            weighted_flow += flow.amount * weight

        denominator = start + weighted_flow
        if denominator <= 0:
            return ReturnResult.not_computable("Modified Dietz denominator is not positive")

        return ReturnResult.ok(round_rate((end - start - net_flow) / denominator))

    # ------------------------------------------------------------------
    # Time-weighted return
    # ------------------------------------------------------------------

    def time_weighted_return(self, valuation_points: Iterable[ValuationPoint],
                             cash_flows: Iterable[FlowInput]) -> ReturnResult:
        """Chain-linked time-weighted return.

        Each pair of consecutive valuation points forms a sub-period whose
        return is ``(V_end - V_start - CF_end) / V_start``, where ``CF_end``
        is the net flow on the end point's date. A point on a flow date must
        hold the value after the flow. Sub-periods starting from a
        non-positive value are skipped.

        Args:
            valuation_points: Portfolio values by date
            cash_flows: External flows in portfolio sign

        Returns:
            ReturnResult; MISSING_VALUATION lists flow dates without a
            valuation point (or before the first point)
        """
        points: Dict[date, Decimal] = {}
        for point in valuation_points:
            points[point.date] = point.value
        ordered = sorted(points.items())

        flows_by_date: Dict[date, Decimal] = defaultdict(lambda: ZERO)
        for flow in _coerce_flows(cash_flows):
            flows_by_date[flow.date] += flow.amount

        if len(ordered) < 2:
            return ReturnResult.not_computable("Time-weighted return needs at least two valuation points")

        first_date = ordered[0][0]
        missing = tuple(sorted(
            d for d in flows_by_date
            if d not in points or d < first_date
        ))
        if missing:
            return ReturnResult.missing_valuation(missing)

        factor = ONE
        measured = 0
        for (_, start_value), (end_date, end_value) in zip(ordered, ordered[1:]):
            if start_value <= 0:
                continue
            flow = flows_by_date.get(end_date, ZERO)
            factor *= ONE + (end_value - start_value - flow) / start_value
            measured += 1

        if measured == 0:
            return ReturnResult.not_computable("No sub-period with a positive starting value")

        return ReturnResult.ok(round_rate(factor - ONE))

    def time_weighted_return_from_snapshots(self, start_value: NumericInput, end_value: NumericInput,
                                            snapshots: Iterable[ValuationSnapshot]) -> ReturnResult:
        """Time-weighted return from before/after values around each flow.

        Args:
            start_value: Value at the start of the range
            end_value: Value at the end of the range
            snapshots: Values just before and just after each external flow

        Returns:
            ReturnResult with the chained rate
        """
        factor = ONE
        measured = False
        current_start = to_decimal(start_value)

        for snapshot in sorted(snapshots, key=lambda s: s.date):
            if current_start > 0:
                factor *= snapshot.value_before / current_start
                measured = True
            current_start = snapshot.value_after

        if current_start > 0:
            factor *= to_decimal(end_value) / current_start
            measured = True

        if not measured:
            return ReturnResult.not_computable("No sub-period with a positive starting value")

        return ReturnResult.ok(round_rate(factor - ONE))

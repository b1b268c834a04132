"""LIFO layer stack models for currency ledgers.

A layer stack is derived by replaying ledger events and is never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from financial.calculations import ZERO


@dataclass
class LifoLayer:
    """Remaining units of one cost-bearing inflow."""
    units: Decimal
    unit_cost: Decimal
    event_date: date
    sequence: int = 0

    @property
    def home_cost(self) -> Decimal:
        return self.units * self.unit_cost


@dataclass(frozen=True)
class LayerConsumption:
    """Units taken from a layer (or from the free pool when unit_cost is None)."""
    units: Decimal
    unit_cost: Optional[Decimal] = None
    event_date: Optional[date] = None

    @property
    def is_free(self) -> bool:
        return self.unit_cost is None

    @property
    def home_cost(self) -> Decimal:
        if self.unit_cost is None:
            return ZERO
        return self.units * self.unit_cost


@dataclass
class LayerStack:
    """Cost layers ordered for consumption plus a pool of zero-cost units.

    Layers are kept newest date first; layers sharing a date keep append
    order so the earliest of them is consumed first. A negative
    ``free_units`` value records margin that later inflows repay.
    """
    layers: List[LifoLayer] = field(default_factory=list)
    free_units: Decimal = ZERO

    def push(self, layer: LifoLayer) -> None:
        self.layers.append(layer)
        self.layers.sort(key=lambda l: (-l.event_date.toordinal(), l.sequence))

    @property
    def layered_units(self) -> Decimal:
        return sum((l.units for l in self.layers), ZERO)

    @property
    def total_units(self) -> Decimal:
        return self.layered_units + self.free_units

    @property
    def home_cost(self) -> Decimal:
        return sum((l.home_cost for l in self.layers), ZERO)

    def consume(self, amount: Decimal) -> tuple[List[LayerConsumption], Decimal]:
        """Consume units from the free pool first, then layers in order.

        Args:
            amount: Units to consume

        Returns:
            Tuple of (consumptions, units left uncovered)
        """
        remaining = amount
        taken: List[LayerConsumption] = []

        if self.free_units > 0 and remaining > 0:
            units = min(self.free_units, remaining)
            self.free_units -= units
            remaining -= units
            taken.append(LayerConsumption(units=units))

        while remaining > 0 and self.layers:
            layer = self.layers[0]
            units = min(layer.units, remaining)
            layer.units -= units
            remaining -= units
            taken.append(LayerConsumption(units=units, unit_cost=layer.unit_cost, event_date=layer.event_date))
            if layer.units == 0:
                self.layers.pop(0)

        return taken, remaining

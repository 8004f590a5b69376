"""
Circuit Elements
================

Series and parallel collections of battery elements.

Aggregation rules:
- Series: V, Zi and Vn are sums, Imax and Cn are minima, the discharge
  capacity is the maximum (the most discharged child limits the string).
- Parallel: V is shared, Zi is the parallel combination, capacities and
  Imax are sums. Currents split by admittance share.
"""

from typing import Iterator, List, Tuple

import numpy as np

from .base import BatteryElement
from ..exceptions import ConfigurationError


class CircuitElement(BatteryElement):
    """Base class for elements that own an ordered list of children."""

    def __init__(self, *elements: BatteryElement):
        self.elements: List[BatteryElement] = []
        if elements:
            self.add_elements(*elements)

    def add_elements(self, *elements: BatteryElement) -> None:
        """
        Append children to the collection.

        Raises ConfigurationError for objects that are not battery elements,
        for batteries (controllers cannot be nested) and for elements that
        contain no cells.
        """
        from ..controller import BatteryController

        for element in elements:
            if isinstance(element, BatteryController):
                raise ConfigurationError(
                    f"A {type(element).__name__} cannot be nested inside another element; "
                    f"add its element tree instead"
                )
            if not isinstance(element, BatteryElement):
                raise ConfigurationError(f"Expected a BatteryElement, got {type(element).__name__}")
            if element is self:
                raise ConfigurationError("An element cannot contain itself")
            if not element.has_cells:
                raise ConfigurationError(f"{type(element).__name__} contains no cells")
        self.elements.extend(elements)

    def _require_children(self) -> None:
        if not self.elements:
            raise ConfigurationError(f"{type(self).__name__} has no elements")

    @property
    def has_cells(self) -> bool:
        return any(e.has_cells for e in self.elements)

    def iter_cells(self) -> Iterator[BatteryElement]:
        for element in self.elements:
            yield from element.iter_cells()

    def __len__(self) -> int:
        return len(self.elements)


# =============================================================================
# Series
# =============================================================================

class SeriesElement(CircuitElement):
    """
    Series connection with passive equalization.

    A voltage set on the string is split proportionally to the relative
    impedance of each child (Zi_i / sum(Zi)).
    """

    @property
    def voltage(self) -> float:
        return float(sum(e.voltage for e in self.elements))

    @voltage.setter
    def voltage(self, value: float) -> None:
        self._require_children()
        for element, share in zip(self.elements, self.impedance_proportions()):
            element.voltage = value * share

    def impedance_proportions(self) -> np.ndarray:
        zi = np.array([e.impedance for e in self.elements], dtype=float)
        return zi / zi.sum()

    @property
    def impedance(self) -> float:
        return float(sum(e.impedance for e in self.elements))

    @property
    def discharge_capacity(self) -> float:
        return max(e.discharge_capacity for e in self.elements)

    @property
    def nominal_capacity(self) -> float:
        return min(e.nominal_capacity for e in self.elements)

    @property
    def capacity(self) -> float:
        return self.nominal_capacity - self.discharge_capacity

    @property
    def nominal_voltage(self) -> float:
        return float(sum(e.nominal_voltage for e in self.elements))

    @property
    def max_current(self) -> float:
        return min(e.max_current for e in self.elements)

    @property
    def soh(self) -> float:
        return min(e.soh for e in self.elements)

    def get_new_voltage(self, current: float, dt: float) -> float:
        return float(sum(e.get_new_voltage(current, dt) for e in self.elements))

    def charge(self, dq: float) -> None:
        # the series current flows through every child
        for element in self.elements:
            element.charge(dq)

    def dummy_charge(self, dq: float) -> float:
        discharged = max(e.nominal_capacity - e.dummy_charge(dq) for e in self.elements)
        return self.nominal_capacity - discharged

    def topology(self) -> Tuple[int, int]:
        shapes = [e.topology() for e in self.elements]
        return max(p for p, _ in shapes), sum(s for _, s in shapes)


class ActiveSeriesElement(SeriesElement):
    """Series connection with active equalization: voltages split evenly."""

    def impedance_proportions(self) -> np.ndarray:
        n = len(self.elements)
        return np.full(n, 1.0 / n)


# =============================================================================
# Parallel
# =============================================================================

class ParallelElement(CircuitElement):
    """Parallel connection. All children share one voltage."""

    @property
    def voltage(self) -> float:
        return float(np.mean([e.voltage for e in self.elements]))

    @voltage.setter
    def voltage(self, value: float) -> None:
        self._require_children()
        for element in self.elements:
            element.voltage = value

    def impedance_proportions(self) -> np.ndarray:
        """Admittance share of each child (current split)."""
        admittance = 1.0 / np.array([e.impedance for e in self.elements], dtype=float)
        return admittance / admittance.sum()

    @property
    def impedance(self) -> float:
        return float(1.0 / sum(1.0 / e.impedance for e in self.elements))

    @property
    def discharge_capacity(self) -> float:
        return float(sum(e.discharge_capacity for e in self.elements))

    @property
    def capacity(self) -> float:
        return float(sum(e.capacity for e in self.elements))

    @property
    def nominal_capacity(self) -> float:
        return float(sum(e.nominal_capacity for e in self.elements))

    @property
    def nominal_voltage(self) -> float:
        return float(np.mean([e.nominal_voltage for e in self.elements]))

    @property
    def max_current(self) -> float:
        return float(sum(e.max_current for e in self.elements))

    @property
    def soh(self) -> float:
        cn = np.array([e.nominal_capacity for e in self.elements], dtype=float)
        soh = np.array([e.soh for e in self.elements], dtype=float)
        return float(np.dot(cn, soh) / cn.sum())

    def get_new_voltage(self, current: float, dt: float) -> float:
        shares = self.impedance_proportions()
        return float(np.mean([
            e.get_new_voltage(current * share, dt) for e, share in zip(self.elements, shares)
        ]))

    def charge(self, dq: float) -> None:
        for element, share in zip(self.elements, self.impedance_proportions()):
            element.charge(dq * share)

    def dummy_charge(self, dq: float) -> float:
        shares = self.impedance_proportions()
        return float(sum(e.dummy_charge(dq * share) for e, share in zip(self.elements, shares)))

    def topology(self) -> Tuple[int, int]:
        shapes = [e.topology() for e in self.elements]
        return sum(p for p, _ in shapes), max(s for _, s in shapes)

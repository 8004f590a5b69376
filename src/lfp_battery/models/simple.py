"""
Ideal Elements
==============

Decorators that model n identical copies of one element analytically.
Only the wrapped element is simulated, so a pack of n·m identical cells
costs as much as a single cell. Cell-to-cell variation is lost.
"""

from typing import Iterator, Tuple

import numpy as np

from .base import BatteryElement
from ..exceptions import ConfigurationError


class SimpleElement(BatteryElement):
    """Common base of the ideal decorators."""

    def __init__(self, element: BatteryElement, n: int):
        if not isinstance(element, BatteryElement):
            raise ConfigurationError(f"Expected a BatteryElement, got {type(element).__name__}")
        if not element.has_cells:
            raise ConfigurationError(f"{type(element).__name__} contains no cells")
        if int(n) != n or n < 1:
            raise ConfigurationError(f"Number of elements must be a positive integer, got {n}")
        self.element = element
        self.n = int(n)

    @property
    def has_cells(self) -> bool:
        return True

    def iter_cells(self) -> Iterator[BatteryElement]:
        return self.element.iter_cells()

    @property
    def soh(self) -> float:
        return self.element.soh


class SimpleSeriesElement(SimpleElement):
    """n identical elements in series."""

    @property
    def voltage(self) -> float:
        return self.n * self.element.voltage

    @voltage.setter
    def voltage(self, value: float) -> None:
        self.element.voltage = value / self.n

    def impedance_proportions(self) -> np.ndarray:
        return np.full(self.n, 1.0 / self.n)

    @property
    def impedance(self) -> float:
        return self.n * self.element.impedance

    @property
    def discharge_capacity(self) -> float:
        return self.element.discharge_capacity

    @property
    def capacity(self) -> float:
        return self.element.capacity

    @property
    def nominal_capacity(self) -> float:
        return self.element.nominal_capacity

    @property
    def nominal_voltage(self) -> float:
        return self.n * self.element.nominal_voltage

    @property
    def max_current(self) -> float:
        return self.element.max_current

    def get_new_voltage(self, current: float, dt: float) -> float:
        return self.n * self.element.get_new_voltage(current, dt)

    def charge(self, dq: float) -> None:
        self.element.charge(dq)

    def dummy_charge(self, dq: float) -> float:
        return self.element.dummy_charge(dq)

    def topology(self) -> Tuple[int, int]:
        n_parallel, n_series = self.element.topology()
        return n_parallel, self.n * n_series


class SimpleParallelElement(SimpleElement):
    """n identical elements in parallel. Current and charge split evenly."""

    @property
    def voltage(self) -> float:
        return self.element.voltage

    @voltage.setter
    def voltage(self, value: float) -> None:
        self.element.voltage = value

    def impedance_proportions(self) -> np.ndarray:
        return np.full(self.n, 1.0 / self.n)

    @property
    def impedance(self) -> float:
        return self.element.impedance / self.n

    @property
    def discharge_capacity(self) -> float:
        return self.n * self.element.discharge_capacity

    @property
    def capacity(self) -> float:
        return self.n * self.element.capacity

    @property
    def nominal_capacity(self) -> float:
        return self.n * self.element.nominal_capacity

    @property
    def nominal_voltage(self) -> float:
        return self.element.nominal_voltage

    @property
    def max_current(self) -> float:
        return self.n * self.element.max_current

    def get_new_voltage(self, current: float, dt: float) -> float:
        return self.element.get_new_voltage(current / self.n, dt)

    def charge(self, dq: float) -> None:
        self.element.charge(dq / self.n)

    def dummy_charge(self, dq: float) -> float:
        return self.n * self.element.dummy_charge(dq / self.n)

    def topology(self) -> Tuple[int, int]:
        n_parallel, n_series = self.element.topology()
        return self.n * n_parallel, n_series

"""
Battery Element Interface
=========================

Capability set shared by every node of the battery element tree: leaf
cells, series and parallel collections, and the ideal decorators that
model n identical copies of one element.

Units: V, A, Ohm, Ah, s.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional, Tuple

import numpy as np

from ..exceptions import ConfigurationError


class BatteryElement(ABC):
    """Abstract node of the battery element tree."""

    # =========================================================================
    # Electrical State
    # =========================================================================

    @property
    @abstractmethod
    def voltage(self) -> float:
        """Terminal voltage (V)."""

    @voltage.setter
    @abstractmethod
    def voltage(self, value: float) -> None:
        """Set the terminal voltage, distributing it over children."""

    @property
    @abstractmethod
    def impedance(self) -> float:
        """Internal impedance (Ohm)."""

    @property
    @abstractmethod
    def discharge_capacity(self) -> float:
        """Capacity discharged from the element (Ah)."""

    @property
    @abstractmethod
    def capacity(self) -> float:
        """Currently stored capacity (Ah)."""

    @property
    @abstractmethod
    def nominal_capacity(self) -> float:
        """Nominal capacity (Ah)."""

    @property
    @abstractmethod
    def nominal_voltage(self) -> float:
        """Nominal voltage (V)."""

    @property
    @abstractmethod
    def max_current(self) -> float:
        """Maximum current magnitude (A)."""

    @property
    @abstractmethod
    def soh(self) -> float:
        """State of health [0, 1]."""

    @property
    def soc(self) -> float:
        """State of charge: stored capacity / nominal capacity."""
        return self.capacity / self.nominal_capacity

    @property
    def has_cells(self) -> bool:
        """True if the element contains at least one cell."""
        return any(True for _ in self.iter_cells())

    # =========================================================================
    # Operations
    # =========================================================================

    @abstractmethod
    def get_new_voltage(self, current: float, dt: float) -> float:
        """
        Voltage after a current is applied for dt seconds.

        Does not change the stored capacity.
        """

    @abstractmethod
    def charge(self, dq: float) -> None:
        """Change the stored capacity by dq (Ah)."""

    @abstractmethod
    def dummy_charge(self, dq: float) -> float:
        """Stored capacity (Ah) that charge(dq) would result in, without applying it."""

    @abstractmethod
    def topology(self) -> Tuple[int, int]:
        """Number of (parallel, series) cells."""

    @abstractmethod
    def iter_cells(self) -> Iterator["BatteryElement"]:
        """Iterate over all distinct cell objects in the tree."""

    def impedance_proportions(self) -> np.ndarray:
        """Relative share of each child in a voltage split."""
        return np.ones(1)

    def add_elements(self, *elements: "BatteryElement") -> None:
        raise ConfigurationError(f"Elements cannot be added to a {type(self).__name__}")

    # =========================================================================
    # Curves
    # =========================================================================

    def add_curves(self, curves, kind: str = "discharge") -> None:
        """Attach discharge or cycle life curves to every cell of the tree."""
        for cell in self.iter_cells():
            cell.add_curves(curves, kind)

    def randomize_curves(self, spread: float = 0.05, rng: Optional[np.random.Generator] = None) -> None:
        """Give every cell its own randomized copy of its discharge curves."""
        if rng is None:
            rng = np.random.default_rng()
        for cell in self.iter_cells():
            cell.randomize_curves(spread, rng)

    def __repr__(self) -> str:
        n_parallel, n_series = self.topology()
        return f"{type(self).__name__}({n_series}S{n_parallel}P, V={self.voltage:.4g} V)"

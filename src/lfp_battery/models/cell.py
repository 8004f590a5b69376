"""
Battery Cell
============

Leaf of the battery element tree. The cell voltage is looked up from a
family of discharge curves measured at different currents.
"""

import copy
import logging
from typing import Iterator, Optional, Tuple

import numpy as np

from .base import BatteryElement
from ..aging import DummyAgeModel, build_age_model
from ..config import DEFAULT_IMPEDANCE, DEFAULT_SOC_INITIAL, SECONDS_PER_HOUR
from ..curves import CurveFit, CurveFitCollection, DischargeFit
from ..exceptions import ConfigurationError
from ..observers import Signal

logger = logging.getLogger(__name__)

CURVE_KINDS = ("discharge", "cycle_life")


class Cell(BatteryElement):
    """
    Lithium-ion cell.

    Parameters:
    ----------
    nominal_capacity : float
        Nominal capacity Cn (Ah)

    nominal_voltage : float
        Nominal voltage Vn (V)

    impedance : float
        Internal impedance Zi (Ohm)

    soc : float
        Initial state of charge [0, 1]

    soh : float
        Initial state of health [0, 1]

    max_current : float, optional
        Maximum current (A). Defaults to the largest current of the
        discharge curves.

    discharge_curves : CurveFitCollection or CurveFit, optional
        Discharge voltage curves. A collection may be shared by many cells.

    cycle_life_curve : CurveFit, optional
        Cycle life curve for cell-level aging

    Example:
    -------
        cell = Cell(2.0, 3.2, soc=1.0, discharge_curves=curves)
        v = cell.get_new_voltage(-2.0, 60.0)
    """

    def __init__(
        self,
        nominal_capacity: float,
        nominal_voltage: float,
        impedance: float = DEFAULT_IMPEDANCE,
        soc: float = DEFAULT_SOC_INITIAL,
        soh: float = 1.0,
        max_current: Optional[float] = None,
        discharge_curves=None,
        cycle_life_curve: Optional[CurveFit] = None,
    ):
        if nominal_capacity <= 0:
            raise ConfigurationError("Nominal capacity must be positive")
        if nominal_voltage <= 0:
            raise ConfigurationError("Nominal voltage must be positive")
        if impedance <= 0:
            raise ConfigurationError("Internal impedance must be positive")
        if not 0.0 <= soc <= 1.0:
            raise ConfigurationError("Initial SoC must be between 0 and 1")
        if not 0.0 <= soh <= 1.0:
            raise ConfigurationError("Initial SoH must be between 0 and 1")
        if max_current is not None and max_current <= 0:
            raise ConfigurationError("Maximum current must be positive")

        self._cn = float(nominal_capacity)
        self._vn = float(nominal_voltage)
        self._zi = float(impedance)
        self._soh = float(soh)
        self._imax = max_current
        self._c = min(soc * self._cn, self._cn * self._soh)
        self._v = self._vn

        self.discharge_curves: Optional[CurveFitCollection] = None
        self.cycle_life_curve = cycle_life_curve

        # cell-level aging
        self.soc_changed = Signal()
        self.age_model = None
        self.cycle_counter = None

        if discharge_curves is not None:
            self.add_curves(discharge_curves, "discharge")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def voltage(self) -> float:
        return self._v

    @voltage.setter
    def voltage(self, value: float) -> None:
        self._v = float(value)

    @property
    def impedance(self) -> float:
        return self._zi

    @impedance.setter
    def impedance(self, value: float) -> None:
        if value <= 0:
            raise ConfigurationError("Internal impedance must be positive")
        self._zi = float(value)

    @property
    def capacity(self) -> float:
        return self._c

    @property
    def discharge_capacity(self) -> float:
        return self._cn - self._c

    @property
    def nominal_capacity(self) -> float:
        return self._cn

    @property
    def nominal_voltage(self) -> float:
        return self._vn

    @property
    def max_current(self) -> float:
        if self._imax is not None:
            return float(self._imax)
        if self.discharge_curves is not None and len(self.discharge_curves):
            return self.discharge_curves.max_z
        return np.inf

    @max_current.setter
    def max_current(self, value: Optional[float]) -> None:
        self._imax = value

    @property
    def soh(self) -> float:
        if self.age_model is not None:
            return self.age_model.soh
        return self._soh

    @soh.setter
    def soh(self, value: float) -> None:
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError("SoH must be between 0 and 1")
        if self.age_model is not None:
            if not isinstance(self.age_model, DummyAgeModel):
                raise ConfigurationError(
                    f"SoH of this cell is determined by its {type(self.age_model).__name__}"
                )
            self.age_model.soh = value
        self._soh = float(value)
        self._c = min(self._c, self._cn * self.soh)

    # =========================================================================
    # Operations
    # =========================================================================

    def dummy_charge(self, dq: float) -> float:
        return float(np.clip(self._c + dq, 0.0, self._cn * self.soh))

    def charge(self, dq: float) -> None:
        self._c = self.dummy_charge(dq)
        self.soc_changed.emit(self.soc)

    def get_new_voltage(self, current: float, dt: float) -> float:
        if self.discharge_curves is None or len(self.discharge_curves) == 0:
            raise ConfigurationError("Cell has no discharge curves")
        c_new = self.dummy_charge(current * dt / SECONDS_PER_HOUR)
        dod = float(np.clip((self._cn - c_new) / self._cn, 0.0, 1.0))
        if len(self.discharge_curves) == 1:
            return float(self.discharge_curves[0](dod))
        return self.discharge_curves.interpolate(abs(current), dod)

    def topology(self) -> Tuple[int, int]:
        return 1, 1

    def iter_cells(self) -> Iterator["Cell"]:
        yield self

    @property
    def has_cells(self) -> bool:
        return True

    # =========================================================================
    # Curves and Aging
    # =========================================================================

    def add_curves(self, curves, kind: str = "discharge") -> None:
        """
        Attach curves to the cell.

        Parameters:
        ----------
        curves : CurveFitCollection or CurveFit
            A collection is stored by reference. A single fit is added to
            the cell's collection (created on first use).

        kind : str
            "discharge" or "cycle_life"
        """
        if kind not in CURVE_KINDS:
            raise ConfigurationError(f"Unknown curve kind '{kind}'. Valid options: {list(CURVE_KINDS)}")

        if kind == "cycle_life":
            if not isinstance(curves, CurveFit):
                raise ConfigurationError("A cycle life curve must be a CurveFit")
            self.cycle_life_curve = curves
            if self.age_model is not None and self.age_model.cycle_life_curve is None:
                self.age_model.cycle_life_curve = curves
            return

        if isinstance(curves, CurveFitCollection):
            self.discharge_curves = curves
        elif isinstance(curves, CurveFit):
            if self.discharge_curves is None:
                self.discharge_curves = CurveFitCollection()
            self.discharge_curves.add(curves)
        else:
            raise ConfigurationError(
                f"Discharge curves must be a CurveFitCollection or CurveFit, got {type(curves).__name__}"
            )

        if len(self.discharge_curves):
            self._v = self.get_new_voltage(0.0, 0.0)

    def randomize_curves(self, spread: float = 0.05, rng: Optional[np.random.Generator] = None) -> None:
        """Replace the (possibly shared) discharge curves by a randomized private copy."""
        if self.discharge_curves is None:
            raise ConfigurationError("Cell has no discharge curves to randomize")
        if rng is None:
            rng = np.random.default_rng()
        curves = copy.deepcopy(self.discharge_curves)
        for fit in curves:
            if isinstance(fit, DischargeFit):
                fit.randomize(spread, rng)
        self.discharge_curves = curves
        self._v = self.get_new_voltage(0.0, 0.0)

    def init_age_model(self, age_model="none", cycle_counter="auto") -> None:
        """
        Set up cell-level aging.

        The cycle counter observes this cell's soc_changed signal and the
        cell takes its SoH from the age model afterwards.
        """
        if self.cycle_counter is not None:
            self.soc_changed.disconnect(self.cycle_counter.update)
        model, counter, lower_level = build_age_model(
            age_model, cycle_counter,
            soc=self.soc, soh=self._soh, cycle_life_curve=self.cycle_life_curve,
        )
        if lower_level:
            raise ConfigurationError("A cell has no lower level to take its SoH from")
        self.age_model = model
        self.cycle_counter = counter
        self.soc_changed.connect(counter.update)
        model.soh_changed.connect(self._on_soh_changed)

    def _on_soh_changed(self, soh: float) -> None:
        self._c = min(self._c, self._cn * soh)

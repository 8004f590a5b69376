"""
Aging Collaborators
===================

Cycle counters observe SoC changes and report completed half cycles; age
models turn half cycles into a state of health (SoH) and notify their
owner whenever it changes.

    battery.soc_changed --> counter.update(soc)
    counter.cycle_completed --> age_model.on_cycle(depth)
    age_model.soh_changed --> battery (socMax ceiling update)
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from .config import AGE_MODEL_SELECTORS, CYCLE_COUNTER_SELECTORS
from .curves.base import CurveFit
from .exceptions import ConfigurationError
from .observers import Signal

logger = logging.getLogger(__name__)

# SoH at which a cell reaches its end of life
END_OF_LIFE_SOH = 0.8


# =============================================================================
# Cycle Counters
# =============================================================================

class CycleCounter(ABC):
    """Observer of SoC changes that emits the depth of each completed half cycle."""

    def __init__(self, soc: float = 0.0, soc_max: float = 1.0):
        self.soc_max = soc_max
        self.cycle_completed = Signal()
        self._last_soc = float(soc)

    @abstractmethod
    def update(self, soc: float) -> None:
        """Called with the new SoC after every committed request."""


class DummyCycleCounter(CycleCounter):
    """Counter that never reports a cycle."""

    def update(self, soc: float) -> None:
        self._last_soc = float(soc)


class HalfCycleCounter(CycleCounter):
    """
    Records a half cycle whenever the SoC changes direction.

    The depth of a half cycle is the SoC difference between two
    consecutive turning points.
    """

    def __init__(self, soc: float = 0.0, soc_max: float = 1.0):
        super().__init__(soc, soc_max)
        self._direction = 0
        self._turning_point = float(soc)
        self.half_cycles: List[float] = []

    def update(self, soc: float) -> None:
        soc = float(soc)
        delta = soc - self._last_soc
        if delta == 0.0:
            return
        direction = 1 if delta > 0 else -1

        if self._direction != 0 and direction != self._direction:
            depth = abs(self._last_soc - self._turning_point)
            self._turning_point = self._last_soc
            if depth > 0.0:
                self.half_cycles.append(depth)
                self.cycle_completed.emit(depth)

        self._direction = direction
        self._last_soc = soc

    @property
    def equivalent_full_cycles(self) -> float:
        """Sum of all recorded half cycle depths divided by two."""
        return 0.5 * float(np.sum(self.half_cycles))


# =============================================================================
# Age Models
# =============================================================================

class AgeModel(ABC):
    """
    Source of the state of health of a battery.

    Subclasses implement on_cycle() and call _set_soh(), which notifies
    soh_changed observers whenever the value actually changes.
    """

    def __init__(self, soh: float = 1.0, cycle_life_curve: Optional[CurveFit] = None):
        self.soh_changed = Signal()
        self._soh = float(soh)
        self.cycle_life_curve = cycle_life_curve
        self.counters: List[CycleCounter] = []

    @property
    def soh(self) -> float:
        return self._soh

    def _set_soh(self, value: float) -> None:
        value = float(np.clip(value, 0.0, 1.0))
        if value != self._soh:
            self._soh = value
            self.soh_changed.emit(value)

    def add_counter(self, counter: CycleCounter) -> None:
        """Listen to the half cycles reported by counter."""
        if not isinstance(counter, CycleCounter):
            raise ConfigurationError(f"Expected a CycleCounter, got {type(counter).__name__}")
        counter.cycle_completed.connect(self.on_cycle)
        self.counters.append(counter)

    @abstractmethod
    def on_cycle(self, depth: float) -> None:
        """Called with the depth of every completed half cycle."""


class DummyAgeModel(AgeModel):
    """Age model that keeps SoH constant unless it is set explicitly."""

    @AgeModel.soh.setter
    def soh(self, value: float) -> None:
        self._set_soh(value)

    def on_cycle(self, depth: float) -> None:
        pass


class EventOrientedAgeModel(AgeModel):
    """
    Event oriented age model.

    Every half cycle of depth d consumes 0.5 / N(d) of the cell life, where
    N is the cycle life curve. The SoH drops linearly with the accumulated
    damage and reaches the end of life SoH when the damage reaches 1.
    """

    def __init__(
        self,
        cycle_life_curve: Optional[CurveFit] = None,
        soh: float = 1.0,
        eol: float = END_OF_LIFE_SOH,
    ):
        super().__init__(soh, cycle_life_curve)
        if not 0.0 < eol < 1.0:
            raise ConfigurationError("End of life SoH must be in (0, 1)")
        self.eol = eol
        self.soh_initial = float(soh)
        self.damage = 0.0

    def on_cycle(self, depth: float) -> None:
        if self.cycle_life_curve is None or depth <= 0.0:
            return
        cycles = float(self.cycle_life_curve(min(depth, 1.0)))
        if cycles <= 0.0:
            return
        self.damage += 0.5 / cycles
        self._set_soh(self.soh_initial - (1.0 - self.eol) * self.damage)


# =============================================================================
# Selector Resolution
# =============================================================================

def build_age_model(
    selector="none",
    counter_selector="auto",
    soc: float = 0.0,
    soc_max: float = 1.0,
    soh: float = 1.0,
    cycle_life_curve: Optional[CurveFit] = None,
) -> Tuple[AgeModel, CycleCounter, bool]:
    """
    Resolve age model and cycle counter selectors.

    Parameters:
    ----------
    selector : str or AgeModel
        "none" (constant SoH), "eo" (event oriented), "lower_level" (SoH
        taken from the element tree) or a custom AgeModel instance

    counter_selector : str or CycleCounter
        "auto" (HalfCycleCounter) or a custom CycleCounter instance

    soc, soc_max : float
        Initial SoC and SoC ceiling handed to an "auto" counter

    soh : float
        Initial SoH

    cycle_life_curve : CurveFit, optional
        Cycle life curve for the event oriented model

    Returns:
    -------
    tuple
        (age_model, counter, lower_level)
    """
    if isinstance(selector, str):
        if selector not in AGE_MODEL_SELECTORS:
            raise ConfigurationError(
                f"Unknown age model '{selector}'. "
                f"Valid options: {list(AGE_MODEL_SELECTORS)} or an AgeModel object"
            )
    elif not isinstance(selector, AgeModel):
        raise ConfigurationError(f"Expected an age model selector or AgeModel, got {type(selector).__name__}")

    if selector in ("none", "lower_level"):
        return DummyAgeModel(soh), DummyCycleCounter(soc, soc_max), selector == "lower_level"

    if isinstance(counter_selector, CycleCounter):
        counter = counter_selector
        counter.soc_max = soc_max
    elif counter_selector in CYCLE_COUNTER_SELECTORS:
        counter = HalfCycleCounter(soc, soc_max)
    else:
        raise ConfigurationError(
            f"Unknown cycle counter '{counter_selector}'. "
            f"Valid options: {list(CYCLE_COUNTER_SELECTORS)} or a CycleCounter object"
        )

    if selector == "eo":
        if cycle_life_curve is None:
            logger.warning("Event oriented age model has no cycle life curve; SoH stays constant")
        age_model = EventOrientedAgeModel(cycle_life_curve, soh=soh)
    else:
        age_model = selector
        if cycle_life_curve is not None and age_model.cycle_life_curve is None:
            age_model.cycle_life_curve = cycle_life_curve

    age_model.add_counter(counter)
    return age_model, counter, False

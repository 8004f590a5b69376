"""
Battery Controller
==================

Owns the SoC/SoH state of a battery element tree and turns power or current
requests into a physically realizable (power, voltage, current) response.

Request flow:
1. Select the mode by the sign of the request (charge, discharge,
   self-discharge) and apply the matching efficiency and SoC limit.
   Self-discharge requests return a null response without changing state
2. Return a null response if the SoC limit has already been reached
3. Iterate the current until the achieved power I·mean(V_now, V_new)
   matches the request (power requests only)
4. Re-target the request if the current limit or the SoC limit is exceeded
5. Commit the charge to the element tree and notify SoC observers

Every iteration is a bounded loop. Exhausting max_iterations is not an
error: the last computed values are used.
"""

import logging
from typing import NamedTuple, Optional, Tuple

import numpy as np

from .aging import AgeModel, CycleCounter, EventOrientedAgeModel, build_age_model
from .config import BatteryConfig, HOURS_PER_MONTH, SECONDS_PER_HOUR
from .debugger import debug_section, debug_step, get_debugger
from .exceptions import ConfigurationError
from .models.base import BatteryElement
from .observers import Signal

logger = logging.getLogger(__name__)

# Stand-in for a SoC floor of exactly 0
SOC_EPSILON = float(np.finfo(float).eps)


class RequestResult(NamedTuple):
    """Realized response to a power or current request."""
    power: float    # W, positive when charging
    voltage: float  # V
    current: float  # A, positive when charging


class BatteryController:
    """
    Battery built from an element tree.

    Parameters:
    ----------
    element : BatteryElement
        Root of the element tree (cell, series/parallel element, ...)

    config : BatteryConfig, optional
        Limits, efficiencies, aging selectors and solver settings

    Example:
    -------
        battery = BatteryController(SeriesElement(cell_a, cell_b), BatteryConfig(soc_min=0.1))
        result = battery.power_request(-50.0, 60.0)   # discharge 50 W for a minute
        print(result.current, battery.soc)
    """

    def __init__(self, element: BatteryElement, config: Optional[BatteryConfig] = None):
        if config is None:
            config = BatteryConfig()
        config.check()
        if not isinstance(element, BatteryElement):
            raise ConfigurationError(f"Expected a BatteryElement, got {type(element).__name__}")
        if not element.has_cells:
            raise ConfigurationError(f"{type(element).__name__} contains no cells")

        self.element = element
        self.config = config

        self.eta_charge = config.eta_charge
        self.eta_discharge = config.eta_discharge
        self.self_discharge_rate = config.self_discharge_rate
        self.max_iterations = int(config.max_iterations)
        self.p_tol = config.p_tol
        self.s_tol = config.s_tol
        self.i_tol = config.i_tol

        self._soc_max = config.soc_max
        self._soc_min = config.soc_min if config.soc_min > 0 else SOC_EPSILON
        self._soc_ceiling = config.soc_max * config.soh_initial

        self.soc_changed = Signal()
        self.age_model: Optional[AgeModel] = None
        self.cycle_counter: Optional[CycleCounter] = None
        self._lower_level = False
        self._refresh_soc()
        self.init_age_model(config.age_model, config.cycle_counter, soh=config.soh_initial)

    # =========================================================================
    # Aging
    # =========================================================================

    def init_age_model(self, age_model="none", cycle_counter="auto", soh: Optional[float] = None) -> None:
        """
        (Re)initialize the age model and cycle counter.

        Parameters:
        ----------
        age_model : str or AgeModel
            "none", "eo", "lower_level" or a custom AgeModel

        cycle_counter : str or CycleCounter
            "auto" or a custom CycleCounter

        soh : float, optional
            Initial SoH (default: the current SoH)
        """
        if soh is None:
            soh = self.soh
        if self.cycle_counter is not None:
            self.soc_changed.disconnect(self.cycle_counter.update)
        if self.age_model is not None:
            self.age_model.soh_changed.disconnect(self._on_soh_changed)

        model, counter, lower_level = build_age_model(
            age_model, cycle_counter,
            soc=self._soc, soc_max=self._soc_max * soh, soh=soh,
            cycle_life_curve=self._cycle_life_curve(),
        )
        self.age_model = model
        self.cycle_counter = counter
        self._lower_level = lower_level

        self.soc_changed.connect(counter.update)
        model.soh_changed.connect(self._on_soh_changed)
        self._on_soh_changed(self.soh)

    def add_counter(self, counter: CycleCounter) -> None:
        """Replace the cycle counter that observes this battery."""
        if not isinstance(counter, CycleCounter):
            raise ConfigurationError(f"Expected a CycleCounter, got {type(counter).__name__}")
        if self.cycle_counter is not None:
            self.soc_changed.disconnect(self.cycle_counter.update)
        counter.soc_max = self._soc_ceiling
        self.cycle_counter = counter
        self.soc_changed.connect(counter.update)
        self.age_model.add_counter(counter)

    def _cycle_life_curve(self):
        for cell in self.element.iter_cells():
            curve = getattr(cell, "cycle_life_curve", None)
            if curve is not None:
                return curve
        return None

    def _on_soh_changed(self, soh: float) -> None:
        self._soc_ceiling = self._soc_max * soh
        if self.cycle_counter is not None:
            self.cycle_counter.soc_max = self._soc_ceiling

    # =========================================================================
    # Curves
    # =========================================================================

    def add_curves(self, curves, kind: str = "discharge") -> None:
        """Attach discharge curves or a cycle life curve to every cell."""
        self.element.add_curves(curves, kind)
        if kind == "cycle_life" and isinstance(self.age_model, EventOrientedAgeModel) \
                and self.age_model.cycle_life_curve is None:
            self.age_model.cycle_life_curve = curves

    def randomize_curves(self, spread: float = 0.05, rng: Optional[np.random.Generator] = None) -> None:
        """Give every cell its own randomized copy of its discharge curves."""
        self.element.randomize_curves(spread, rng)

    # =========================================================================
    # State
    # =========================================================================

    def _refresh_soc(self) -> None:
        self._soc = self.element.capacity / self.element.nominal_capacity

    @property
    def soh(self) -> float:
        if self._lower_level or self.age_model is None:
            return self.element.soh
        return self.age_model.soh

    @property
    def soc(self) -> float:
        """SoC relative to the aged capacity, clipped to [0, socMax]."""
        soh = self.soh
        if soh <= 0:
            return 0.0
        return float(np.clip(self._soc / soh, 0.0, self._soc_max))

    @property
    def soc_min(self) -> float:
        return self._soc_min

    @soc_min.setter
    def soc_min(self, value: float) -> None:
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError("socMin must be between 0 and 1")
        if value >= self._soc_max:
            raise ConfigurationError("socMin must be smaller than socMax")
        self._soc_min = value if value > 0 else SOC_EPSILON

    @property
    def soc_max(self) -> float:
        return self._soc_max

    @soc_max.setter
    def soc_max(self, value: float) -> None:
        if value > 1.0:
            raise ConfigurationError("socMax cannot be greater than 1")
        if value <= self._soc_min:
            raise ConfigurationError("socMax cannot be smaller than or equal to socMin")
        self._soc_max = value
        self._on_soh_changed(self.soh)

    @property
    def usable_capacity(self) -> float:
        """Capacity between the SoC limits (Ah)."""
        return (self._soc_ceiling - self._soc_min) * self.element.nominal_capacity

    @property
    def voltage(self) -> float:
        return self.element.voltage

    @property
    def max_current(self) -> float:
        return self.element.max_current

    @property
    def nominal_capacity(self) -> float:
        return self.element.nominal_capacity

    @property
    def nominal_voltage(self) -> float:
        return self.element.nominal_voltage

    @property
    def self_discharge_power(self) -> float:
        """Power (W, negative) drawn by self-discharge."""
        return -abs(self.self_discharge_rate * self.element.nominal_capacity
                    * self.element.nominal_voltage / HOURS_PER_MONTH)

    def topology(self) -> Tuple[int, int]:
        return self.element.topology()

    # =========================================================================
    # Requests
    # =========================================================================

    def _null_result(self) -> RequestResult:
        return RequestResult(0.0, self.element.voltage, 0.0)

    def _limit_reached(self, direction: float, soc_lim: float) -> bool:
        """True if the SoC is already at the limit for the requested direction."""
        if direction > 0:
            return self._soc >= soc_lim - self.s_tol
        return self._soc <= soc_lim + self.s_tol

    def _soc_limit_error(self, current: float, dt: float, soc_lim: float, limiting: bool):
        """
        Check a previewed charge against the SoC limit.

        Returns:
        -------
        tuple
            (correction needed, relative error of the SoC change)
        """
        dq = current * dt / SECONDS_PER_HOUR
        cn = self.element.nominal_capacity
        overshoot = self.element.dummy_charge(dq) / cn - self._soc
        # the preview saturates at the physical capacity bounds
        if abs(overshoot) < abs(dq) / cn:
            overshoot = dq / cn
        if overshoot == 0:
            return False, 0.0

        soc_new = self._soc + overshoot
        required = soc_lim - self._soc
        err = (required - overshoot) / overshoot
        crossed = soc_new > soc_lim if current > 0 else soc_new < soc_lim
        return (crossed or limiting) and abs(err) > self.s_tol, err

    def _converge_power(self, power: float, dt: float):
        """Fixed-point search for the current that delivers power."""
        v_now = self.element.voltage or self.element.nominal_voltage
        tracing = get_debugger() is not None
        p_it = power
        current = voltage = achieved = 0.0

        for k in range(self.max_iterations):
            current = p_it / v_now
            voltage = self.element.get_new_voltage(current, dt)
            achieved = current * (v_now + voltage) / 2.0
            err = power - achieved
            if tracing:
                debug_step(
                    category="Power",
                    description="Achieved power I·mean(V_now, V_new)",
                    variables={"P_request": power, "I": current, "V_now": v_now, "V_new": voltage},
                    result=achieved,
                    result_name="P",
                    result_unit="W",
                    iteration=k,
                )
            if abs(err) <= self.p_tol:
                break
            p_it += err
        else:
            logger.debug("Power iteration stopped after %d iterations", self.max_iterations)

        return current, voltage, achieved

    def _scale_to_soc_limit(self, current: float, soc_lim: float, err: float, iteration: int) -> float:
        """Scale current by the relative SoC error (the SoC change is linear in I)."""
        scaled = current + err * current
        logger.debug("SoC limit %.4g applied, current re-targeted to %.4g A", soc_lim, scaled)
        if get_debugger() is not None:
            debug_step(
                category="SocLimit",
                description="Scale current to the remaining SoC",
                variables={"I": current, "SoC": self._soc, "SoC_limit": soc_lim, "err": err},
                result=scaled,
                result_name="I_request",
                result_unit="A",
                iteration=iteration,
            )
        return scaled

    def _iterate_power(self, power: float, dt: float, soc_lim: float):
        """Converge the power request under the current and SoC limits."""
        limiting = False
        v_now = self.element.voltage or self.element.nominal_voltage
        current, voltage, achieved = self._converge_power(power, dt)

        for k in range(self.max_iterations):
            i_max = self.element.max_current
            if abs(current) > i_max + self.i_tol:
                power = np.sign(current) * i_max * (v_now + voltage) / 2.0
                logger.debug("Current limit %.4g A applied, power re-targeted to %.4g W", i_max, power)
                if get_debugger() is not None:
                    debug_step(
                        category="CurrentLimit",
                        description="Re-target power to the maximum current",
                        variables={"I": current, "Imax": i_max, "V_new": voltage},
                        result=power,
                        result_name="P_request",
                        result_unit="W",
                        iteration=k,
                    )
                current, voltage, achieved = self._converge_power(power, dt)

            reached, err = self._soc_limit_error(current, dt, soc_lim, limiting)
            if not reached:
                break
            limiting = True
            power = power + err * power
            current = self._scale_to_soc_limit(current, soc_lim, err, k)
            voltage = self.element.get_new_voltage(current, dt)
            achieved = current * (v_now + voltage) / 2.0
        else:
            logger.debug("Limit iteration stopped after %d iterations", self.max_iterations)

        return achieved, current, voltage

    def _iterate_current(self, current: float, dt: float, soc_lim: float):
        """Scale a current request until the SoC limit is met."""
        limiting = False
        for k in range(self.max_iterations):
            reached, err = self._soc_limit_error(current, dt, soc_lim, limiting)
            if not reached:
                break
            limiting = True
            current = self._scale_to_soc_limit(current, soc_lim, err, k)
        else:
            logger.debug("SoC limit iteration stopped after %d iterations", self.max_iterations)

        return current, self.element.get_new_voltage(current, dt)

    def _commit(self, voltage: float, current: float, dt: float) -> None:
        dq = current * dt / SECONDS_PER_HOUR
        self.element.voltage = voltage
        self.element.charge(dq)
        self._refresh_soc()
        if self._lower_level:
            self._on_soh_changed(self.soh)
        logger.debug("Committed %.6g Ah at %.4g V, SoC %.6g", dq, voltage, self._soc)
        if get_debugger() is not None:
            debug_step(
                category="Commit",
                description="Apply charge to the element tree",
                variables={"I": current, "dt": dt, "V": voltage},
                result=self._soc,
                result_name="SoC",
            )
        self.soc_changed.emit(self._soc)

    def power_request(self, power: float, dt: float) -> RequestResult:
        """
        Request a charge (power > 0) or discharge (power < 0) power.

        A request of 0 selects self-discharge mode, which returns a null
        response and leaves the battery state unchanged.

        Parameters:
        ----------
        power : float
            Requested power (W)

        dt : float
            Time step (s)

        Returns:
        -------
        RequestResult
            Realized (power, voltage, current). Power and current are zero
            if a limit prevents the request.
        """
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}")
        debug_section(f"power_request({power:g} W, {dt:g} s)")

        if power == 0:
            # self-discharge mode is reported, never applied
            if self.self_discharge_power != 0:
                logger.debug("Self-discharge request of %.4g W not applied", self.self_discharge_power)
            return self._null_result()
        if power > 0:
            eta = self.eta_charge
            soc_lim = self._soc_ceiling
        else:
            eta = 1.0 / self.eta_discharge
            soc_lim = self._soc_min

        requested = power * eta
        if self._limit_reached(requested, soc_lim):
            return self._null_result()

        achieved, current, voltage = self._iterate_power(requested, dt, soc_lim)
        if np.sign(achieved) != np.sign(requested) or current == 0:
            return self._null_result()

        self._commit(voltage, current, dt)
        return RequestResult(float(achieved / eta), float(voltage), float(current))

    def current_request(self, current: float, dt: float) -> RequestResult:
        """
        Request a charge (current > 0) or discharge (current < 0) current.

        The current is clamped to the maximum current and scaled down if
        it would cross the SoC limit. A request of 0 behaves like
        power_request(0, dt).

        Parameters:
        ----------
        current : float
            Requested current (A)

        dt : float
            Time step (s)

        Returns:
        -------
        RequestResult
            Realized (power, voltage, current)
        """
        if current == 0:
            return self.power_request(0.0, dt)
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}")
        debug_section(f"current_request({current:g} A, {dt:g} s)")

        if current > 0:
            eta = self.eta_charge
            soc_lim = self._soc_ceiling
        else:
            eta = 1.0 / self.eta_discharge
            soc_lim = self._soc_min

        requested = current * eta
        i_max = self.element.max_current
        requested = float(np.clip(requested, -i_max, i_max))
        if self._limit_reached(requested, soc_lim):
            return self._null_result()

        v_now = self.element.voltage
        achieved, voltage = self._iterate_current(requested, dt, soc_lim)
        if np.sign(achieved) != np.sign(requested) or achieved == 0:
            return self._null_result()

        power = achieved * (v_now + voltage) / 2.0
        self._commit(voltage, achieved, dt)
        return RequestResult(float(power / eta), float(voltage), float(achieved / eta))

    def __repr__(self) -> str:
        n_parallel, n_series = self.topology()
        return (
            f"{type(self).__name__}({n_series}S{n_parallel}P, SoC={self.soc:.3f}, "
            f"SoH={self.soh:.3f}, V={self.voltage:.4g} V)"
        )

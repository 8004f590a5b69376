"""
Battery Model Configuration
===========================

Contains configuration settings, physical constants, and default values
for battery simulations.

Units used throughout the package:
- Voltage: V
- Current: A
- Impedance: Ohms
- Capacity: Ah
- Power: W
- Time step: s
- Temperature: K (curve fits)
- Self-discharge rate: fraction per month
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import ConfigurationError


# =============================================================================
# Physical Constants
# =============================================================================

# Universal gas constant (J/(mol·K))
GAS_CONSTANT = 8.314462618

# Faraday constant (C/mol)
FARADAY_CONSTANT = 96485.33212

# Number of electrons transferred in the cell reaction (Li+ -> 1)
CHARGE_NUMBER = 1

# Hours in an average month (365.25 days / 12)
HOURS_PER_MONTH = 365.25 * 24.0 / 12.0

# Seconds per hour, for Ah <-> A·s conversions
SECONDS_PER_HOUR = 3600.0


# =============================================================================
# Cell and Battery Defaults
# =============================================================================

# Internal impedance of a cell (Ohm)
# Only used to distribute voltages/currents in circuit elements
DEFAULT_IMPEDANCE = 17e-3

DEFAULT_SOC_MIN = 0.2
DEFAULT_SOC_MAX = 1.0
DEFAULT_SOC_INITIAL = 0.2
DEFAULT_SOH_INITIAL = 1.0

# Charging / discharging efficiency. If a data sheet gives only one total
# efficiency, set the charging efficiency to it and discharging to 1.
DEFAULT_ETA_CHARGE = 0.97
DEFAULT_ETA_DISCHARGE = 0.97

# Self-discharge is neglected by default
DEFAULT_SELF_DISCHARGE_RATE = 0.0


# =============================================================================
# Solver Defaults
# =============================================================================

# Iteration cap for every nested loop of the request solver.
# Lowering it speeds up simulations at the expense of accuracy.
DEFAULT_MAX_ITERATIONS = 1_000_000

# Power iteration tolerance (W)
DEFAULT_POWER_TOLERANCE = 1e-3

# SoC limitation tolerance (fraction)
DEFAULT_SOC_TOLERANCE = 1e-6

# Current limitation tolerance (A)
DEFAULT_CURRENT_TOLERANCE = 1e-3


# =============================================================================
# Selectors
# =============================================================================

AGE_MODEL_SELECTORS = ("none", "eo", "lower_level")
CYCLE_COUNTER_SELECTORS = ("auto",)

SETUP_MODES = ("auto", "manual")
TOPOLOGIES = ("SP", "PS")             # strings of parallel cells / parallel strings
EQUALIZATIONS = ("passive", "active")
AGE_MODEL_LEVELS = ("pack", "cell")


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class BatteryConfig:
    """
    Configuration for a battery controller.

    Attributes:
    ----------
    soc_min : float
        Lower SoC limit [0, 1]. A value of 0 is stored internally as
        machine epsilon so that cycle counters see a strictly positive floor.

    soc_max : float
        Upper SoC limit (<= 1). Internally scaled by the SoH.

    soh_initial : float
        Initial state of health [0, 1].

    eta_charge : float
        Charging efficiency (0, 1].

    eta_discharge : float
        Discharging efficiency (0, 1].

    self_discharge_rate : float
        Self-discharge rate in 1/month [0, 1].

    age_model : str or AgeModel
        "none", "eo" (event oriented), "lower_level" (SoH delegated to
        the element tree) or a custom AgeModel instance.

    cycle_counter : str or CycleCounter
        "auto" or a custom CycleCounter instance.

    max_iterations : int
        Iteration cap for power, current and SoC limitation loops.

    p_tol, s_tol, i_tol : float
        Absolute tolerances for power (W), SoC and current (A).
    """
    soc_min: float = DEFAULT_SOC_MIN
    soc_max: float = DEFAULT_SOC_MAX
    soh_initial: float = DEFAULT_SOH_INITIAL

    # Efficiencies
    eta_charge: float = DEFAULT_ETA_CHARGE
    eta_discharge: float = DEFAULT_ETA_DISCHARGE
    self_discharge_rate: float = DEFAULT_SELF_DISCHARGE_RATE

    # Aging
    age_model: Any = "none"
    cycle_counter: Any = "auto"

    # Solver
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    p_tol: float = DEFAULT_POWER_TOLERANCE
    s_tol: float = DEFAULT_SOC_TOLERANCE
    i_tol: float = DEFAULT_CURRENT_TOLERANCE

    def _errors(self) -> list:
        errors = []

        if not 0.0 <= self.soc_min <= 1.0:
            errors.append("socMin must be between 0 and 1")
        if self.soc_max > 1.0:
            errors.append("socMax cannot be greater than 1")
        if self.soc_max <= self.soc_min:
            errors.append("socMax cannot be smaller than or equal to socMin")
        if not 0.0 <= self.soh_initial <= 1.0:
            errors.append("Initial SoH must be between 0 and 1")
        if not 0.0 < self.eta_charge <= 1.0:
            errors.append("Charging efficiency must be in (0, 1]")
        if not 0.0 < self.eta_discharge <= 1.0:
            errors.append("Discharging efficiency must be in (0, 1]")
        if not 0.0 <= self.self_discharge_rate <= 1.0:
            errors.append("Self-discharge rate must be between 0 and 1")
        if self.max_iterations < 1:
            errors.append("maxIterations must be at least 1")
        for name in ("p_tol", "s_tol", "i_tol"):
            if getattr(self, name) < 0:
                errors.append(f"Tolerance {name} cannot be negative")
        if isinstance(self.age_model, str) and self.age_model not in AGE_MODEL_SELECTORS:
            errors.append(
                f"Unknown age model '{self.age_model}'. "
                f"Valid options: {list(AGE_MODEL_SELECTORS)} or an AgeModel object"
            )
        if isinstance(self.cycle_counter, str) and self.cycle_counter not in CYCLE_COUNTER_SELECTORS:
            errors.append(
                f"Unknown cycle counter '{self.cycle_counter}'. "
                f"Valid options: {list(CYCLE_COUNTER_SELECTORS)} or a CycleCounter object"
            )
        return errors

    def validate(self) -> tuple[bool, str]:
        """Validate configuration values."""
        errors = self._errors()
        if errors:
            return False, "; ".join(errors)
        return True, ""

    def check(self) -> None:
        """Raise ConfigurationError if the configuration is invalid."""
        valid, message = self.validate()
        if not valid:
            raise ConfigurationError(message)


@dataclass
class PackConfig(BatteryConfig):
    """
    Configuration for a battery pack builder.

    Attributes:
    ----------
    soc_initial : float
        Initial SoC of the cells the builder creates [0, 1].

    setup : str
        "auto" derives the number of cells from pack and cell nominal
        values, "manual" takes them as given counts.

    topology : str
        "SP" for strings of parallel elements, "PS" for parallel strings.

    equalization : str
        "passive" or "active" balancing of the series strings.

    ideal : bool
        Model all cells as identical copies of one representative cell.
        Much faster, but cell-to-cell variation is lost.

    impedance : float
        Internal impedance of each cell (Ohm).

    impedance_std : float
        Standard deviation of cell impedances (Ohm). Ignored if ideal.

    age_model_level : str
        "pack" applies the age model to the whole pack, "cell" to each cell.

    seed : int, optional
        Seed for the random impedance distribution.
    """
    soc_initial: float = DEFAULT_SOC_INITIAL
    setup: str = "auto"
    topology: str = "SP"
    equalization: str = "passive"
    ideal: bool = False
    impedance: float = DEFAULT_IMPEDANCE
    impedance_std: float = 0.0
    age_model_level: str = "pack"
    seed: Optional[int] = field(default=None)

    def _errors(self) -> list:
        errors = super()._errors()

        if not 0.0 <= self.soc_initial <= 1.0:
            errors.append("Initial SoC must be between 0 and 1")
        if self.setup not in SETUP_MODES:
            errors.append(f"Unknown setup mode: {self.setup}")
        if self.topology not in TOPOLOGIES:
            errors.append(f"Unknown topology: {self.topology}")
        if self.equalization not in EQUALIZATIONS:
            errors.append(f"Unknown equalization: {self.equalization}")
        if self.age_model_level not in AGE_MODEL_LEVELS:
            errors.append(f"Unknown age model level: {self.age_model_level}")
        if self.impedance <= 0:
            errors.append("Cell impedance must be positive")
        if self.impedance_std < 0:
            errors.append("Impedance standard deviation cannot be negative")
        return errors

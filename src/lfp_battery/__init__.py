"""
LFP Battery Model
=================

Electrical simulation of lithium-ion (LiFePO4) batteries built from a
composable tree of cells.

Features:
---------
- Cells, series/parallel elements and ideal n-copy decorators
- Passive and active equalization of series strings
- Piecewise discharge curve fits (exponential / Nernst / exponential)
- Interpolation between curves measured at different currents
- Power and current requests honoring efficiency, current and SoC limits
- Cycle counting and event oriented aging

Usage:
------
    from src.lfp_battery import (
        BatteryPack, PackConfig, CurveFitCollection, DischargeFit
    )

    curves = CurveFitCollection(
        DischargeFit.fit(v_1a, c_1a, current=1.0, temperature=298.15),
        DischargeFit.fit(v_5a, c_5a, current=5.0, temperature=298.15),
    )
    pack = BatteryPack(40.0, 48.0, 2.5, 3.2, PackConfig(ideal=True),
                       discharge_curves=curves)
    result = pack.power_request(-500.0, 60.0)
"""

from .config import BatteryConfig, PackConfig
from .exceptions import BatteryError, ConfigurationError, InsufficientDataError
from .observers import Signal
from .debugger import SolverDebugger, SolverStep, get_debugger, set_debugger, debug_step
from .curves import CurveFit, CurveFitCollection, DischargeFit, WoehlerFit
from .aging import (
    AgeModel,
    CycleCounter,
    DummyAgeModel,
    DummyCycleCounter,
    EventOrientedAgeModel,
    HalfCycleCounter,
    build_age_model,
)
from .models import (
    ActiveSeriesElement,
    BatteryElement,
    Cell,
    ParallelElement,
    SeriesElement,
    SimpleParallelElement,
    SimpleSeriesElement,
)
from .controller import BatteryController, RequestResult
from .models.pack import BatteryPack

__all__ = [
    # Configuration and errors
    "BatteryConfig",
    "PackConfig",
    "BatteryError",
    "ConfigurationError",
    "InsufficientDataError",
    # Observers and tracing
    "Signal",
    "SolverDebugger",
    "SolverStep",
    "get_debugger",
    "set_debugger",
    "debug_step",
    # Curves
    "CurveFit",
    "CurveFitCollection",
    "DischargeFit",
    "WoehlerFit",
    # Aging
    "AgeModel",
    "CycleCounter",
    "DummyAgeModel",
    "DummyCycleCounter",
    "EventOrientedAgeModel",
    "HalfCycleCounter",
    "build_age_model",
    # Element tree
    "BatteryElement",
    "Cell",
    "SeriesElement",
    "ActiveSeriesElement",
    "ParallelElement",
    "SimpleSeriesElement",
    "SimpleParallelElement",
    # Batteries
    "BatteryController",
    "BatteryPack",
    "RequestResult",
]

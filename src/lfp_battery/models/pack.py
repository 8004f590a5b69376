"""
Battery Pack Builder
====================

Builds a battery controller around a pack of cells, either cell-resolved
(every cell simulated, impedances drawn from a normal distribution) or
ideal (one representative cell scaled by the pack topology).

Topologies:
- "SP": a series string of parallel blocks
- "PS": parallel strings of series cells
"""

import dataclasses
import logging
from typing import Optional

import numpy as np

from .cell import Cell
from .circuit import ActiveSeriesElement, ParallelElement, SeriesElement
from .simple import SimpleParallelElement, SimpleSeriesElement
from ..config import PackConfig
from ..controller import BatteryController
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class BatteryPack(BatteryController):
    """
    Battery pack of identical cell types.

    Parameters:
    ----------
    pack_capacity : float
        Nominal pack capacity (Ah). With setup "manual": number of cells
        in parallel.

    pack_voltage : float
        Nominal pack voltage (V). With setup "manual": number of cells in
        series.

    cell_capacity : float
        Nominal cell capacity (Ah)

    cell_voltage : float
        Nominal cell voltage (V)

    config : PackConfig, optional
        Pack layout, limits, efficiencies and aging settings

    discharge_curves : CurveFitCollection or CurveFit, optional
        Discharge curves shared by all cells

    cycle_life_curve : CurveFit, optional
        Cycle life curve for aging

    max_current : float, optional
        Maximum cell current (A). Defaults to the largest curve current.

    Example:
    -------
        pack = BatteryPack(40.0, 48.0, 2.5, 3.2, PackConfig(topology="SP"),
                           discharge_curves=curves)
        pack.topology()   # (16, 15)
    """

    def __init__(
        self,
        pack_capacity: float,
        pack_voltage: float,
        cell_capacity: float,
        cell_voltage: float,
        config: Optional[PackConfig] = None,
        discharge_curves=None,
        cycle_life_curve=None,
        max_current: Optional[float] = None,
    ):
        if config is None:
            config = PackConfig()
        config.check()
        if cell_capacity <= 0 or cell_voltage <= 0:
            raise ConfigurationError("Cell capacity and voltage must be positive")

        if config.setup == "auto":
            n_parallel = int(round(pack_capacity / cell_capacity))
            n_series = int(round(pack_voltage / cell_voltage))
        else:
            n_parallel = int(pack_capacity)
            n_series = int(pack_voltage)
        if n_parallel < 1 or n_series < 1:
            raise ConfigurationError(
                f"Pack needs at least one cell in series and in parallel, got {n_series}S{n_parallel}P"
            )

        cell_level = config.age_model_level == "cell"
        if cell_level and not isinstance(config.age_model, str):
            raise ConfigurationError("Cell-level aging needs an age model selector, not an AgeModel object")

        if discharge_curves is None:
            logger.warning("Battery pack built without discharge curves; add them before sending requests")
        if cycle_life_curve is None and config.age_model not in ("none", "lower_level"):
            logger.warning("Age model selected but no cycle life curve given; the pack will not age")

        self.n_parallel = n_parallel
        self.n_series = n_series
        self.ideal = config.ideal
        self._rng = np.random.default_rng(config.seed)

        def make_cell(impedance: float) -> Cell:
            cell = Cell(
                cell_capacity, cell_voltage,
                impedance=impedance,
                soc=config.soc_initial,
                soh=config.soh_initial,
                max_current=max_current,
                discharge_curves=discharge_curves,
                cycle_life_curve=cycle_life_curve,
            )
            if cell_level:
                cell.init_age_model(config.age_model, config.cycle_counter)
            return cell

        if config.ideal:
            element = self._build_ideal(make_cell(config.impedance), config)
        else:
            element = self._build_resolved(make_cell, config)

        if cell_level:
            config = dataclasses.replace(config, age_model="lower_level")
        super().__init__(element, config)

    def _build_ideal(self, cell: Cell, config: PackConfig):
        if config.topology == "SP":
            return SimpleSeriesElement(SimpleParallelElement(cell, self.n_parallel), self.n_series)
        return SimpleParallelElement(SimpleSeriesElement(cell, self.n_series), self.n_parallel)

    def _build_resolved(self, make_cell, config: PackConfig):
        series_type = SeriesElement if config.equalization == "passive" else ActiveSeriesElement

        if config.topology == "SP":
            shape = (self.n_series, self.n_parallel)
        else:
            shape = (self.n_parallel, self.n_series)
        impedances = np.abs(self._rng.normal(config.impedance, config.impedance_std, size=shape))

        if config.topology == "SP":
            blocks = [ParallelElement(*[make_cell(z) for z in row]) for row in impedances]
            return series_type(*blocks)
        strings = [series_type(*[make_cell(z) for z in row]) for row in impedances]
        return ParallelElement(*strings)

    @property
    def cell_count(self) -> int:
        return self.n_parallel * self.n_series

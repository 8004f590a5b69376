"""
Battery Element Models
======================

Element tree building blocks. The pack builder lives in models.pack
(it depends on the controller).
"""

from .base import BatteryElement
from .cell import Cell
from .circuit import ActiveSeriesElement, CircuitElement, ParallelElement, SeriesElement
from .simple import SimpleElement, SimpleParallelElement, SimpleSeriesElement

__all__ = [
    "BatteryElement",
    "Cell",
    "CircuitElement",
    "SeriesElement",
    "ActiveSeriesElement",
    "ParallelElement",
    "SimpleElement",
    "SimpleSeriesElement",
    "SimpleParallelElement",
]

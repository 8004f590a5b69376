"""
Curve Fits
==========

Discharge and cycle life curve fits and the collection that interpolates
between them.
"""

from .base import CurveFit
from .collection import CurveFitCollection, INTERPOLATION_METHODS
from .discharge_fit import DischargeFit
from .woehler_fit import WoehlerFit

__all__ = [
    "CurveFit",
    "CurveFitCollection",
    "INTERPOLATION_METHODS",
    "DischargeFit",
    "WoehlerFit",
]

"""
Cycle Life Curve
================

Woehler-type cycle life curve N(d) = a·d^(-b): number of full cycles a cell
survives when cycled with depth of discharge d.
"""

from typing import Sequence

import numpy as np
from scipy import optimize

from .base import CurveFit
from ..exceptions import ConfigurationError


def woehler(dod, a, b):
    """Cycles to failure at depth of discharge dod."""
    return a * np.power(dod, -b)


class WoehlerFit(CurveFit):
    """
    Cycle life curve used by event oriented age models.

    Parameters:
    ----------
    a : float
        Cycles to failure at 100 % DoD

    b : float
        Woehler exponent (> 0 means fewer cycles at deeper discharges)

    z : float
        Secondary coordinate (e.g. temperature) the curve was measured at
    """

    def __init__(self, a: float, b: float, z: float = 0.0, rmse: float = 0.0):
        if a <= 0:
            raise ConfigurationError("Cycle life coefficient a must be positive")
        self.a = float(a)
        self.b = float(b)
        self._z = float(z)
        self.rmse = float(rmse)

    @classmethod
    def fit(cls, dod: Sequence[float], cycles: Sequence[float], z: float = 0.0) -> "WoehlerFit":
        """
        Fit a cycle life curve to (DoD, cycles to failure) samples.

        The initial guess comes from a straight line in log-log space.
        """
        d = np.asarray(dod, dtype=float).ravel()
        n = np.asarray(cycles, dtype=float).ravel()
        if d.shape != n.shape or d.size < 2:
            raise ConfigurationError("At least two (DoD, cycles) samples of equal length are required")
        if np.any(d <= 0) or np.any(n <= 0):
            raise ConfigurationError("DoD and cycle samples must be positive")

        slope, intercept = np.polyfit(np.log(d), np.log(n), 1)
        p0 = (np.exp(intercept), -slope)
        (a, b), _ = optimize.curve_fit(woehler, d, n, p0=p0, maxfev=10000)

        rmse = float(np.sqrt(np.mean((woehler(d, a, b) - n) ** 2)))
        return cls(a, b, z=z, rmse=rmse)

    @property
    def z(self) -> float:
        return self._z

    def __call__(self, dod):
        d = np.asarray(dod, dtype=float)
        return self._as_output(dod, woehler(d, self.a, self.b))

    def __repr__(self) -> str:
        return f"WoehlerFit(a={self.a:g}, b={self.b:g}, z={self._z:g})"

"""
Curve Fit Interface
===================

Capability set shared by all curve fits that can be stored in a
CurveFitCollection or attached to a battery (discharge curves, cycle life
curves).
"""

from abc import ABC, abstractmethod

import numpy as np


class CurveFit(ABC):
    """
    A fitted function y = f(x) measured at a secondary coordinate z.

    Subclasses evaluate with __call__ (scalars return float, arrays return
    arrays) and report the z coordinate (e.g. current or temperature) at
    which the underlying curve was measured.
    """

    @abstractmethod
    def __call__(self, x):
        """Evaluate the fit at x."""

    @property
    @abstractmethod
    def z(self) -> float:
        """Secondary coordinate at which the curve was measured."""

    @staticmethod
    def _as_output(x, y):
        """Return a float for scalar input, an array otherwise."""
        if np.ndim(x) == 0:
            return float(y)
        return np.asarray(y, dtype=float)

"""
Curve Fit Collection
====================

Family of curve fits measured at different secondary coordinates z
(current, temperature). A query first evaluates every member fit at x and
then interpolates the resulting values across z.
"""

from typing import Iterator, List, Optional

import numpy as np
from scipy import interpolate as sp_interpolate

from .base import CurveFit
from ..exceptions import ConfigurationError, InsufficientDataError

# Interpolation kinds (scipy interp1d) and the number of members each needs
INTERPOLATION_METHODS = {
    "linear": 2,
    "nearest": 2,
    "previous": 2,
    "next": 2,
    "quadratic": 3,
    "cubic": 4,
}


class CurveFitCollection:
    """
    Collection of CurveFit objects sorted by z (unique).

    Parameters:
    ----------
    *fits : CurveFit
        Initial members

    method : str
        Interpolation method across z: linear, nearest, previous, next,
        quadratic or cubic

    extrapolate : bool
        Extrapolate queries outside the z range. If False (default) the
        query z is clamped to the first/last member.

    Example:
    -------
        curves = CurveFitCollection(fit_1a, fit_5a)
        v = curves.interpolate(2.5, 0.4)   # z = 2.5 A, DoD = 0.4
    """

    def __init__(self, *fits: CurveFit, method: str = "linear", extrapolate: bool = False):
        if method not in INTERPOLATION_METHODS:
            raise ConfigurationError(
                f"Unknown interpolation method '{method}'. "
                f"Valid options: {list(INTERPOLATION_METHODS)}"
            )
        self.method = method
        self.extrapolate = extrapolate
        self._fits: List[CurveFit] = []
        for fit in fits:
            self.add(fit)

    def add(self, fit: CurveFit) -> None:
        """Insert a fit, replacing any member with the same z."""
        if not isinstance(fit, CurveFit):
            raise ConfigurationError(
                f"Only CurveFit objects can be added to a collection, got {type(fit).__name__}"
            )
        z = fit.z
        self._fits = [f for f in self._fits if f.z != z]
        self._fits.append(fit)
        self._fits.sort(key=lambda f: f.z)

    def remove(self, z: float) -> None:
        """Remove the member measured at z (KeyError if there is none)."""
        for i, fit in enumerate(self._fits):
            if fit.z == z:
                del self._fits[i]
                return
        raise KeyError(z)

    @property
    def z(self) -> np.ndarray:
        """Sorted z coordinates of all members."""
        return np.array([f.z for f in self._fits], dtype=float)

    @property
    def max_z(self) -> Optional[float]:
        """Largest z coordinate (None for an empty collection)."""
        if not self._fits:
            return None
        return float(self._fits[-1].z)

    def interpolate(self, z: float, x):
        """
        Evaluate the family of curves at (z, x).

        Parameters:
        ----------
        z : float
            Secondary coordinate of the query (e.g. current in A)

        x : float or array
            Primary coordinate passed to every member fit (e.g. DoD)

        Returns:
        -------
        float or np.ndarray
            Interpolated value(s), shaped like x
        """
        required = INTERPOLATION_METHODS[self.method]
        if len(self._fits) < required:
            raise InsufficientDataError(
                f"'{self.method}' interpolation needs at least {required} curve fits, "
                f"collection has {len(self._fits)}"
            )

        zs = self.z
        ys = np.array([fit(x) for fit in self._fits], dtype=float)

        if not self.extrapolate:
            z = min(max(float(z), zs[0]), zs[-1])
            if self.method == "linear" and ys.ndim == 1:
                return float(np.interp(z, zs, ys))

        f = sp_interpolate.interp1d(
            zs, ys,
            kind=self.method,
            axis=0,
            assume_sorted=True,
            fill_value="extrapolate" if self.extrapolate else np.nan,
            bounds_error=False,
        )
        y = f(z)
        if np.ndim(x) == 0:
            return float(y)
        return np.asarray(y, dtype=float)

    def __len__(self) -> int:
        return len(self._fits)

    def __iter__(self) -> Iterator[CurveFit]:
        return iter(list(self._fits))

    def __getitem__(self, index: int) -> CurveFit:
        return self._fits[index]

    def __repr__(self) -> str:
        return f"CurveFitCollection(z={self.z.tolist()}, method='{self.method}')"

"""
Discharge Curve Fit
===================

Piecewise model of the discharge voltage of a lithium-ion cell over its
depth of discharge (DoD), fitted in three overlapping windows:

1. Exponential drop at the beginning of the discharge curve (fs)
2. Nernst equation in the middle of the curve (f)
3. Exponential drop at the end of the discharge curve (fe)

    fs(d) = (x0 + (x1 + x0·x2)·d)·exp(-x2·d)            d <= DoD_start
    f(d)  = x0 - R·T/(z·F)·ln(d / (1 - d)) + x1·d + x2   DoD_start < d < DoD_end
    fe(d) = x0·exp(-x1·d) + x2                          d >= DoD_end

The fits are done offline with Levenberg-Marquardt (scipy curve_fit),
Nelder-Mead (scipy minimize) or a combination of both. At simulation time
only the resulting coefficients are evaluated.
"""

import logging
import warnings
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import optimize

from .base import CurveFit
from ..config import CHARGE_NUMBER, FARADAY_CONSTANT, GAS_CONSTANT
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

FIT_MODES = ("lsq", "fmin", "both")
Z_SOURCES = ("current", "temperature")

# Number of DoD points used to resample a fit that was ingested without
# measurement data (needed to re-fit in randomize())
RESAMPLE_POINTS = 101


def exp_start(dod, x0, x1, x2):
    """Exponential drop at the beginning of the discharge curve."""
    return (x0 + (x1 + x0 * x2) * dod) * np.exp(-x2 * dod)


def exp_end(dod, x0, x1, x2):
    """Exponential drop at the end of the discharge curve."""
    return x0 * np.exp(-x1 * dod) + x2


def nernst(dod, x0, x1, x2, temperature):
    """Nernst equation with a linear correction term."""
    thermal_voltage = GAS_CONSTANT * temperature / (CHARGE_NUMBER * FARADAY_CONSTANT)
    return x0 - thermal_voltage * np.log(dod / (1.0 - dod)) + x1 * dod + x2


class DischargeFit(CurveFit):
    """
    Discharge voltage curve of a cell measured at one current and temperature.

    Attributes:
    ----------
    x, xs, xe : np.ndarray
        Coefficients of the Nernst fit f, the start fit fs and the end fit fe

    dod_start, dod_end : float
        DoD boundaries between fs / f and f / fe

    current : float
        Current (A) at which the curve was measured

    temperature : float
        Temperature (K) at which the curve was measured

    c_max : float
        Maximum discharge capacity of the measured curve (Ah), used to convert
        between discharge capacity and DoD

    rmse : float
        Root mean squared error over all three fit windows (offline quality
        signal, not used during simulation)

    Example:
    -------
        fit = DischargeFit.fit(voltage, c_dis, current=2.0, temperature=298.15)
        v = fit(0.5)             # voltage at 50 % DoD
        v = fit.discharge(1.1)   # voltage after 1.1 Ah have been discharged
    """

    def __init__(
        self,
        x: Sequence[float],
        xs: Sequence[float],
        xe: Sequence[float],
        dod_start: float,
        dod_end: float,
        current: float,
        temperature: float,
        c_max: float = 1.0,
        rmse: float = 0.0,
        z_source: str = "current",
        mode: str = "both",
        samples: Optional[Tuple[np.ndarray, np.ndarray, int, int]] = None,
    ):
        self.x = self._coefficients(x, "x")
        self.xs = self._coefficients(xs, "xs")
        self.xe = self._coefficients(xe, "xe")

        if not 0.0 <= dod_start <= dod_end <= 1.0:
            raise ConfigurationError(
                f"Fit boundaries must satisfy 0 <= DoD_start <= DoD_end <= 1, "
                f"got {dod_start}, {dod_end}"
            )
        if c_max <= 0:
            raise ConfigurationError("Maximum discharge capacity must be positive")
        if z_source not in Z_SOURCES:
            raise ConfigurationError(f"Unknown z source '{z_source}'. Valid options: {list(Z_SOURCES)}")
        if mode not in FIT_MODES:
            raise ConfigurationError(f"Unknown fit mode '{mode}'. Valid options: {list(FIT_MODES)}")

        self.dod_start = float(dod_start)
        self.dod_end = float(dod_end)
        self.current = float(current)
        self.temperature = float(temperature)
        self.c_max = float(c_max)
        self.rmse = float(rmse)
        self.z_source = z_source
        self.mode = mode
        # (dod, voltage, start_index, end_index) of the data the fit is based on
        self._samples = samples

    @staticmethod
    def _coefficients(values, name: str) -> np.ndarray:
        arr = np.asarray(values, dtype=float).ravel()
        if arr.shape != (3,):
            raise ConfigurationError(f"Coefficient vector {name} must have 3 elements, got {arr.size}")
        return arr

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_coefficients(
        cls,
        x: Sequence[float],
        xs: Sequence[float],
        xe: Sequence[float],
        dod_start: float,
        dod_end: float,
        current: float,
        temperature: float,
        c_max: float = 1.0,
        rmse: float = 0.0,
        z_source: str = "current",
    ) -> "DischargeFit":
        """
        Create a fit from externally fitted coefficient sets.

        Parameters:
        ----------
        x, xs, xe : sequence of 3 floats
            Coefficients of the Nernst, start and end fits

        dod_start, dod_end : float
            DoD boundaries between the three fit windows

        current : float
            Current (A) at which the curve was measured

        temperature : float
            Temperature (K) at which the curve was measured

        c_max : float
            Maximum discharge capacity of the measured curve (Ah)

        rmse : float
            Residual error reported by the fitting routine

        z_source : str
            "current" or "temperature": coordinate used by collections

        Returns:
        -------
        DischargeFit
        """
        return cls(x, xs, xe, dod_start, dod_end, current, temperature,
                   c_max=c_max, rmse=rmse, z_source=z_source)

    @classmethod
    def fit(
        cls,
        voltage: Sequence[float],
        discharge_capacity: Sequence[float],
        current: float,
        temperature: float,
        x0: Optional[Sequence[float]] = None,
        start_index: Optional[int] = None,
        end_index: Optional[int] = None,
        mode: str = "both",
        z_source: str = "current",
    ) -> "DischargeFit":
        """
        Fit a measured discharge curve in three parts.

        Parameters:
        ----------
        voltage : sequence of float
            Voltage (V) = f(discharge_capacity), e.g. from a data sheet

        discharge_capacity : sequence of float
            Discharge capacity (Ah)

        current : float
            Current (A) at which the curve was measured

        temperature : float
            Temperature (K) at which the curve was measured

        x0 : sequence of 9 floats, optional
            Initial parameters [E0, Ea, Eb, Aex, Bex, Cex, x0, v0, delta]:
            E0, Ea, Eb for the Nernst fit, Aex, Bex, Cex for the exponential
            drop at the end and x0, v0, delta for the exponential drop at the
            beginning of the curve. Default: zeros with E0 at the mean voltage.

        start_index, end_index : int, optional
            Sample indices where the Nernst window starts and ends.
            Defaults to the samples closest to 10 % and 90 % DoD.

        mode : str
            "lsq" (Levenberg-Marquardt), "fmin" (Nelder-Mead) or "both"

        z_source : str
            "current" or "temperature": coordinate used by collections

        Returns:
        -------
        DischargeFit
        """
        if mode not in FIT_MODES:
            raise ConfigurationError(f"Unknown fit mode '{mode}'. Valid options: {list(FIT_MODES)}")

        v = np.asarray(voltage, dtype=float).ravel()
        c_dis = np.asarray(discharge_capacity, dtype=float).ravel()
        if v.shape != c_dis.shape:
            raise ConfigurationError("Voltage and discharge capacity must have the same length")

        order = np.argsort(c_dis)
        v, c_dis = v[order], c_dis[order]
        c_max = float(c_dis.max()) if c_dis.size else 0.0
        if c_max <= 0:
            raise ConfigurationError("Discharge capacity samples must contain a positive value")
        dod = c_dis / c_max

        st, en = cls._window_indices(dod, start_index, end_index)

        if x0 is None:
            x0 = np.zeros(9)
            x0[0] = float(np.mean(v[st:en + 1]))
        x0 = np.asarray(x0, dtype=float).ravel()
        if x0.shape != (9,):
            raise ConfigurationError(f"x0 must have 9 elements, got {x0.size}")

        x, xs, xe, rmse = cls._fit_windows(dod, v, temperature, x0, st, en, mode)

        return cls(x, xs, xe, dod[st], dod[en], current, temperature,
                   c_max=c_max, rmse=rmse, z_source=z_source, mode=mode,
                   samples=(dod, v, st, en))

    @staticmethod
    def _window_indices(
        dod: np.ndarray,
        start_index: Optional[int],
        end_index: Optional[int]
    ) -> Tuple[int, int]:
        """Validate (or choose) the Nernst window [st, en]."""
        n = dod.size
        if start_index is None:
            start_index = max(2, int(np.argmin(np.abs(dod - 0.1))))
        if end_index is None:
            end_index = min(n - 3, int(np.argmin(np.abs(dod - 0.9))))

        # every window needs at least as many samples as coefficients (3)
        if start_index < 2 or end_index > n - 3 or end_index - start_index < 2:
            raise ConfigurationError(
                f"Cannot split {n} samples into three fit windows at indices "
                f"{start_index} and {end_index}"
            )
        if dod[start_index] <= 0.0 or dod[end_index] >= 1.0:
            raise ConfigurationError("The Nernst window must lie strictly inside 0 < DoD < 1")
        return int(start_index), int(end_index)

    @staticmethod
    def _fit_piece(func, xdata, ydata, p0, mode):
        """Fit one window, returning the coefficients."""
        p = np.asarray(p0, dtype=float)

        if mode in ("lsq", "both"):
            try:
                with warnings.catch_warnings():
                    # redundant Nernst constants make the covariance undefined
                    warnings.simplefilter("ignore", optimize.OptimizeWarning)
                    p, _ = optimize.curve_fit(func, xdata, ydata, p0=p, method="lm", maxfev=10000)
            except RuntimeError as e:
                if mode == "lsq":
                    raise
                logger.debug("Levenberg-Marquardt fit did not converge (%s), using Nelder-Mead", e)

        if mode in ("fmin", "both"):
            def sse(q):
                with np.errstate(all="ignore"):
                    r = func(xdata, *q) - ydata
                value = float(np.sum(r ** 2))
                return value if np.isfinite(value) else np.inf

            result = optimize.minimize(sse, p, method="Nelder-Mead",
                                       options={"maxiter": 20000, "xatol": 1e-10, "fatol": 1e-12})
            p = result.x

        return np.asarray(p, dtype=float)

    @classmethod
    def _fit_windows(cls, dod, v, temperature, x0, st, en, mode):
        """Fit f, fs and fe and return (x, xs, xe, rmse)."""
        def f(d, a, b, c):
            return nernst(d, a, b, c, temperature)

        d_n, v_n = dod[st:en + 1], v[st:en + 1]
        d_s, v_s = dod[:st + 1], v[:st + 1]
        d_e, v_e = dod[en:], v[en:]

        x = cls._fit_piece(f, d_n, v_n, x0[0:3], mode)
        xe = cls._fit_piece(exp_end, d_e, v_e, x0[3:6], mode)
        xs = cls._fit_piece(exp_start, d_s, v_s, x0[6:9], mode)

        errors = np.concatenate([
            f(d_n, *x) - v_n,
            exp_start(d_s, *xs) - v_s,
            exp_end(d_e, *xe) - v_e,
        ])
        rmse = float(np.sqrt(np.mean(errors ** 2)))
        return x, xs, xe, rmse

    # =========================================================================
    # Evaluation
    # =========================================================================

    @property
    def z(self) -> float:
        """Current (A) or temperature (K) at which the curve was measured."""
        if self.z_source == "temperature":
            return self.temperature
        return self.current

    @property
    def coefficients(self) -> np.ndarray:
        """All coefficients in x0 order [E0, Ea, Eb, Aex, Bex, Cex, x0, v0, delta]."""
        return np.concatenate([self.x, self.xe, self.xs])

    def __call__(self, dod):
        """
        Voltage (V) at depth of discharge dod [0, 1].

        Accepts scalars (returns float) or arrays (returns array).
        """
        d = np.atleast_1d(np.asarray(dod, dtype=float))
        v = np.full(d.shape, np.nan)

        is_start = d <= self.dod_start
        is_end = d >= self.dod_end
        is_mid = (d > self.dod_start) & (d < self.dod_end)

        v[is_start] = exp_start(d[is_start], *self.xs)
        v[is_end] = exp_end(d[is_end], *self.xe)
        v[is_mid] = nernst(d[is_mid], *self.x, self.temperature)

        if np.ndim(dod) == 0:
            return float(v[0])
        return v.reshape(np.shape(dod))

    def discharge(self, c_dis):
        """Voltage (V) after discharging c_dis (Ah)."""
        return self(np.asarray(c_dis, dtype=float) / self.c_max)

    # =========================================================================
    # Randomization
    # =========================================================================

    def _resample(self) -> Tuple[np.ndarray, np.ndarray, int, int]:
        """Sample this fit on a DoD grid (for fits ingested without data)."""
        dod = np.linspace(0.0, 1.0, RESAMPLE_POINTS)
        v = self(dod)
        n = dod.size
        st = int(np.clip(np.searchsorted(dod, self.dod_start), 2, n - 5))
        en = int(np.clip(np.searchsorted(dod, self.dod_end), st + 2, n - 3))
        return dod, v, st, en

    def randomize(self, spread: float = 0.05, rng: Optional[np.random.Generator] = None) -> None:
        """
        Re-fit the curve starting from randomly perturbed coefficients.

        Used to synthesize cell-to-cell variation without new measured data.
        Fits created from coefficients only are first resampled on a DoD grid.

        Parameters:
        ----------
        spread : float
            Relative standard deviation of the seed perturbation

        rng : np.random.Generator, optional
            Random generator (default: a fresh default_rng())
        """
        if rng is None:
            rng = np.random.default_rng()
        if self._samples is None:
            self._samples = self._resample()
        dod, v, st, en = self._samples

        seeds = self.coefficients
        seeds = seeds * (1.0 + spread * rng.standard_normal(seeds.size))

        x, xs, xe, rmse = self._fit_windows(dod, v, self.temperature, seeds, st, en, self.mode)
        self.x, self.xs, self.xe = x, xs, xe
        self.rmse = rmse
        self.dod_start = float(dod[st])
        self.dod_end = float(dod[en])

    def __repr__(self) -> str:
        return (
            f"DischargeFit(current={self.current:g} A, temperature={self.temperature:g} K, "
            f"DoD window=[{self.dod_start:.3g}, {self.dod_end:.3g}], rmse={self.rmse:.3g})"
        )

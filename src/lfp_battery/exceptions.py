"""
Battery Model Exceptions
========================

Configuration and interface violations are raised immediately.
Physical limits (SoC or current saturation) and exhausted iteration
budgets are NOT errors: they are absorbed into the numeric result.
"""


class BatteryError(Exception):
    """Base class for all battery model errors."""


class ConfigurationError(BatteryError, ValueError):
    """
    Invalid construction or assembly of a battery model.

    Raised for invalid tolerances/limits/efficiencies, missing discharge
    curves, incompatible topology composition and objects that do not
    implement a required capability set.
    """


class InsufficientDataError(BatteryError, RuntimeError):
    """A curve fit collection holds too few curves for interpolation."""

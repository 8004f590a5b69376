"""
lfp-battery - Main Package
==========================

Electrical simulation of lithium-ion batteries assembled from composable
circuits of cells.

This package provides modules for:
- Battery element tree (lfp_battery.models): cells, series/parallel
  combinations and their simplified "ideal" variants
- Discharge curve fits (lfp_battery.curves): piecewise voltage model and
  interpolation across families of measured curves
- Request solver (lfp_battery.controller): power/current requests with
  efficiency, current and SoC limitation
"""

__version__ = "0.1.0"
__author__ = "lfp-battery Team"

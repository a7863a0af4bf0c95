"""
Baseline methods for comparison.
"""

from .pysindy_baseline import PYSINDY_AVAILABLE, fit_pysindy_baseline

__all__ = ["fit_pysindy_baseline", "PYSINDY_AVAILABLE"]

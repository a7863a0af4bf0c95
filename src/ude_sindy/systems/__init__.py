"""
Reference dynamical systems and measurement noise.
"""

from .base import DynamicalSystem, add_noise
from .biological import LotkaVolterra

__all__ = [
    "DynamicalSystem",
    "LotkaVolterra",
    "add_noise",
]

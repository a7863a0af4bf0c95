"""
Evaluation metrics for discovered models.

This module provides metrics for structure recovery, coefficient accuracy,
and trajectory reconstruction.
"""

from .coefficient import compute_coefficient_error, compute_relative_coefficient_error
from .reconstruction import compute_pointwise_l2_error, compute_reconstruction_error
from .structure import compute_structure_metrics, sparsity_ratio

__all__ = [
    # Structure metrics
    "compute_structure_metrics",
    "sparsity_ratio",
    # Coefficient metrics
    "compute_coefficient_error",
    "compute_relative_coefficient_error",
    # Reconstruction metrics
    "compute_reconstruction_error",
    "compute_pointwise_l2_error",
]

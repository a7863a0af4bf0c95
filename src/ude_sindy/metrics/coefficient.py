"""
Coefficient accuracy metrics.
"""

import numpy as np


def compute_coefficient_error(xi_pred: np.ndarray, xi_true: np.ndarray) -> float:
    """Mean absolute error over all coefficients."""
    return float(np.mean(np.abs(xi_pred - xi_true)))


def compute_relative_coefficient_error(
    xi_pred: np.ndarray, xi_true: np.ndarray, eps: float = 1e-10
) -> float:
    """Frobenius norm of the error relative to the true coefficients."""
    return float(np.linalg.norm(xi_pred - xi_true) / (np.linalg.norm(xi_true) + eps))

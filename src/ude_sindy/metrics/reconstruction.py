"""
Trajectory and signal reconstruction metrics.
"""

import numpy as np


def compute_reconstruction_error(x_pred: np.ndarray, x_true: np.ndarray) -> float:
    """Root mean squared error between two arrays of equal shape."""
    if x_pred.shape != x_true.shape:
        raise ValueError(f"Shape mismatch: {x_pred.shape} vs {x_true.shape}")
    return float(np.sqrt(np.mean((x_pred - x_true) ** 2)))


def compute_pointwise_l2_error(y_pred: np.ndarray, y_true: np.ndarray) -> np.ndarray:
    """L2 norm of the error at each sample [n_samples]."""
    return np.linalg.norm(y_pred - y_true, axis=1)

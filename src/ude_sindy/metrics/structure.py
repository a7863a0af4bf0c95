"""
Structure recovery metrics.
"""

from typing import Dict

import numpy as np


def compute_structure_metrics(
    xi_pred: np.ndarray, xi_true: np.ndarray, tol: float = 1e-6
) -> Dict[str, float]:
    """
    Compare the active-term patterns of two coefficient matrices.

    Parameters
    ----------
    xi_pred : np.ndarray
        Discovered coefficients [n_terms, n_vars].
    xi_true : np.ndarray
        True coefficients [n_terms, n_vars].
    tol : float, optional
        Magnitude above which a coefficient counts as active.

    Returns
    -------
    metrics : Dict[str, float]
        precision, recall, f1, accuracy and the raw tp/fp/fn counts.
    """
    if xi_pred.shape != xi_true.shape:
        raise ValueError(f"Shape mismatch: {xi_pred.shape} vs {xi_true.shape}")
    pred = np.abs(xi_pred) > tol
    true = np.abs(xi_true) > tol

    tp = int(np.sum(pred & true))
    fp = int(np.sum(pred & ~true))
    fn = int(np.sum(~pred & true))

    precision = tp / (tp + fp) if tp + fp > 0 else 0.0
    recall = tp / (tp + fn) if tp + fn > 0 else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0

    return {
        "precision": precision,
        "recall": recall,
        "f1": f1,
        "accuracy": float(np.mean(pred == true)),
        "tp": tp,
        "fp": fp,
        "fn": fn,
    }


def sparsity_ratio(xi: np.ndarray, tol: float = 1e-6) -> float:
    """Fraction of zero coefficients."""
    return float(np.mean(np.abs(xi) <= tol))

"""
Formatting helpers for discovered equations.
"""

from typing import List

import numpy as np


def format_equation(
    xi: np.ndarray, term_names: List[str], precision: int = 4, tol: float = 0.0
) -> str:
    """
    Format one coefficient column as an equation right-hand side.

    Parameters
    ----------
    xi : np.ndarray
        Coefficients with shape [n_terms].
    term_names : List[str]
        Term names in library order.
    precision : int, optional
        Significant digits (default: 4).
    tol : float, optional
        Coefficients with magnitude <= tol are omitted (default: 0).

    Returns
    -------
    equation : str
        e.g. "-0.9 xy + 1.3 x", or "0" for an empty model.

    Examples
    --------
    >>> format_equation(np.array([0.0, 1.3, 0.0, -0.9]), ["1", "x", "y", "xy"])
    '1.3 x - 0.9 xy'
    """
    parts = []
    for coef, name in zip(xi, term_names):
        if abs(coef) <= tol:
            continue
        magnitude = f"{abs(coef):.{precision}g}"
        term = magnitude if name == "1" else f"{magnitude} {name}"
        if not parts:
            parts.append(f"-{term}" if coef < 0 else term)
        else:
            parts.append(f"- {term}" if coef < 0 else f"+ {term}")
    return " ".join(parts) if parts else "0"


"""
PySINDy STLSQ baseline.

Fits the same polynomial (+ sine) library with PySINDy's STLSQ optimizer so
results of ``sindy_stls`` can be cross-checked against an independent
implementation. PySINDy orders polynomial features by degree exactly like
``CandidateLibrary``, so coefficient rows line up.
"""

from typing import Tuple

import numpy as np

try:
    from pysindy import SINDy
    from pysindy.feature_library import CustomLibrary, PolynomialLibrary
    from pysindy.optimizers import STLSQ

    PYSINDY_AVAILABLE = True
except ImportError:
    PYSINDY_AVAILABLE = False


def fit_pysindy_baseline(
    X: np.ndarray,
    targets: np.ndarray,
    threshold: float = 0.1,
    poly_order: int = 5,
    include_sine: bool = True,
    alpha: float = 1e-10,
    max_iter: int = 100,
) -> Tuple[np.ndarray, float]:
    """
    Sparse regression of ``targets`` on a library of ``X`` with PySINDy.

    Parameters
    ----------
    X : np.ndarray
        States [n_samples, n_vars].
    targets : np.ndarray
        Regression targets [n_samples, n_vars] (passed as ``x_dot``).
    threshold : float, optional
        STLSQ threshold (default: 0.1).
    poly_order : int, optional
        Maximum polynomial degree (default: 5).
    include_sine : bool, optional
        Append sin of each coordinate after the monomials (default: True).
    alpha : float, optional
        Ridge penalty inside STLSQ (default: 1e-10, effectively OLS).
    max_iter : int, optional
        STLSQ iterations (default: 100).

    Returns
    -------
    xi : np.ndarray
        Coefficients [n_terms, n_vars] in ``CandidateLibrary`` order.
    threshold : float
        The threshold used.
    """
    if not PYSINDY_AVAILABLE:
        raise ImportError(
            "PySINDy is required for the baseline. Install with: pip install pysindy"
        )

    library = PolynomialLibrary(degree=poly_order, include_bias=True)
    if include_sine:
        library = library + CustomLibrary(
            library_functions=[lambda x: np.sin(x)],
            function_names=[lambda x: f"sin({x})"],
        )

    model = SINDy(
        feature_library=library,
        optimizer=STLSQ(threshold=threshold, alpha=alpha, max_iter=max_iter),
    )
    model.fit(np.asarray(X, dtype=float), t=1.0, x_dot=np.asarray(targets, dtype=float))
    return np.asarray(model.coefficients()).T, threshold

"""
Sequential Thresholded Least Squares (STLS) and threshold sweeps.

Coefficient matrices have shape [n_terms, n_vars]: rows follow the candidate
library order, columns follow the target dimensions, so ``Theta @ xi``
reproduces the targets.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_STLS_THRESHOLD = 0.1
DEFAULT_MAX_ITER = 10_000
DEFAULT_RIDGE = 1e-4


def _least_squares(Theta: np.ndarray, y: np.ndarray, ridge: float = 0.0) -> np.ndarray:
    """
    Minimum-norm least squares solution of ``Theta @ xi = y``.

    Columns are scaled to unit norm before the SVD-based solve, which keeps
    high-degree monomials from swamping the conditioning. Rank-deficient
    systems get the pseudo-inverse solution instead of an error. A positive
    ``ridge`` adds the penalty ``ridge * ||xi_scaled||^2`` on the scaled
    coefficients by solving the augmented system.
    """
    norms = np.linalg.norm(Theta, axis=0)
    norms[norms == 0] = 1.0
    A = Theta / norms
    if ridge > 0:
        n_terms = A.shape[1]
        A = np.vstack([A, np.sqrt(ridge) * np.eye(n_terms)])
        y = np.concatenate([y, np.zeros((n_terms,) + y.shape[1:])])
    coef, _, _, _ = np.linalg.lstsq(A, y, rcond=None)
    return coef / norms if coef.ndim == 1 else coef / norms[:, None]


def _threshold_active_set(
    Theta: np.ndarray,
    y: np.ndarray,
    active: np.ndarray,
    threshold: float,
    max_iter: int,
    ridge: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Refit on ``active`` and drop small coefficients until the set is stable."""
    n_terms = Theta.shape[1]
    xi = np.zeros(n_terms)
    for _ in range(max_iter):
        xi = np.zeros(n_terms)
        if not np.any(active):
            break
        xi[active] = _least_squares(Theta[:, active], y, ridge)
        new_active = active & (np.abs(xi) >= threshold)
        if np.array_equal(new_active, active):
            break
        active = new_active

    xi[~active] = 0.0
    return xi, active


def _stls_single(
    Theta: np.ndarray,
    y: np.ndarray,
    threshold: float,
    max_iter: int = DEFAULT_MAX_ITER,
    ridge: float = DEFAULT_RIDGE,
) -> np.ndarray:
    """
    STLS for a single target column.

    Fit, zero every coefficient with magnitude below ``threshold``, refit on
    the surviving terms, and repeat until the active set stops changing or
    ``max_iter`` refits have been done. An empty active set yields the zero
    function.

    With ``ridge > 0`` the active set is first screened with ridge fits,
    which keeps near-collinear columns from trading huge coefficients on
    noisy targets. Thresholding then continues from the screened set with
    plain least squares, so the returned coefficients are unbiased.
    """
    active = np.ones(Theta.shape[1], dtype=bool)
    if ridge > 0:
        _, active = _threshold_active_set(Theta, y, active, threshold, max_iter, ridge)
    xi, _ = _threshold_active_set(Theta, y, active, threshold, max_iter, 0.0)
    return xi


def sindy_stls(
    Theta: np.ndarray,
    x_dot: np.ndarray,
    threshold: float = DEFAULT_STLS_THRESHOLD,
    max_iter: int = DEFAULT_MAX_ITER,
    ridge: float = DEFAULT_RIDGE,
) -> Tuple[np.ndarray, float]:
    """
    Sparse regression with Sequential Thresholded Least Squares.

    Parameters
    ----------
    Theta : np.ndarray
        Design matrix with shape [n_samples, n_terms].
    x_dot : np.ndarray
        Targets with shape [n_samples, n_vars] (or [n_samples]).
    threshold : float, optional
        Coefficients with magnitude below this are zeroed (default: 0.1).
        A threshold of 0 reduces to ordinary least squares.
    max_iter : int, optional
        Maximum number of refits per column (default: 10000).
    ridge : float, optional
        Ridge penalty for the fits that screen the active set (default:
        1e-4). Zero gives plain STLS throughout.

    Returns
    -------
    xi : np.ndarray
        Coefficient matrix with shape [n_terms, n_vars].
    elapsed : float
        Wall-clock time in seconds.
    """
    if threshold < 0:
        raise ValueError("threshold must be non-negative")
    if ridge < 0:
        raise ValueError("ridge must be non-negative")
    Theta = np.asarray(Theta, dtype=float)
    x_dot = np.asarray(x_dot, dtype=float)
    if x_dot.ndim == 1:
        x_dot = x_dot[:, None]
    if Theta.shape[0] != x_dot.shape[0]:
        raise ValueError(
            f"Design matrix has {Theta.shape[0]} rows but targets have {x_dot.shape[0]}"
        )

    t_start = time.time()
    xi = np.column_stack(
        [
            _stls_single(Theta, x_dot[:, i], threshold, max_iter, ridge)
            for i in range(x_dot.shape[1])
        ]
    )
    return xi, time.time() - t_start


def residual_sum_of_squares(Theta: np.ndarray, x_dot: np.ndarray, xi: np.ndarray) -> float:
    """Sum of squared residuals of ``Theta @ xi`` against the targets."""
    return float(np.sum((x_dot - Theta @ xi) ** 2))


@dataclass(frozen=True)
class SweepEntry:
    """
    Result of STLS at one threshold.

    Attributes
    ----------
    threshold : float
        Sparsity threshold.
    coefficients : np.ndarray
        Read-only coefficient matrix [n_terms, n_vars].
    error : float
        In-sample residual sum of squares.
    n_active : int
        Number of nonzero coefficients over all columns.
    validation_error : float, optional
        Held-out residual sum of squares summed over folds, when the sweep
        was run with cross-validation.
    """

    threshold: float
    coefficients: np.ndarray
    error: float
    n_active: int
    validation_error: Optional[float] = None

    @property
    def active_per_column(self) -> np.ndarray:
        return np.count_nonzero(self.coefficients, axis=0)


@dataclass
class ThresholdSweepResult:
    """Ordered STLS results, one entry per swept threshold."""

    entries: List[SweepEntry]
    n_samples: int
    n_vars: int
    target_energy: float
    elapsed_time: float = 0.0

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[SweepEntry]:
        return iter(self.entries)

    def __getitem__(self, idx: int) -> SweepEntry:
        return self.entries[idx]

    @property
    def thresholds(self) -> np.ndarray:
        return np.array([e.threshold for e in self.entries])

    @property
    def errors(self) -> np.ndarray:
        return np.array([e.error for e in self.entries])

    @property
    def n_active(self) -> np.ndarray:
        return np.array([e.n_active for e in self.entries])

    @property
    def cross_validated(self) -> bool:
        return bool(self.entries) and self.entries[0].validation_error is not None


def _fold_indices(
    n_samples: int, n_folds: int, rng: Optional[np.random.Generator]
) -> List[np.ndarray]:
    order = np.arange(n_samples)
    if rng is not None:
        order = rng.permutation(n_samples)
    return [np.sort(fold) for fold in np.array_split(order, n_folds)]


def _fit_threshold(
    Theta: np.ndarray,
    x_dot: np.ndarray,
    threshold: float,
    max_iter: int,
    ridge: float,
    folds: Optional[List[np.ndarray]],
) -> SweepEntry:
    xi, _ = sindy_stls(Theta, x_dot, threshold, max_iter, ridge)
    xi.setflags(write=False)

    validation_error = None
    if folds is not None:
        validation_error = 0.0
        mask = np.ones(Theta.shape[0], dtype=bool)
        for fold in folds:
            mask[:] = True
            mask[fold] = False
            xi_fold, _ = sindy_stls(Theta[mask], x_dot[mask], threshold, max_iter, ridge)
            validation_error += residual_sum_of_squares(Theta[fold], x_dot[fold], xi_fold)

    return SweepEntry(
        threshold=float(threshold),
        coefficients=xi,
        error=residual_sum_of_squares(Theta, x_dot, xi),
        n_active=int(np.count_nonzero(xi)),
        validation_error=validation_error,
    )


def threshold_sweep(
    Theta: np.ndarray,
    x_dot: np.ndarray,
    thresholds: Sequence[float],
    max_iter: int = DEFAULT_MAX_ITER,
    n_workers: Optional[int] = None,
    n_folds: Optional[int] = None,
    random_state: Optional[int] = None,
    ridge: float = DEFAULT_RIDGE,
) -> ThresholdSweepResult:
    """
    Run STLS independently for every threshold.

    Fits are independent and run on a thread pool; numpy's least squares
    releases the GIL. Entries are returned in the order of ``thresholds``
    regardless of completion order.

    Parameters
    ----------
    Theta : np.ndarray
        Design matrix [n_samples, n_terms].
    x_dot : np.ndarray
        Targets [n_samples, n_vars].
    thresholds : Sequence[float]
        Thresholds to sweep.
    max_iter : int, optional
        Maximum STLS refits per column.
    n_workers : int, optional
        Thread count. None uses ``os.cpu_count()``; 1 runs serially.
    n_folds : int, optional
        If given, also compute K-fold held-out error for each threshold.
    random_state : int, optional
        Seed for shuffling samples into folds.
    ridge : float, optional
        Ridge penalty used to screen active sets, see ``sindy_stls``.

    Returns
    -------
    result : ThresholdSweepResult
    """
    Theta = np.asarray(Theta, dtype=float)
    x_dot = np.asarray(x_dot, dtype=float)
    if x_dot.ndim == 1:
        x_dot = x_dot[:, None]
    if Theta.shape[0] != x_dot.shape[0]:
        raise ValueError(
            f"Design matrix has {Theta.shape[0]} rows but targets have {x_dot.shape[0]}"
        )
    thresholds = [float(lam) for lam in thresholds]
    if not thresholds:
        raise ValueError("At least one threshold is required")

    folds = None
    if n_folds is not None:
        if not 2 <= n_folds <= Theta.shape[0]:
            raise ValueError(f"n_folds must be in [2, {Theta.shape[0]}], got {n_folds}")
        folds = _fold_indices(Theta.shape[0], n_folds, np.random.default_rng(random_state))

    if n_workers is None:
        n_workers = os.cpu_count() or 1

    logger.info(
        "Sweeping %d thresholds (%.3g to %.3g) with %d worker(s)",
        len(thresholds), min(thresholds), max(thresholds), n_workers,
    )

    t_start = time.time()

    def fit(lam: float) -> SweepEntry:
        return _fit_threshold(Theta, x_dot, lam, max_iter, ridge, folds)

    if n_workers == 1:
        entries = [fit(lam) for lam in thresholds]
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            entries = list(pool.map(fit, thresholds))

    return ThresholdSweepResult(
        entries=entries,
        n_samples=Theta.shape[0],
        n_vars=x_dot.shape[1],
        target_energy=float(np.sum(x_dot**2)),
        elapsed_time=time.time() - t_start,
    )

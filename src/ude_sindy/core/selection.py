"""
Model selection over a threshold sweep.

Each swept coefficient matrix is scored with an information criterion that
trades the residual sum of squares against the number of active terms. The
lowest score wins; ties go to the sparser model, then the smaller error.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from ..utils import format_equation
from .library import Array, CandidateLibrary
from .sindy import SweepEntry, ThresholdSweepResult

DEFAULT_CRITERION = "aicc"


def _aic(n: int, k: int, rss: float) -> float:
    return n * np.log(rss / n) + 2 * k


def _aicc(n: int, k: int, rss: float) -> float:
    correction = 2 * k * (k + 1) / (n - k - 1) if n - k - 1 > 0 else np.inf
    return _aic(n, k, rss) + correction


def _bic(n: int, k: int, rss: float) -> float:
    return n * np.log(rss / n) + k * np.log(n)


INFORMATION_CRITERIA: Dict[str, Callable[[int, int, float], float]] = {
    "aic": _aic,
    "aicc": _aicc,
    "bic": _bic,
}


def information_criterion(
    rss: float,
    n_observations: int,
    n_active: int,
    criterion: str = DEFAULT_CRITERION,
    rss_floor: float = 0.0,
) -> float:
    """
    Score a fit; lower is better.

    Parameters
    ----------
    rss : float
        Residual sum of squares.
    n_observations : int
        Number of scalar observations (samples times outputs).
    n_active : int
        Number of nonzero coefficients.
    criterion : {"aicc", "aic", "bic"}
        Information criterion (default: "aicc").
    rss_floor : float
        Lower bound applied to ``rss`` so exact fits stay finite and tie.
    """
    if criterion not in INFORMATION_CRITERIA:
        raise ValueError(
            f"Unknown criterion '{criterion}'. Choose from {sorted(INFORMATION_CRITERIA)}"
        )
    rss = max(rss, rss_floor, np.finfo(float).tiny)
    return float(INFORMATION_CRITERIA[criterion](n_observations, n_active, rss))


@dataclass(frozen=True)
class SymbolicModel:
    """
    Sparse symbolic model ``f(x) = Theta(x) @ coefficients``.

    Attributes
    ----------
    library : CandidateLibrary
        Basis the coefficient rows refer to.
    coefficients : np.ndarray
        Coefficient matrix [n_terms, n_vars].
    threshold : float
        Threshold the model was fit with.
    error : float
        In-sample residual sum of squares at that threshold.
    score : float
        Selection score (NaN when built directly).
    """

    library: CandidateLibrary
    coefficients: np.ndarray
    threshold: float = 0.0
    error: float = float("nan")
    score: float = float("nan")

    def __post_init__(self):
        if self.coefficients.shape[0] != len(self.library):
            raise ValueError(
                f"Coefficient matrix has {self.coefficients.shape[0]} rows, "
                f"library has {len(self.library)} terms"
            )

    @property
    def n_vars(self) -> int:
        return self.coefficients.shape[1]

    @property
    def n_active(self) -> int:
        return int(np.count_nonzero(self.coefficients))

    def __call__(self, X: Array) -> Array:
        """Evaluate the model on samples [n_samples, n_vars] (numpy or torch)."""
        Theta = self.library.evaluate(X)
        if isinstance(X, torch.Tensor):
            coef = torch.as_tensor(self.coefficients, dtype=X.dtype, device=X.device)
            return Theta @ coef
        return Theta @ self.coefficients

    def active_terms(self) -> Dict[int, List[Tuple[str, float]]]:
        """Map each output dimension to its (term name, coefficient) pairs."""
        names = self.library.names
        return {
            j: [(names[i], float(self.coefficients[i, j])) for i in np.flatnonzero(self.coefficients[:, j])]
            for j in range(self.n_vars)
        }

    def equations(self, lhs: Optional[Sequence[str]] = None, precision: int = 4) -> List[str]:
        """Human-readable equations, one per output dimension."""
        if lhs is None:
            lhs = [f"U{j + 1}" for j in range(self.n_vars)]
        names = self.library.names
        return [
            f"{lhs[j]} = {format_equation(self.coefficients[:, j], names, precision=precision)}"
            for j in range(self.n_vars)
        ]


def score_sweep(
    sweep: ThresholdSweepResult, criterion: str = DEFAULT_CRITERION
) -> np.ndarray:
    """
    Score every sweep entry.

    Uses held-out error when the sweep was cross-validated and in-sample
    error otherwise. The error is floored at ``eps * sum(targets**2)``.
    """
    n_obs = sweep.n_samples * sweep.n_vars
    rss_floor = np.finfo(float).eps * sweep.target_energy
    scores = []
    for entry in sweep:
        rss = entry.validation_error if entry.validation_error is not None else entry.error
        scores.append(information_criterion(rss, n_obs, entry.n_active, criterion, rss_floor))
    return np.array(scores)


def select_model(
    sweep: ThresholdSweepResult,
    library: CandidateLibrary,
    criterion: str = DEFAULT_CRITERION,
) -> SymbolicModel:
    """
    Pick the best accuracy/sparsity trade-off from a threshold sweep.

    Parameters
    ----------
    sweep : ThresholdSweepResult
        Swept STLS fits.
    library : CandidateLibrary
        Library the sweep's design matrix was built from.
    criterion : {"aicc", "aic", "bic"}
        Information criterion (default: "aicc").

    Returns
    -------
    model : SymbolicModel
        Selected model.
    """
    if len(sweep) == 0:
        raise ValueError("Cannot select from an empty sweep")
    scores = score_sweep(sweep, criterion)

    def key(idx: int) -> Tuple[float, int, float, float]:
        entry: SweepEntry = sweep[idx]
        return (scores[idx], entry.n_active, entry.error, entry.threshold)

    best = min(range(len(sweep)), key=key)
    entry = sweep[best]
    return SymbolicModel(
        library=library,
        coefficients=entry.coefficients,
        threshold=entry.threshold,
        error=entry.error,
        score=float(scores[best]),
    )

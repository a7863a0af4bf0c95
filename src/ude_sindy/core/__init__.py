"""
Core sparse regression algorithms.

This module provides the candidate library, Sequential Thresholded Least
Squares with threshold sweeps, and information-criterion model selection.
"""

from .library import (
    CandidateLibrary,
    Monomial,
    Transcendental,
    build_library_2d,
    evaluate_term,
    monomial_exponents,
)
from .selection import (
    INFORMATION_CRITERIA,
    SymbolicModel,
    information_criterion,
    score_sweep,
    select_model,
)
from .sindy import (
    DEFAULT_STLS_THRESHOLD,
    SweepEntry,
    ThresholdSweepResult,
    residual_sum_of_squares,
    sindy_stls,
    threshold_sweep,
)

__all__ = [
    # Library construction
    "CandidateLibrary",
    "Monomial",
    "Transcendental",
    "build_library_2d",
    "evaluate_term",
    "monomial_exponents",
    # STLS
    "sindy_stls",
    "threshold_sweep",
    "residual_sum_of_squares",
    "SweepEntry",
    "ThresholdSweepResult",
    "DEFAULT_STLS_THRESHOLD",
    # Model selection
    "select_model",
    "score_sweep",
    "information_criterion",
    "INFORMATION_CRITERIA",
    "SymbolicModel",
]

"""
UDE-SINDy
=========

Discover governing equations of a two-species system from short, noisy
time series: fit a universal differential equation (known linear physics
plus a neural residual) through a differentiable ODE solver, then distil
the residual into a sparse symbolic model with thresholded least squares.

Main Features
-------------
- RBF multilayer perceptron residual with a flat parameter vector
- Adaptive, differentiable integration (direct or adjoint sensitivities)
- Two-stage training: Adam exploration followed by L-BFGS refinement
- Candidate library of monomials and transcendental terms
- Sequential Thresholded Least Squares (STLS) over a parallel threshold sweep
- Information-criterion model selection

Quick Start
-----------
>>> from ude_sindy import DiscoveryConfig, run_discovery
>>> result = run_discovery(DiscoveryConfig())
>>> result.models["ideal"].equations()  # U1 ~ -0.9 xy, U2 ~ 0.8 xy
"""

__version__ = "0.1.0"

# Configuration
from .config import (
    DiscoveryConfig,
    IntegratorConfig,
    KnownParameters,
    LibraryConfig,
    SweepConfig,
    TrainerConfig,
)

# Core sparse regression
from .core import (
    CandidateLibrary,
    SymbolicModel,
    ThresholdSweepResult,
    build_library_2d,
    select_model,
    sindy_stls,
    threshold_sweep,
)
from .exceptions import IntegrationError, UDESINDyError

# Metrics
from .metrics import (
    compute_coefficient_error,
    compute_reconstruction_error,
    compute_structure_metrics,
)
from .pipeline import DiscoveryResult, run_discovery

# Reference systems
from .systems import DynamicalSystem, LotkaVolterra, add_noise

# Universal differential equations
from .ude import (
    FunctionApproximator,
    HybridDynamics,
    LossTrace,
    Trajectory,
    TrainingResult,
    UDETrainer,
    integrate,
    recovered_dynamics,
    simulate,
)
from .utils import format_equation

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DiscoveryConfig",
    "IntegratorConfig",
    "KnownParameters",
    "LibraryConfig",
    "SweepConfig",
    "TrainerConfig",
    # Core
    "CandidateLibrary",
    "SymbolicModel",
    "ThresholdSweepResult",
    "build_library_2d",
    "sindy_stls",
    "threshold_sweep",
    "select_model",
    # UDE
    "FunctionApproximator",
    "HybridDynamics",
    "Trajectory",
    "integrate",
    "simulate",
    "recovered_dynamics",
    "UDETrainer",
    "TrainingResult",
    "LossTrace",
    # Pipeline
    "run_discovery",
    "DiscoveryResult",
    # Systems
    "DynamicalSystem",
    "LotkaVolterra",
    "add_noise",
    # Metrics
    "compute_structure_metrics",
    "compute_coefficient_error",
    "compute_reconstruction_error",
    # Errors
    "IntegrationError",
    "UDESINDyError",
    # Utilities
    "format_equation",
]

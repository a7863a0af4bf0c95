"""
Universal differential equation components.

This module provides the neural residual model, hybrid dynamics, adaptive
differentiable integration, and the two-stage trainer.
"""

from .approximator import RBF, FunctionApproximator, rbf
from .dynamics import (
    HybridDynamics,
    MissingInteraction,
    SymbolicResidual,
    recovered_dynamics,
    true_dynamics,
)
from .integrator import Trajectory, integrate, simulate
from .training import (
    ADAM_STAGE,
    LBFGS_STAGE,
    LossTrace,
    TrainingResult,
    UDETrainer,
    predict,
    trajectory_loss,
)

__all__ = [
    # Function approximator
    "FunctionApproximator",
    "RBF",
    "rbf",
    # Dynamics
    "HybridDynamics",
    "MissingInteraction",
    "SymbolicResidual",
    "true_dynamics",
    "recovered_dynamics",
    # Integration
    "Trajectory",
    "integrate",
    "simulate",
    # Training
    "UDETrainer",
    "TrainingResult",
    "LossTrace",
    "predict",
    "trajectory_loss",
    "ADAM_STAGE",
    "LBFGS_STAGE",
]

"""
Hybrid right-hand sides: known linear growth/decay plus a residual model.

    dx/dt =  alpha * x + U1(x, y)
    dy/dt = -delta * y + U2(x, y)

The residual is any module mapping states [..., 2] to [..., 2]: the neural
approximator during training, a fitted symbolic model for the recovered
dynamics, or the true interaction term for reference runs.
"""

import numpy as np
import torch
import torch.nn as nn

from ..config import KnownParameters
from ..core.selection import SymbolicModel
from ..exceptions import IntegrationError


class HybridDynamics(nn.Module):
    """
    Known per-species linear terms plus a residual correction.

    Parameters
    ----------
    residual : nn.Module
        Residual model U(x).
    known : KnownParameters
        Physical constants; ``known.linear_coefficients`` scales each species.
    check_finite : bool, optional
        Raise IntegrationError as soon as the right-hand side is non-finite
        (default: True).
    """

    def __init__(self, residual: nn.Module, known: KnownParameters, check_finite: bool = True):
        super().__init__()
        self.residual = residual
        self.known = known
        self.check_finite = check_finite
        self.register_buffer(
            "linear_coefficients",
            torch.tensor(known.linear_coefficients, dtype=torch.float64),
        )

    def known_terms(self, x: torch.Tensor) -> torch.Tensor:
        return x * self.linear_coefficients.to(x.dtype)

    def forward(self, t: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        dx = self.known_terms(x) + self.residual(x)
        if self.check_finite and not torch.isfinite(dx).all():
            raise IntegrationError(f"Non-finite right-hand side at t={float(t):.6g}")
        return dx


class MissingInteraction(nn.Module):
    """True interaction term [-beta*x*y, gamma*x*y] of the Lotka-Volterra system."""

    def __init__(self, known: KnownParameters):
        super().__init__()
        self.register_buffer(
            "interaction", torch.tensor([-known.beta, known.gamma], dtype=torch.float64)
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        xy = (x[..., 0] * x[..., 1]).unsqueeze(-1)
        return xy * self.interaction.to(x.dtype)


class SymbolicResidual(nn.Module):
    """Torch wrapper evaluating a fitted SymbolicModel as a residual."""

    def __init__(self, model: SymbolicModel):
        super().__init__()
        self.model = model
        self.register_buffer(
            "coefficients", torch.as_tensor(np.array(model.coefficients), dtype=torch.float64)
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        Theta = self.model.library.evaluate(x)
        return Theta @ self.coefficients.to(x.dtype)


def true_dynamics(known: KnownParameters) -> HybridDynamics:
    """Lotka-Volterra right-hand side written as a hybrid model."""
    return HybridDynamics(MissingInteraction(known), known)


def recovered_dynamics(model: SymbolicModel, known: KnownParameters) -> HybridDynamics:
    """Hybrid dynamics with the residual replaced by a discovered symbolic model."""
    return HybridDynamics(SymbolicResidual(model), known)

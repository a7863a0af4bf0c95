"""
Adaptive ODE integration through torchdiffeq.

``integrate`` returns a differentiable tensor for use inside a loss;
``simulate`` runs without gradients and returns a numpy ``Trajectory``.
Both are stateless: every call builds a fresh solver from its arguments.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import numpy as np
import torch
import torch.nn as nn
from torchdiffeq import odeint, odeint_adjoint

from ..config import IntegratorConfig
from ..exceptions import IntegrationError

Dynamics = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]


@dataclass
class Trajectory:
    """
    Time series of states on a strictly increasing grid.

    Attributes
    ----------
    t : np.ndarray
        Sample times with shape [n_samples].
    x : np.ndarray
        States with shape [n_samples, n_vars].
    """

    t: np.ndarray
    x: np.ndarray

    def __post_init__(self):
        self.t = np.asarray(self.t, dtype=float)
        self.x = np.asarray(self.x, dtype=float)
        if self.t.ndim != 1 or self.x.ndim != 2 or self.x.shape[0] != self.t.shape[0]:
            raise ValueError(
                f"Expected t [n] and x [n, n_vars], got {self.t.shape} and {self.x.shape}"
            )
        if np.any(np.diff(self.t) <= 0):
            raise ValueError("Trajectory times must be strictly increasing")

    def __len__(self) -> int:
        return self.t.shape[0]

    @property
    def n_vars(self) -> int:
        return self.x.shape[1]

    def resample(self, t_new: np.ndarray) -> "Trajectory":
        """Linear interpolation onto a new grid inside the current span."""
        t_new = np.asarray(t_new, dtype=float)
        if t_new.min() < self.t[0] or t_new.max() > self.t[-1]:
            raise ValueError("Resampling grid must lie within the trajectory span")
        x_new = np.column_stack([np.interp(t_new, self.t, self.x[:, i]) for i in range(self.n_vars)])
        return Trajectory(t_new, x_new)


def _as_tensor(values, dtype: torch.dtype = torch.float64) -> torch.Tensor:
    if isinstance(values, torch.Tensor):
        return values.to(dtype)
    return torch.as_tensor(np.asarray(values, dtype=float), dtype=dtype)


def integrate(
    dynamics: Dynamics,
    x0: Union[torch.Tensor, Sequence[float]],
    t: Union[torch.Tensor, Sequence[float]],
    config: Optional[IntegratorConfig] = None,
) -> torch.Tensor:
    """
    Solve ``dx/dt = dynamics(t, x)`` and return states at the times ``t``.

    Parameters
    ----------
    dynamics : callable
        Right-hand side ``f(t, x)``. Must be an ``nn.Module`` for adjoint
        sensitivities.
    x0 : torch.Tensor or sequence
        Initial state [n_vars] at ``t[0]``.
    t : torch.Tensor or sequence
        Strictly increasing output times.
    config : IntegratorConfig, optional
        Method, tolerances, step ceiling and sensitivity mode.

    Returns
    -------
    x : torch.Tensor
        States with shape [len(t), n_vars], differentiable w.r.t. the
        dynamics parameters and ``x0``.

    Raises
    ------
    IntegrationError
        If the solver exceeds ``config.max_steps``, the step size underflows,
        or the solution is non-finite.
    """
    if config is None:
        config = IntegratorConfig()
    x0 = _as_tensor(x0)
    t = _as_tensor(t)
    if t.ndim != 1 or t.numel() < 2:
        raise ValueError("Output grid needs at least two times")
    if torch.any(t[1:] <= t[:-1]):
        raise ValueError("Output times must be strictly increasing")

    options = {"max_num_steps": config.max_steps}
    if config.sensitivity == "adjoint":
        if not isinstance(dynamics, nn.Module):
            raise TypeError("Adjoint sensitivities require the dynamics to be an nn.Module")
        solver = odeint_adjoint
        kwargs = {"adjoint_options": options}
    else:
        solver = odeint
        kwargs = {}

    try:
        x = solver(
            dynamics, x0, t,
            rtol=config.rtol, atol=config.atol,
            method=config.method, options=options,
            **kwargs,
        )
    except AssertionError as exc:
        # torchdiffeq signals max_num_steps / dt underflow with assertions
        raise IntegrationError(f"{config.method} solve failed: {exc}") from exc

    if not torch.isfinite(x).all():
        raise IntegrationError(f"{config.method} solve returned non-finite states")
    return x


def simulate(
    dynamics: Dynamics,
    x0: Union[torch.Tensor, Sequence[float]],
    t: Union[np.ndarray, Sequence[float]],
    config: Optional[IntegratorConfig] = None,
) -> Trajectory:
    """Integrate without gradients and return a ``Trajectory``."""
    if config is not None and config.sensitivity == "adjoint":
        config = IntegratorConfig(
            method=config.method, rtol=config.rtol, atol=config.atol,
            max_steps=config.max_steps, sensitivity="direct",
        )
    with torch.no_grad():
        x = integrate(dynamics, x0, t, config)
    return Trajectory(np.asarray(t, dtype=float), x.cpu().numpy())

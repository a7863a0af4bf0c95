"""
Base class for reference dynamical systems.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import numpy as np
from scipy.integrate import solve_ivp

from ..exceptions import IntegrationError

REFERENCE_RTOL = 1e-12
REFERENCE_ATOL = 1e-12


class DynamicalSystem(ABC):
    """
    Abstract base class for ground-truth dynamical systems.

    Subclasses implement ``derivatives``; trajectories are produced with a
    high-order adaptive Runge-Kutta method (DOP853) at tight tolerances.

    Parameters
    ----------
    name : str
        Human-readable system name.
    n_dims : int
        State dimension.
    params : Dict[str, float]
        System parameters.
    """

    def __init__(self, name: str, n_dims: int, params: Dict[str, float]):
        self.name = name
        self.n_dims = n_dims
        self.params = dict(params)

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{type(self).__name__}({params})"

    @abstractmethod
    def derivatives(self, state: np.ndarray, t: float) -> np.ndarray:
        """Right-hand side dx/dt at ``state`` [..., n_dims]."""

    @abstractmethod
    def get_true_coefficients(self, term_names: List[str]) -> np.ndarray:
        """True coefficients [n_terms, n_dims] over the named library terms."""

    def get_true_structure(self, term_names: List[str]) -> np.ndarray:
        """Boolean mask of active terms [n_terms, n_dims]."""
        return self.get_true_coefficients(term_names) != 0

    def generate_trajectory(
        self,
        x0: np.ndarray,
        t: np.ndarray,
        noise_level: float = 0.0,
        rng: Optional[np.random.Generator] = None,
        rtol: float = REFERENCE_RTOL,
        atol: float = REFERENCE_ATOL,
    ) -> np.ndarray:
        """
        Integrate from ``x0`` and sample at ``t``.

        Parameters
        ----------
        x0 : np.ndarray
            Initial state [n_dims].
        t : np.ndarray
            Sample times; ``t[0]`` is the initial time.
        noise_level : float, optional
            If positive, add noise scaled by the trajectory mean (see
            ``add_noise``).
        rng : np.random.Generator, optional
            Random generator for the noise.

        Returns
        -------
        x : np.ndarray
            Trajectory [len(t), n_dims].
        """
        x0 = np.asarray(x0, dtype=float)
        if x0.shape != (self.n_dims,):
            raise ValueError(f"x0 must have shape ({self.n_dims},), got {x0.shape}")
        t = np.asarray(t, dtype=float)
        sol = solve_ivp(
            lambda s, y: self.derivatives(y, s),
            (t[0], t[-1]),
            x0,
            method="DOP853",
            t_eval=t,
            rtol=rtol,
            atol=atol,
        )
        if not sol.success:
            raise IntegrationError(f"Reference integration of {self.name} failed: {sol.message}")
        x = sol.y.T
        if noise_level > 0:
            x = add_noise(x, noise_level, rng)
        return x

    def generate_derivatives(self, x: np.ndarray, t: np.ndarray) -> np.ndarray:
        """Exact time derivatives along a trajectory [n_samples, n_dims]."""
        return np.stack([self.derivatives(xi, ti) for xi, ti in zip(x, t)])


def add_noise(
    x: np.ndarray, magnitude: float, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Add Gaussian noise scaled per coordinate by the trajectory mean.

        x_noisy = x + magnitude * mean(x, axis=0) * N(0, 1)

    Parameters
    ----------
    x : np.ndarray
        Clean trajectory [n_samples, n_dims].
    magnitude : float
        Relative noise level.
    rng : np.random.Generator, optional
        Random generator (default: fresh unseeded generator).
    """
    if magnitude < 0:
        raise ValueError("Noise magnitude must be non-negative")
    if rng is None:
        rng = np.random.default_rng()
    x_mean = np.mean(x, axis=0, keepdims=True)
    return x + magnitude * x_mean * rng.standard_normal(x.shape)

"""
Biological dynamical systems.
"""

from typing import List

import numpy as np

from ..config import KnownParameters
from .base import DynamicalSystem


class LotkaVolterra(DynamicalSystem):
    """
    Lotka-Volterra predator-prey model.

    Equations:
        dx/dt = alpha*x - beta*x*y   (terms: x, xy)
        dy/dt = gamma*x*y - delta*y  (terms: y, xy)

    The linear terms are treated as known physics; the bilinear interaction
    ``[-beta*x*y, gamma*x*y]`` is the missing term a hybrid model must learn.

    Parameters
    ----------
    alpha : float
        Prey growth rate (default: 1.3).
    beta : float
        Predation rate (default: 0.9).
    gamma : float
        Predator reproduction rate (default: 0.8).
    delta : float
        Predator death rate (default: 1.8).
    """

    def __init__(
        self, alpha: float = 1.3, beta: float = 0.9, gamma: float = 0.8, delta: float = 1.8
    ):
        super().__init__(
            "Lotka-Volterra",
            2,
            {"alpha": alpha, "beta": beta, "gamma": gamma, "delta": delta},
        )

    @classmethod
    def from_known(cls, known: KnownParameters) -> "LotkaVolterra":
        return cls(known.alpha, known.beta, known.gamma, known.delta)

    @property
    def known(self) -> KnownParameters:
        p = self.params
        return KnownParameters(p["alpha"], p["beta"], p["gamma"], p["delta"])

    def derivatives(self, state: np.ndarray, t: float) -> np.ndarray:
        x, y = state[..., 0], state[..., 1]
        p = self.params
        dx = p["alpha"] * x - p["beta"] * x * y
        dy = p["gamma"] * x * y - p["delta"] * y
        return np.stack([dx, dy], axis=-1)

    def missing_term(self, state: np.ndarray) -> np.ndarray:
        """Interaction term [-beta*x*y, gamma*x*y] at states [..., 2]."""
        xy = state[..., 0] * state[..., 1]
        p = self.params
        return np.stack([-p["beta"] * xy, p["gamma"] * xy], axis=-1)

    def get_true_coefficients(self, term_names: List[str]) -> np.ndarray:
        p = self.params
        xi = np.zeros((len(term_names), 2))
        if "x" in term_names:
            xi[term_names.index("x"), 0] = p["alpha"]
        if "xy" in term_names:
            xi[term_names.index("xy"), 0] = -p["beta"]
            xi[term_names.index("xy"), 1] = p["gamma"]
        if "y" in term_names:
            xi[term_names.index("y"), 1] = -p["delta"]
        return xi

    def get_missing_term_coefficients(self, term_names: List[str]) -> np.ndarray:
        """True coefficients [n_terms, 2] of the interaction term alone."""
        xi = np.zeros((len(term_names), 2))
        if "xy" in term_names:
            xi[term_names.index("xy"), 0] = -self.params["beta"]
            xi[term_names.index("xy"), 1] = self.params["gamma"]
        return xi

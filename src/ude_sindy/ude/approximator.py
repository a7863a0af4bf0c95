"""
Neural function approximator for the unknown part of the dynamics.

A small feed-forward network U(x; theta) mapping a state to a residual of
the same dimension. Hidden layers use a Gaussian radial basis activation,
exp(-x^2), which is smooth, bounded and has no singularities.
"""

from typing import Optional, Sequence

import torch
import torch.nn as nn
from torch.nn.utils import parameters_to_vector, vector_to_parameters


def rbf(x: torch.Tensor) -> torch.Tensor:
    """Gaussian radial basis activation."""
    return torch.exp(-(x**2))


class RBF(nn.Module):
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return rbf(x)


class FunctionApproximator(nn.Module):
    """
    Multilayer perceptron U(x; theta) with RBF activations.

    Architecture: Linear(n_vars, h1) -> RBF -> ... -> Linear(h_last, n_vars),
    the output layer is affine.

    Parameters
    ----------
    n_vars : int, optional
        State dimension (default: 2).
    hidden_dims : Sequence[int], optional
        Hidden layer widths (default: (5, 5, 5)).
    dtype : torch.dtype, optional
        Parameter dtype (default: torch.float64).
    seed : int, optional
        Seed for the weight initialisation.

    Examples
    --------
    >>> U = FunctionApproximator()
    >>> U.n_parameters
    87
    >>> U(torch.ones(10, 2, dtype=torch.float64)).shape
    torch.Size([10, 2])
    """

    def __init__(
        self,
        n_vars: int = 2,
        hidden_dims: Sequence[int] = (5, 5, 5),
        dtype: torch.dtype = torch.float64,
        seed: Optional[int] = None,
    ):
        super().__init__()
        self.n_vars = n_vars
        self.hidden_dims = tuple(hidden_dims)

        generator = None
        if seed is not None:
            generator = torch.Generator().manual_seed(seed)

        layers = []
        prev_dim = n_vars
        for hidden_dim in self.hidden_dims:
            layers.extend([nn.Linear(prev_dim, hidden_dim, dtype=dtype), RBF()])
            prev_dim = hidden_dim
        layers.append(nn.Linear(prev_dim, n_vars, dtype=dtype))
        self.network = nn.Sequential(*layers)

        if generator is not None:
            self._init_weights(generator)

    def _init_weights(self, generator: torch.Generator):
        # Glorot-uniform weights, zero biases
        with torch.no_grad():
            for module in self.network:
                if isinstance(module, nn.Linear):
                    fan_out, fan_in = module.weight.shape
                    bound = (6.0 / (fan_in + fan_out)) ** 0.5
                    module.weight.copy_(
                        (torch.rand(module.weight.shape, generator=generator, dtype=module.weight.dtype) * 2 - 1)
                        * bound
                    )
                    module.bias.zero_()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.network(x)

    @property
    def n_parameters(self) -> int:
        return sum(p.numel() for p in self.parameters())

    def get_flat_parameters(self) -> torch.Tensor:
        """Detached copy of theta as a flat vector."""
        return parameters_to_vector(self.parameters()).detach().clone()

    def set_flat_parameters(self, theta: torch.Tensor) -> None:
        """Load a flat theta vector into the layer weights and biases."""
        theta = torch.as_tensor(theta)
        if theta.ndim != 1 or theta.numel() != self.n_parameters:
            raise ValueError(
                f"Expected a flat parameter vector of length {self.n_parameters}, "
                f"got shape {tuple(theta.shape)}"
            )
        with torch.no_grad():
            vector_to_parameters(
                theta.to(next(self.parameters()).dtype).clone(), self.parameters()
            )

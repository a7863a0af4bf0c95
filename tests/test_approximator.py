"""
Tests for the neural function approximator.
"""

import pytest
import torch

from ude_sindy.ude import RBF, FunctionApproximator, rbf


class TestFunctionApproximator:
    """Tests for FunctionApproximator."""

    def test_parameter_count(self):
        # 2*5+5 + 5*5+5 + 5*5+5 + 5*2+2
        assert FunctionApproximator().n_parameters == 87

    def test_custom_architecture(self):
        U = FunctionApproximator(n_vars=3, hidden_dims=(4,))
        assert U.n_parameters == 3 * 4 + 4 + 4 * 3 + 3
        assert U(torch.zeros(7, 3, dtype=torch.float64)).shape == (7, 3)

    def test_output_shape_and_dtype(self):
        U = FunctionApproximator(seed=0)
        out = U(torch.ones(10, 2, dtype=torch.float64))
        assert out.shape == (10, 2)
        assert out.dtype == torch.float64

    def test_seed_is_deterministic(self):
        a = FunctionApproximator(seed=7).get_flat_parameters()
        b = FunctionApproximator(seed=7).get_flat_parameters()
        c = FunctionApproximator(seed=8).get_flat_parameters()

        torch.testing.assert_close(a, b)
        assert not torch.equal(a, c)

    def test_flat_round_trip(self):
        U = FunctionApproximator(seed=0)
        theta = torch.linspace(-1, 1, U.n_parameters, dtype=torch.float64)
        U.set_flat_parameters(theta)

        torch.testing.assert_close(U.get_flat_parameters(), theta)

    def test_set_does_not_alias_input(self):
        U = FunctionApproximator(seed=0)
        theta = torch.zeros(U.n_parameters, dtype=torch.float64)
        U.set_flat_parameters(theta)
        theta += 1.0

        assert torch.count_nonzero(U.get_flat_parameters()) == 0

    def test_get_returns_copy(self):
        U = FunctionApproximator(seed=0)
        theta = U.get_flat_parameters()
        theta.zero_()
        assert torch.count_nonzero(U.get_flat_parameters()) > 0

    def test_wrong_length_raises(self):
        U = FunctionApproximator()
        with pytest.raises(ValueError, match="length 87"):
            U.set_flat_parameters(torch.zeros(86, dtype=torch.float64))

    def test_differentiable_in_parameters_and_input(self):
        U = FunctionApproximator(seed=0)
        x = torch.rand(5, 2, dtype=torch.float64, requires_grad=True)
        U(x).sum().backward()

        assert x.grad is not None
        for p in U.parameters():
            assert p.grad is not None

    def test_seeded_init_zeroes_biases(self):
        U = FunctionApproximator(seed=0)
        first = U.network[0]
        assert torch.count_nonzero(first.bias) == 0


def test_rbf_activation():
    x = torch.tensor([0.0, 1.0, -2.0], dtype=torch.float64)
    expected = torch.exp(-x**2)
    torch.testing.assert_close(rbf(x), expected)
    torch.testing.assert_close(RBF()(x), expected)

"""
Tests for adaptive integration, hybrid dynamics and sensitivities.
"""

import numpy as np
import pytest
import torch
import torch.nn as nn
from scipy.integrate import solve_ivp

from ude_sindy.config import DEFAULT_U0, IntegratorConfig, KnownParameters
from ude_sindy.core.library import CandidateLibrary
from ude_sindy.core.selection import SymbolicModel
from ude_sindy.exceptions import IntegrationError
from ude_sindy.ude import (
    FunctionApproximator,
    HybridDynamics,
    Trajectory,
    integrate,
    recovered_dynamics,
    simulate,
    trajectory_loss,
    true_dynamics,
)


class NaNResidual(nn.Module):
    def forward(self, x):
        return torch.full_like(x, float("nan"))


def _scipy_reference(known: KnownParameters, t_end: float = 3.0) -> np.ndarray:
    def rhs(t, u):
        x, y = u
        return [known.alpha * x - known.beta * x * y, known.gamma * x * y - known.delta * y]

    sol = solve_ivp(rhs, (0.0, t_end), DEFAULT_U0, method="DOP853", rtol=1e-13, atol=1e-13)
    return sol.y[:, -1]


class TestIntegrate:
    """Tests for integrate / simulate."""

    def test_reference_value_at_t3(self, known):
        config = IntegratorConfig(method="dopri8", rtol=1e-12, atol=1e-12, max_steps=100_000)
        t = np.linspace(0.0, 3.0, 31)
        x = integrate(true_dynamics(known), DEFAULT_U0, t, config)

        assert x.shape == (31, 2)
        np.testing.assert_allclose(x[-1].numpy(), _scipy_reference(known), atol=1e-6)

    def test_default_tolerances_close_to_reference(self, known, reference_data):
        trajectory = simulate(true_dynamics(known), DEFAULT_U0, reference_data["t"])

        assert isinstance(trajectory, Trajectory)
        np.testing.assert_allclose(trajectory.x, reference_data["x"], atol=1e-3)

    def test_initial_state_is_first_sample(self, known):
        x = integrate(true_dynamics(known), [1.0, 2.0], [0.0, 0.5, 1.0])
        np.testing.assert_allclose(x[0].numpy(), [1.0, 2.0])

    def test_repeated_calls_are_independent(self, known):
        dynamics = true_dynamics(known)
        t = np.linspace(0, 1, 11)
        first = integrate(dynamics, DEFAULT_U0, t)
        integrate(dynamics, [3.0, 0.5], t)
        again = integrate(dynamics, DEFAULT_U0, t)

        torch.testing.assert_close(first, again)

    def test_step_ceiling_raises(self, known):
        config = IntegratorConfig(rtol=1e-12, atol=1e-12, max_steps=2)
        with pytest.raises(IntegrationError, match="dopri5"):
            integrate(true_dynamics(known), DEFAULT_U0, [0.0, 3.0], config)

    def test_non_finite_dynamics_raises(self, known):
        dynamics = HybridDynamics(NaNResidual(), known)
        with pytest.raises(IntegrationError, match="Non-finite"):
            integrate(dynamics, DEFAULT_U0, [0.0, 1.0])

    def test_non_increasing_grid_raises(self, known):
        with pytest.raises(ValueError, match="increasing"):
            integrate(true_dynamics(known), DEFAULT_U0, [0.0, 1.0, 1.0])

    def test_invalid_method(self):
        with pytest.raises(ValueError, match="adaptive method"):
            IntegratorConfig(method="rk4")


class TestHybridDynamics:
    """The hybrid right-hand side."""

    def test_known_terms_plus_residual(self, known):
        network = FunctionApproximator(seed=0)
        dynamics = HybridDynamics(network, known)
        x = torch.tensor([[1.0, 2.0]], dtype=torch.float64)

        with torch.no_grad():
            expected = torch.tensor([[known.alpha * 1.0, -known.delta * 2.0]], dtype=torch.float64) + network(x)
            torch.testing.assert_close(dynamics(torch.tensor(0.0), x), expected)

    def test_symbolic_substitution_matches_truth(self, known):
        library = CandidateLibrary(2, 5, ("sin",))
        coefficients = np.zeros((len(library), 2))
        coefficients[library.index("xy")] = [-known.beta, known.gamma]
        model = SymbolicModel(library, coefficients)

        t = np.linspace(0, 3, 31)
        config = IntegratorConfig(rtol=1e-10, atol=1e-10)
        recovered = simulate(recovered_dynamics(model, known), DEFAULT_U0, t, config)
        truth = simulate(true_dynamics(known), DEFAULT_U0, t, config)
        np.testing.assert_allclose(recovered.x, truth.x, atol=1e-7)


class TestSensitivities:
    """Gradients through the ODE solve."""

    def test_gradient_reaches_every_parameter(self, known, reference_data):
        network = FunctionApproximator(seed=1)
        dynamics = HybridDynamics(network, known)
        t = torch.as_tensor(reference_data["t"][::2])
        X_obs = torch.as_tensor(reference_data["x"][::2])

        loss = trajectory_loss(dynamics, t, X_obs)
        loss.backward()

        for p in network.parameters():
            assert p.grad is not None
            assert torch.isfinite(p.grad).all()

    def test_adjoint_matches_direct(self, known, reference_data):
        t = torch.as_tensor(reference_data["t"][::2])
        X_obs = torch.as_tensor(reference_data["x"][::2])
        grads = {}
        for mode in ("direct", "adjoint"):
            network = FunctionApproximator(seed=2)
            dynamics = HybridDynamics(network, known)
            config = IntegratorConfig(rtol=1e-10, atol=1e-10, sensitivity=mode)
            loss = trajectory_loss(dynamics, t, X_obs, config)
            loss.backward()
            grads[mode] = torch.cat([p.grad.flatten() for p in network.parameters()])

        torch.testing.assert_close(grads["adjoint"], grads["direct"], rtol=1e-4, atol=1e-6)

    def test_finite_difference_check(self, known, reference_data):
        t = torch.as_tensor(reference_data["t"][::3])
        X_obs = torch.as_tensor(reference_data["x"][::3])
        config = IntegratorConfig(rtol=1e-10, atol=1e-10)
        network = FunctionApproximator(seed=3)
        dynamics = HybridDynamics(network, known)

        loss = trajectory_loss(dynamics, t, X_obs, config)
        loss.backward()
        grad = torch.cat([p.grad.flatten() for p in network.parameters()])

        theta = network.get_flat_parameters()
        direction = torch.zeros_like(theta)
        direction[0] = 1.0
        eps = 1e-5
        with torch.no_grad():
            network.set_flat_parameters(theta + eps * direction)
            plus = trajectory_loss(dynamics, t, X_obs, config)
            network.set_flat_parameters(theta - eps * direction)
            minus = trajectory_loss(dynamics, t, X_obs, config)

        fd = (plus - minus) / (2 * eps)
        assert float(fd) == pytest.approx(float(grad[0]), rel=1e-3, abs=1e-5)


class TestTrajectory:
    """Trajectory container."""

    def test_rejects_unordered_times(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            Trajectory(np.array([0.0, 2.0, 1.0]), np.zeros((3, 2)))

    def test_rejects_shape_mismatch(self):
        with pytest.raises(ValueError):
            Trajectory(np.array([0.0, 1.0]), np.zeros((3, 2)))

    def test_resample(self):
        traj = Trajectory(np.array([0.0, 1.0, 2.0]), np.array([[0.0, 0.0], [1.0, 2.0], [2.0, 4.0]]))
        resampled = traj.resample(np.array([0.5, 1.5]))
        np.testing.assert_allclose(resampled.x, [[0.5, 1.0], [1.5, 3.0]])

    def test_resample_outside_span(self):
        traj = Trajectory(np.array([0.0, 1.0]), np.zeros((2, 2)))
        with pytest.raises(ValueError, match="within"):
            traj.resample(np.array([0.0, 2.0]))


def test_integration_error_with_stage():
    err = IntegrationError("solver diverged")
    staged = err.with_stage("simulation", parameters=np.ones(3))

    assert staged.stage == "simulation"
    assert str(staged) == "[simulation] solver diverged"
    np.testing.assert_array_equal(staged.parameters, np.ones(3))
    assert str(err) == "solver diverged"
    assert staged.partial_result is None


def test_integration_error_keeps_partial_result():
    partial = {"models": {}}
    err = IntegrationError("solver diverged").with_stage("simulation", partial_result=partial)
    restaged = err.with_stage("simulation/extrapolation")

    assert restaged.partial_result is partial
    assert restaged.stage == "simulation/extrapolation"

"""
End-to-end discovery: train a UDE on noisy data, then distil the network
into a sparse symbolic model and simulate the recovered dynamics.

Stages
------
1. Reference trajectory (and exact derivatives) of the true system.
2. Noisy measurements.
3. Two-stage UDE training on the measurements.
4. Reconstruction on a grid twice as dense as the measurements; true missing
   term and network residual evaluated on it.
5. Sparse regression (threshold sweep + selection) for three problems:
   ``full`` (true derivatives), ``ideal`` (true missing term) and
   ``network`` (network residual, cross-validated).
6. Recovered hybrid dynamics simulated over the training span and the
   extrapolation span, next to the true long-horizon solution.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import torch

from .config import DiscoveryConfig
from .core.library import CandidateLibrary
from .core.selection import SymbolicModel, select_model
from .core.sindy import ThresholdSweepResult, threshold_sweep
from .exceptions import IntegrationError
from .metrics import (
    compute_coefficient_error,
    compute_reconstruction_error,
    compute_relative_coefficient_error,
    compute_structure_metrics,
    sparsity_ratio,
)
from .systems import LotkaVolterra, add_noise
from .ude.approximator import FunctionApproximator
from .ude.dynamics import HybridDynamics, recovered_dynamics
from .ude.integrator import Trajectory, simulate
from .ude.training import TrainingResult, UDETrainer

logger = logging.getLogger(__name__)

PROBLEMS = ("full", "ideal", "network")


@dataclass
class DiscoveryResult:
    """
    Everything produced by a discovery run.

    Attributes
    ----------
    config : DiscoveryConfig
        Configuration of the run.
    library : CandidateLibrary
        Basis shared by all regression problems.
    reference : Trajectory
        Noiseless reference trajectory on the measurement grid.
    observations : Trajectory
        Noisy measurements.
    training : TrainingResult
        Trained parameters and loss trace.
    reconstruction : Trajectory
        UDE trajectory on the dense grid.
    ideal_targets : np.ndarray
        True missing term on the reconstruction [n_dense, 2].
    network_targets : np.ndarray
        Network residual on the reconstruction [n_dense, 2].
    sweeps : Dict[str, ThresholdSweepResult]
        Threshold sweeps keyed by problem.
    models : Dict[str, SymbolicModel]
        Selected models keyed by problem.
    recovered : Trajectory, optional
        Recovered dynamics on the measurement grid. Unset on the partial
        result attached to a simulation failure.
    extrapolation : Trajectory, optional
        Recovered dynamics over the extrapolation span.
    true_extrapolation : Trajectory, optional
        True dynamics over the extrapolation span.
    metrics : Dict[str, float]
        Summary metrics.
    """

    config: DiscoveryConfig
    library: CandidateLibrary
    reference: Trajectory
    observations: Trajectory
    training: TrainingResult
    reconstruction: Trajectory
    ideal_targets: np.ndarray
    network_targets: np.ndarray
    sweeps: Dict[str, ThresholdSweepResult]
    models: Dict[str, SymbolicModel]
    recovered: Optional[Trajectory] = None
    extrapolation: Optional[Trajectory] = None
    true_extrapolation: Optional[Trajectory] = None
    metrics: Dict[str, float] = field(default_factory=dict)

    @property
    def selected_model(self) -> SymbolicModel:
        return self.models[self.config.recovery_target]


def _dense_grid(t: np.ndarray) -> np.ndarray:
    step = np.mean(np.diff(t)) / 2
    n = int(round((t[-1] - t[0]) / step)) + 1
    return np.linspace(t[0], t[-1], n)


def _sweep(
    config: DiscoveryConfig,
    Theta: np.ndarray,
    targets: np.ndarray,
    cross_validate: bool,
) -> ThresholdSweepResult:
    sweep_cfg = config.sweep
    return threshold_sweep(
        Theta,
        targets,
        sweep_cfg.thresholds(),
        max_iter=sweep_cfg.max_iter,
        n_workers=sweep_cfg.n_workers,
        n_folds=sweep_cfg.n_folds if cross_validate else None,
        random_state=config.seed,
        ridge=sweep_cfg.ridge,
    )


def _simulate_stage(
    dynamics, x0, t, config: DiscoveryConfig, partial: DiscoveryResult
) -> Trajectory:
    try:
        return simulate(dynamics, x0, t, config.integrator)
    except IntegrationError as exc:
        raise exc.with_stage(
            "simulation",
            parameters=partial.selected_model.coefficients,
            partial_result=partial,
        ) from exc


def run_discovery(config: Optional[DiscoveryConfig] = None) -> DiscoveryResult:
    """
    Run the full UDE + sparse regression pipeline.

    Parameters
    ----------
    config : DiscoveryConfig, optional
        Run configuration (default: the Lotka-Volterra reference experiment).

    Returns
    -------
    result : DiscoveryResult

    Raises
    ------
    IntegrationError
        With ``stage`` starting with "training" if a loss evaluation fails, or
        ``stage == "simulation"`` if the recovered dynamics cannot be
        integrated. A simulation failure carries everything computed so far
        as ``partial_result``.
    """
    if config is None:
        config = DiscoveryConfig()
    rng = np.random.default_rng(config.seed)
    if config.seed is not None:
        torch.manual_seed(config.seed)

    # 1. Reference data
    system = LotkaVolterra.from_known(config.known)
    t = config.time_grid()
    u0 = np.asarray(config.u0, dtype=float)
    X = system.generate_trajectory(u0, t)
    DX = system.generate_derivatives(X, t)
    reference = Trajectory(t, X)
    logger.info("Generated reference trajectory with %d samples", len(t))

    # 2. Measurements
    X_noisy = add_noise(X, config.noise_magnitude, rng)
    observations = Trajectory(t, X_noisy)

    # 3. Training
    network = FunctionApproximator(n_vars=2, hidden_dims=config.hidden_dims, seed=config.seed)
    dynamics = HybridDynamics(network, config.known)
    trainer = UDETrainer(dynamics, config.trainer, config.integrator)
    logger.info("Training UDE with %d parameters", network.n_parameters)
    training = trainer.fit(t, X_noisy)

    # 4. Reconstruction and regression targets
    t_dense = _dense_grid(t)
    try:
        reconstruction = simulate(dynamics, X_noisy[0], t_dense, config.integrator)
    except IntegrationError as exc:
        raise exc.with_stage("training/reconstruction", parameters=training.theta) from exc
    X_hat = reconstruction.x
    ideal_targets = system.missing_term(X_hat)
    with torch.no_grad():
        network_targets = network(torch.as_tensor(X_hat, dtype=torch.float64)).numpy()

    # 5. Sparse regression
    library = CandidateLibrary(2, config.library.poly_order, config.library.transcendental)
    problems = {
        "full": (library.evaluate(X), DX, False),
        "ideal": (library.evaluate(X_hat), ideal_targets, False),
        "network": (library.evaluate(X_hat), network_targets, True),
    }
    sweeps: Dict[str, ThresholdSweepResult] = {}
    models: Dict[str, SymbolicModel] = {}
    for name in PROBLEMS:
        Theta, targets, cross_validate = problems[name]
        logger.info("Sparse regression on the %s problem", name)
        sweeps[name] = _sweep(config, Theta, targets, cross_validate)
        models[name] = select_model(sweeps[name], library, config.sweep.criterion)
        for line in models[name].equations():
            logger.info("  %s: %s", name, line)

    # 6. Recovered dynamics
    model = models[config.recovery_target]
    missing_true = system.get_missing_term_coefficients(library.names)
    structure = compute_structure_metrics(model.coefficients, missing_true)
    metrics = {
        "final_loss": training.final_loss,
        "structure_f1": structure["f1"],
        "structure_precision": structure["precision"],
        "structure_recall": structure["recall"],
        "coefficient_mae": compute_coefficient_error(model.coefficients, missing_true),
        "coefficient_relative_error": compute_relative_coefficient_error(
            model.coefficients, missing_true
        ),
        "sparsity": sparsity_ratio(model.coefficients),
        "missing_term_rmse": compute_reconstruction_error(network_targets, ideal_targets),
    }
    result = DiscoveryResult(
        config=config,
        library=library,
        reference=reference,
        observations=observations,
        training=training,
        reconstruction=reconstruction,
        ideal_targets=ideal_targets,
        network_targets=network_targets,
        sweeps=sweeps,
        models=models,
        metrics=metrics,
    )

    recovered_rhs = recovered_dynamics(model, config.known)
    result.recovered = _simulate_stage(recovered_rhs, u0, t, config, result)
    metrics["recovered_rmse"] = compute_reconstruction_error(result.recovered.x, X)

    if config.extrapolation_tspan is not None:
        t0, t1 = config.extrapolation_tspan
        n = int(round((t1 - t0) / config.saveat)) + 1
        t_long = np.linspace(t0, t1, n)
        result.true_extrapolation = Trajectory(t_long, system.generate_trajectory(u0, t_long))
        result.extrapolation = _simulate_stage(recovered_rhs, u0, t_long, config, result)
        metrics["extrapolation_rmse"] = compute_reconstruction_error(
            result.extrapolation.x, result.true_extrapolation.x
        )

    return result

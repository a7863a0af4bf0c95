"""
Two-stage training of a universal differential equation.

Stage 1 runs Adam for a fixed number of iterations to move the network into
a good basin; stage 2 refines with L-BFGS (strong Wolfe line search) until
the gradient tolerance is met or the budget runs out. Gradients of the
trajectory loss come from differentiating through the ODE solve, either
step by step ("direct") or via the adjoint system ("adjoint").
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np
import torch

from ..config import IntegratorConfig, TrainerConfig
from ..exceptions import IntegrationError
from .approximator import FunctionApproximator
from .dynamics import HybridDynamics
from .integrator import integrate

logger = logging.getLogger(__name__)

ADAM_STAGE = "adam"
LBFGS_STAGE = "lbfgs"


class LossTrace:
    """
    Append-only record of the loss at every optimizer iteration.

    The trace is owned by the caller and handed to the trainer, so one trace
    can span both stages (or several runs).
    """

    def __init__(self):
        self._values: List[float] = []
        self._stages: List[str] = []

    def append(self, value: float, stage: str) -> None:
        self._values.append(float(value))
        self._stages.append(stage)

    def __len__(self) -> int:
        return len(self._values)

    def __getitem__(self, idx):
        return self._values[idx]

    def __iter__(self) -> Iterator[float]:
        return iter(self._values)

    def __repr__(self) -> str:
        last = f"{self._values[-1]:.6g}" if self._values else "n/a"
        return f"LossTrace(n={len(self)}, last={last})"

    @property
    def values(self) -> np.ndarray:
        return np.array(self._values)

    @property
    def stages(self) -> List[str]:
        return list(self._stages)

    def stage_values(self, stage: str) -> np.ndarray:
        return np.array([v for v, s in zip(self._values, self._stages) if s == stage])


@dataclass
class TrainingResult:
    """
    Outcome of a training run.

    Attributes
    ----------
    theta_initial : np.ndarray
        Flat parameters before training.
    theta : np.ndarray
        Flat parameters after both stages (frozen).
    loss_trace : LossTrace
        Loss per iteration across both stages.
    converged : bool
        Whether stage 2 met its tolerance before exhausting its budget.
    adam_iterations : int
        Iterations run in stage 1.
    lbfgs_iterations : int
        Iterations run in stage 2.
    final_loss : float
        Loss at ``theta``. Trace entries are recorded before each update,
        so this is one evaluation past the last of them.
    """

    theta_initial: np.ndarray
    theta: np.ndarray
    loss_trace: LossTrace
    converged: bool
    adam_iterations: int
    lbfgs_iterations: int
    final_loss: float


def predict(
    dynamics: HybridDynamics,
    x0: torch.Tensor,
    t: torch.Tensor,
    config: Optional[IntegratorConfig] = None,
) -> torch.Tensor:
    """Trajectory of the hybrid model from ``x0`` on grid ``t`` [len(t), n_vars]."""
    return integrate(dynamics, x0, t, config)


def trajectory_loss(
    dynamics: HybridDynamics,
    t: torch.Tensor,
    X_obs: torch.Tensor,
    config: Optional[IntegratorConfig] = None,
) -> torch.Tensor:
    """
    Sum of squared residuals between observations and the model trajectory.

    The model is started from the first observation.
    """
    X_hat = predict(dynamics, X_obs[0], t, config)
    return torch.sum((X_obs - X_hat) ** 2)


class UDETrainer:
    """
    Fit the network inside a hybrid model to an observed trajectory.

    Parameters
    ----------
    dynamics : HybridDynamics
        Hybrid model whose residual is a ``FunctionApproximator``.
    config : TrainerConfig, optional
        Iteration budgets and optimizer settings.
    integrator_config : IntegratorConfig, optional
        Solver settings used for every loss evaluation.

    Examples
    --------
    >>> U = FunctionApproximator(seed=0)
    >>> trainer = UDETrainer(HybridDynamics(U, KnownParameters()))
    >>> result = trainer.fit(t, X_obs)
    >>> len(result.loss_trace)
    1200
    """

    def __init__(
        self,
        dynamics: HybridDynamics,
        config: Optional[TrainerConfig] = None,
        integrator_config: Optional[IntegratorConfig] = None,
    ):
        if not isinstance(dynamics.residual, FunctionApproximator):
            raise TypeError("UDETrainer expects dynamics with a FunctionApproximator residual")
        self.dynamics = dynamics
        self.network: FunctionApproximator = dynamics.residual
        self.config = config if config is not None else TrainerConfig()
        self.integrator_config = (
            integrator_config if integrator_config is not None else IntegratorConfig()
        )

    def loss(self, t: torch.Tensor, X_obs: torch.Tensor) -> torch.Tensor:
        return trajectory_loss(self.dynamics, t, X_obs, self.integrator_config)

    def _log(self, trace: LossTrace, force: bool = False):
        n = len(trace)
        if force or (self.config.log_every > 0 and n % self.config.log_every == 0):
            logger.info("Current loss after %d iterations: %.6g", n, trace[-1])

    def _failure(self, exc: IntegrationError, stage: str, iteration: int) -> IntegrationError:
        return exc.with_stage(
            f"training/{stage} iteration {iteration}",
            parameters=self.network.get_flat_parameters().cpu().numpy(),
        )

    def _run_adam(self, t: torch.Tensor, X_obs: torch.Tensor, trace: LossTrace) -> int:
        cfg = self.config
        optimizer = torch.optim.Adam(self.network.parameters(), lr=cfg.adam_lr)
        for iteration in range(1, cfg.adam_iterations + 1):
            optimizer.zero_grad()
            try:
                loss = self.loss(t, X_obs)
                loss.backward()
            except IntegrationError as exc:
                raise self._failure(exc, ADAM_STAGE, iteration) from exc
            trace.append(loss.item(), ADAM_STAGE)
            self._log(trace)
            optimizer.step()
        return cfg.adam_iterations

    def _run_lbfgs(
        self, t: torch.Tensor, X_obs: torch.Tensor, trace: LossTrace
    ) -> Tuple[int, bool]:
        cfg = self.config
        params = list(self.network.parameters())
        optimizer = torch.optim.LBFGS(
            params,
            lr=cfg.lbfgs_lr,
            max_iter=1,
            max_eval=cfg.lbfgs_max_eval,
            history_size=cfg.lbfgs_history_size,
            tolerance_grad=cfg.gradient_tolerance,
            tolerance_change=cfg.change_tolerance,
            line_search_fn="strong_wolfe",
        )
        state = optimizer.state[params[0]]
        iteration = 0

        def closure():
            optimizer.zero_grad()
            try:
                loss = self.loss(t, X_obs)
                loss.backward()
            except IntegrationError as exc:
                raise self._failure(exc, LBFGS_STAGE, iteration + 1) from exc
            return loss

        converged = False
        previous = None
        while iteration < cfg.lbfgs_iterations:
            n_iter_before = state.get("n_iter", 0)
            loss = optimizer.step(closure).item()
            if state.get("n_iter", 0) == n_iter_before:
                # Gradient tolerance met at the current point; no step taken
                converged = True
                break
            iteration += 1
            trace.append(loss, LBFGS_STAGE)
            self._log(trace)
            if previous is not None and abs(previous - loss) < cfg.change_tolerance:
                converged = True
                break
            previous = loss
        return iteration, converged

    def fit(
        self,
        t,
        X_obs,
        loss_trace: Optional[LossTrace] = None,
    ) -> TrainingResult:
        """
        Run both training stages.

        Parameters
        ----------
        t : array-like
            Measurement times [n_samples].
        X_obs : array-like
            Observed states [n_samples, n_vars].
        loss_trace : LossTrace, optional
            Trace to append to. A new one is created if omitted.

        Returns
        -------
        result : TrainingResult

        Raises
        ------
        IntegrationError
            If any loss evaluation fails; the error names the stage and
            iteration and carries the parameters in use.
        """
        t = torch.as_tensor(np.asarray(t, dtype=float), dtype=torch.float64)
        X_obs = torch.as_tensor(np.asarray(X_obs, dtype=float), dtype=torch.float64)
        if X_obs.ndim != 2 or X_obs.shape[0] != t.shape[0]:
            raise ValueError(
                f"Observations must have shape [{t.shape[0]}, n_vars], got {tuple(X_obs.shape)}"
            )
        if not all(p.requires_grad for p in self.network.parameters()):
            raise RuntimeError("Network parameters are frozen; build a new trainer to retrain")
        if loss_trace is None:
            loss_trace = LossTrace()

        theta_initial = self.network.get_flat_parameters().cpu().numpy()

        n_adam = self._run_adam(t, X_obs, loss_trace)
        if n_adam:
            logger.info("Training loss after %d iterations: %.6g", len(loss_trace), loss_trace[-1])

        n_lbfgs, converged = self._run_lbfgs(t, X_obs, loss_trace)
        if n_lbfgs:
            self._log(loss_trace, force=True)
        if not converged and n_lbfgs:
            logger.info("L-BFGS stopped at its budget of %d iterations", n_lbfgs)

        for p in self.network.parameters():
            p.requires_grad_(False)

        with torch.no_grad():
            try:
                final_loss = self.loss(t, X_obs).item()
            except IntegrationError as exc:
                raise exc.with_stage(
                    "training/final",
                    parameters=self.network.get_flat_parameters().cpu().numpy(),
                ) from exc
        logger.info("Final training loss: %.6g", final_loss)

        return TrainingResult(
            theta_initial=theta_initial,
            theta=self.network.get_flat_parameters().cpu().numpy(),
            loss_trace=loss_trace,
            converged=converged,
            adam_iterations=n_adam,
            lbfgs_iterations=n_lbfgs,
            final_loss=final_loss,
        )

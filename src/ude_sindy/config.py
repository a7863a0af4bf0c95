"""
Run configuration for UDE training and sparse recovery.

All settings are plain dataclasses so a run can be described explicitly,
passed down to the components that need it, and round-tripped through JSON.
Defaults reproduce the Lotka-Volterra reference experiment.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

# Reference experiment
DEFAULT_U0 = (0.44249296, 4.6280594)
DEFAULT_P_TRUE = (1.3, 0.9, 0.8, 1.8)
DEFAULT_TSPAN = (0.0, 3.0)
DEFAULT_SAVEAT = 0.1
DEFAULT_NOISE_MAGNITUDE = 5e-3
DEFAULT_SEED = 1234
DEFAULT_HIDDEN_DIMS = (5, 5, 5)
DEFAULT_EXTRAPOLATION_TSPAN = (0.0, 50.0)

# Integration
ADAPTIVE_METHODS = ("dopri5", "dopri8", "bosh3", "fehlberg2", "adaptive_heun")
SENSITIVITY_MODES = ("direct", "adjoint")

# Model selection
CRITERIA = ("aicc", "aic", "bic")
RECOVERY_TARGETS = ("network", "ideal")


@dataclass(frozen=True)
class KnownParameters:
    """
    Physical constants of the two-species system.

    Only ``alpha`` and ``delta`` enter the hybrid model; ``beta`` and ``gamma``
    describe the interaction the network has to learn.
    """

    alpha: float = DEFAULT_P_TRUE[0]
    beta: float = DEFAULT_P_TRUE[1]
    gamma: float = DEFAULT_P_TRUE[2]
    delta: float = DEFAULT_P_TRUE[3]

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "KnownParameters":
        if len(values) != 4:
            raise ValueError(f"Expected 4 parameters (alpha, beta, gamma, delta), got {len(values)}")
        return cls(*(float(v) for v in values))

    def as_array(self) -> np.ndarray:
        return np.array([self.alpha, self.beta, self.gamma, self.delta])

    @property
    def linear_coefficients(self) -> Tuple[float, float]:
        """Coefficients of the known per-species linear terms."""
        return (self.alpha, -self.delta)


@dataclass
class IntegratorConfig:
    """
    Settings for the adaptive ODE solver.

    Parameters
    ----------
    method : str
        torchdiffeq adaptive method name (default: "dopri5").
    rtol, atol : float
        Relative / absolute tolerances (default: 1e-6).
    max_steps : int
        Internal step ceiling before the solve fails (default: 10000).
    sensitivity : {"direct", "adjoint"}
        "direct" backpropagates through every solver step, "adjoint"
        integrates the adjoint system backwards in time.
    """

    method: str = "dopri5"
    rtol: float = 1e-6
    atol: float = 1e-6
    max_steps: int = 10_000
    sensitivity: str = "direct"

    def __post_init__(self):
        if self.method not in ADAPTIVE_METHODS:
            raise ValueError(
                f"Unknown adaptive method '{self.method}'. Choose from {ADAPTIVE_METHODS}"
            )
        if self.sensitivity not in SENSITIVITY_MODES:
            raise ValueError(
                f"Unknown sensitivity mode '{self.sensitivity}'. Choose from {SENSITIVITY_MODES}"
            )
        if self.rtol <= 0 or self.atol <= 0:
            raise ValueError("Tolerances must be positive")
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")


@dataclass
class TrainerConfig:
    """Iteration budgets and optimizer settings for the two training stages."""

    adam_iterations: int = 200
    adam_lr: float = 0.1
    lbfgs_iterations: int = 1000
    lbfgs_lr: float = 1.0
    lbfgs_history_size: int = 100
    lbfgs_max_eval: int = 25
    gradient_tolerance: float = 1e-8
    change_tolerance: float = 0.0
    log_every: int = 50

    def __post_init__(self):
        if self.adam_iterations < 0 or self.lbfgs_iterations < 0:
            raise ValueError("Iteration budgets must be non-negative")
        if self.adam_lr <= 0 or self.lbfgs_lr <= 0:
            raise ValueError("Learning rates must be positive")
        if self.lbfgs_max_eval < 1:
            raise ValueError("lbfgs_max_eval must be at least 1")


@dataclass
class LibraryConfig:
    """Candidate basis: monomials up to ``poly_order`` plus transcendental terms."""

    poly_order: int = 5
    transcendental: Tuple[str, ...] = ("sin",)

    def __post_init__(self):
        if self.poly_order < 0:
            raise ValueError("poly_order must be non-negative")
        self.transcendental = tuple(self.transcendental)


@dataclass
class SweepConfig:
    """
    Threshold sweep for sequential thresholded least squares.

    Thresholds are ``10 ** arange(log_lambda_min, log_lambda_max, step)``
    with the upper end included. ``ridge`` regularises the fits that screen
    the active set; coefficients are always refit by plain least squares on
    the screened set.
    """

    log_lambda_min: float = -3.0
    log_lambda_max: float = 5.0
    log_lambda_step: float = 0.01
    max_iter: int = 10_000
    ridge: float = 1e-4
    criterion: str = "aicc"
    n_workers: Optional[int] = None
    n_folds: int = 4

    def __post_init__(self):
        if self.log_lambda_max < self.log_lambda_min:
            raise ValueError("log_lambda_max must be >= log_lambda_min")
        if self.log_lambda_step <= 0:
            raise ValueError("log_lambda_step must be positive")
        if self.ridge < 0:
            raise ValueError("ridge must be non-negative")
        if self.criterion not in CRITERIA:
            raise ValueError(f"Unknown criterion '{self.criterion}'. Choose from {CRITERIA}")
        if self.n_folds < 2:
            raise ValueError("n_folds must be at least 2")

    def thresholds(self) -> np.ndarray:
        n = int(round((self.log_lambda_max - self.log_lambda_min) / self.log_lambda_step)) + 1
        return 10.0 ** np.linspace(self.log_lambda_min, self.log_lambda_max, n)


@dataclass
class DiscoveryConfig:
    """Complete description of one discovery run."""

    u0: Tuple[float, float] = DEFAULT_U0
    known: KnownParameters = field(default_factory=KnownParameters)
    tspan: Tuple[float, float] = DEFAULT_TSPAN
    saveat: float = DEFAULT_SAVEAT
    noise_magnitude: float = DEFAULT_NOISE_MAGNITUDE
    seed: Optional[int] = DEFAULT_SEED
    hidden_dims: Tuple[int, ...] = DEFAULT_HIDDEN_DIMS
    extrapolation_tspan: Optional[Tuple[float, float]] = DEFAULT_EXTRAPOLATION_TSPAN
    recovery_target: str = "network"
    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)
    trainer: TrainerConfig = field(default_factory=TrainerConfig)
    library: LibraryConfig = field(default_factory=LibraryConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)

    def __post_init__(self):
        if len(self.u0) != 2:
            raise ValueError(f"u0 must have 2 entries, got {len(self.u0)}")
        if self.tspan[1] <= self.tspan[0]:
            raise ValueError("tspan must be increasing")
        if self.saveat <= 0:
            raise ValueError("saveat must be positive")
        if self.noise_magnitude < 0:
            raise ValueError("noise_magnitude must be non-negative")
        if self.recovery_target not in RECOVERY_TARGETS:
            raise ValueError(
                f"Unknown recovery target '{self.recovery_target}'. Choose from {RECOVERY_TARGETS}"
            )

    def time_grid(self) -> np.ndarray:
        """Measurement grid ``tspan[0]:saveat:tspan[1]``."""
        n = int(round((self.tspan[1] - self.tspan[0]) / self.saveat)) + 1
        return np.linspace(self.tspan[0], self.tspan[1], n)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveryConfig":
        data = dict(data)
        nested = {
            "known": KnownParameters,
            "integrator": IntegratorConfig,
            "trainer": TrainerConfig,
            "library": LibraryConfig,
            "sweep": SweepConfig,
        }
        for key, klass in nested.items():
            if key in data and isinstance(data[key], dict):
                data[key] = klass(**data[key])
            elif key == "known" and key in data:
                data[key] = KnownParameters.from_sequence(data[key])
        for key in ("u0", "tspan", "hidden_dims", "extrapolation_tspan"):
            if data.get(key) is not None:
                data[key] = tuple(data[key])
        return cls(**data)

"""
Exception types raised by the UDE-SINDy pipeline.
"""

from typing import Any, Optional

import numpy as np


class UDESINDyError(Exception):
    """Base class for all package errors."""


class IntegrationError(UDESINDyError):
    """
    The ODE solver could not produce a valid trajectory.

    Raised when the step-count ceiling is exceeded, the step size underflows,
    or the dynamics / solution become non-finite.

    Parameters
    ----------
    message : str
        Description of the failure.
    stage : str, optional
        Pipeline stage that was running (e.g. "training/adam", "simulation").
        None when raised directly by the integrator.
    parameters : np.ndarray, optional
        Parameters in use at failure time (flat network weights or sparse
        coefficients).
    partial_result : object, optional
        Whatever the failing stage had already produced, e.g. the
        ``DiscoveryResult`` of a run whose recovered model cannot be
        simulated.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        parameters: Optional[np.ndarray] = None,
        partial_result: Any = None,
    ):
        self.message = message
        self.stage = stage
        self.parameters = None if parameters is None else np.asarray(parameters)
        self.partial_result = partial_result
        super().__init__(self._format())

    def _format(self) -> str:
        if self.stage is None:
            return self.message
        return f"[{self.stage}] {self.message}"

    def with_stage(
        self,
        stage: str,
        parameters: Optional[np.ndarray] = None,
        partial_result: Any = None,
    ) -> "IntegrationError":
        """Return a copy of this error annotated with the failing stage."""
        if parameters is None:
            parameters = self.parameters
        if partial_result is None:
            partial_result = self.partial_result
        return IntegrationError(
            self.message, stage=stage, parameters=parameters, partial_result=partial_result
        )

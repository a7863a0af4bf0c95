"""
Shared fixtures: Lotka-Volterra reference data.
"""

import numpy as np
import pytest

from ude_sindy.config import DEFAULT_U0, KnownParameters
from ude_sindy.systems import LotkaVolterra


@pytest.fixture
def known():
    return KnownParameters()


@pytest.fixture
def lotka_volterra(known):
    return LotkaVolterra.from_known(known)


@pytest.fixture
def reference_data(lotka_volterra):
    """True trajectory on the dense (0.05) grid plus the missing term."""
    t = np.linspace(0.0, 3.0, 61)
    x = lotka_volterra.generate_trajectory(np.array(DEFAULT_U0), t)
    return {
        "t": t,
        "x": x,
        "x_dot": lotka_volterra.generate_derivatives(x, t),
        "missing": lotka_volterra.missing_term(x),
        "system": lotka_volterra,
    }

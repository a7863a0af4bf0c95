"""
Cross-check of STLS against the PySINDy baseline.
"""

import numpy as np
import pytest

pytest.importorskip("pysindy")

from ude_sindy.baselines import fit_pysindy_baseline  # noqa: E402
from ude_sindy.core import CandidateLibrary, sindy_stls  # noqa: E402


class TestPySINDyBaseline:
    """PySINDy and sindy_stls on the same degree-2 library."""

    def test_same_support_on_missing_term(self, reference_data):
        library = CandidateLibrary(2, 2, ())
        X, targets = reference_data["x"], reference_data["missing"]

        xi_ours, _ = sindy_stls(library.evaluate(X), targets, threshold=0.1)
        xi_pysindy, threshold = fit_pysindy_baseline(
            X, targets, threshold=0.1, poly_order=2, include_sine=False
        )

        assert threshold == 0.1
        assert xi_pysindy.shape == (len(library), 2)
        np.testing.assert_array_equal(xi_ours != 0, xi_pysindy != 0)
        np.testing.assert_allclose(xi_pysindy, xi_ours, atol=1e-6)

    def test_recovers_lotka_volterra(self, reference_data):
        library = CandidateLibrary(2, 2, ())
        xi, _ = fit_pysindy_baseline(
            reference_data["x"], reference_data["x_dot"], poly_order=2, include_sine=False
        )
        xi_true = reference_data["system"].get_true_coefficients(library.names)

        np.testing.assert_allclose(xi, xi_true, atol=1e-6)

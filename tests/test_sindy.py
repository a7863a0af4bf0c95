"""
Tests for Sequential Thresholded Least Squares and threshold sweeps.
"""

import numpy as np
import pytest

from ude_sindy.config import SweepConfig
from ude_sindy.core.library import CandidateLibrary
from ude_sindy.core.sindy import (
    SweepEntry,
    ThresholdSweepResult,
    _stls_single,
    residual_sum_of_squares,
    sindy_stls,
    threshold_sweep,
)


@pytest.fixture
def sparse_problem():
    """Well-conditioned random design with a known sparse solution."""
    rng = np.random.default_rng(42)
    Theta = rng.standard_normal((200, 8))
    xi_true = np.zeros((8, 2))
    xi_true[[0, 2, 5], 0] = [3.0, -1.5, 0.5]
    xi_true[[1, 5, 7], 1] = [-2.0, 0.8, 0.05]
    targets = Theta @ xi_true + 1e-3 * rng.standard_normal((200, 2))
    return Theta, targets, xi_true


class TestSTLS:
    """Tests for sindy_stls."""

    def test_returns_terms_by_vars(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        xi, elapsed = sindy_stls(Theta, targets, threshold=0.1)

        assert xi.shape == (8, 2)
        assert elapsed >= 0

    def test_zero_threshold_is_least_squares(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        xi, _ = sindy_stls(Theta, targets, threshold=0.0)
        xi_ols, _, _, _ = np.linalg.lstsq(Theta, targets, rcond=None)

        np.testing.assert_allclose(xi, xi_ols, rtol=1e-8, atol=1e-12)
        assert np.count_nonzero(xi) == xi.size

    def test_recovers_sparse_support(self, sparse_problem):
        Theta, targets, xi_true = sparse_problem
        xi, _ = sindy_stls(Theta, targets, threshold=0.02)

        np.testing.assert_array_equal(xi != 0, xi_true != 0)
        np.testing.assert_allclose(xi, xi_true, atol=1e-3)

    def test_large_threshold_gives_empty_model(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        xi, _ = sindy_stls(Theta, targets, threshold=1e5)

        assert np.count_nonzero(xi) == 0

    def test_singular_design_falls_back_to_min_norm(self):
        rng = np.random.default_rng(0)
        a = rng.standard_normal(50)
        b = rng.standard_normal(50)
        Theta = np.column_stack([a, a, b])  # duplicated column
        y = 2 * a + b

        xi = _stls_single(Theta, y, threshold=0.5)

        assert np.all(np.isfinite(xi))
        np.testing.assert_allclose(xi, [1.0, 1.0, 1.0], atol=1e-8)
        np.testing.assert_allclose(Theta @ xi, y, atol=1e-8)

    def test_single_target_column(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        xi, _ = sindy_stls(Theta, targets[:, 0], threshold=0.1)
        assert xi.shape == (8, 1)

    def test_row_mismatch_raises(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        with pytest.raises(ValueError, match="rows"):
            sindy_stls(Theta[:10], targets)

    def test_negative_threshold_raises(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        with pytest.raises(ValueError, match="non-negative"):
            sindy_stls(Theta, targets, threshold=-1.0)

    def test_negative_ridge_raises(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        with pytest.raises(ValueError, match="ridge"):
            sindy_stls(Theta, targets, ridge=-1e-3)

    def test_ridge_screening_leaves_well_conditioned_fit_unbiased(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        xi_plain, _ = sindy_stls(Theta, targets, threshold=0.02, ridge=0.0)
        xi_ridge, _ = sindy_stls(Theta, targets, threshold=0.02, ridge=1e-2)

        np.testing.assert_array_equal(xi_ridge != 0, xi_plain != 0)
        np.testing.assert_allclose(xi_ridge, xi_plain, rtol=1e-10, atol=1e-14)

    def test_ridge_screening_on_noisy_polynomial_library(self, reference_data):
        library = CandidateLibrary(2, 5, ("sin",))
        Theta = library.evaluate(reference_data["x"])
        rng = np.random.default_rng(3)
        targets = reference_data["missing"] + 1e-3 * rng.standard_normal((61, 2))

        xi, _ = sindy_stls(Theta, targets, threshold=0.3)

        xy = library.index("xy")
        np.testing.assert_array_equal(np.flatnonzero(np.any(xi != 0, axis=1)), [xy])
        np.testing.assert_allclose(xi[xy], [-0.9, 0.8], atol=1e-2)

    def test_true_derivatives_recover_lotka_volterra(self, reference_data):
        library = CandidateLibrary(2, 3)
        Theta = library.evaluate(reference_data["x"])
        xi, _ = sindy_stls(Theta, reference_data["x_dot"], threshold=0.1)

        xi_true = reference_data["system"].get_true_coefficients(library.names)
        np.testing.assert_array_equal(xi != 0, xi_true != 0)
        np.testing.assert_allclose(xi, xi_true, atol=1e-4)


class TestThresholdSweep:
    """Tests for threshold_sweep."""

    def test_one_entry_per_threshold_in_input_order(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        thresholds = [1.0, 1e-3, 0.1, 10.0]
        sweep = threshold_sweep(Theta, targets, thresholds, n_workers=4)

        assert isinstance(sweep, ThresholdSweepResult)
        assert len(sweep) == 4
        np.testing.assert_array_equal(sweep.thresholds, thresholds)
        assert all(isinstance(entry, SweepEntry) for entry in sweep)

    def test_parallel_matches_serial(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        thresholds = np.logspace(-3, 1, 25)
        serial = threshold_sweep(Theta, targets, thresholds, n_workers=1)
        parallel = threshold_sweep(Theta, targets, thresholds, n_workers=4)

        for a, b in zip(serial, parallel):
            assert a.threshold == b.threshold
            np.testing.assert_array_equal(a.coefficients, b.coefficients)
            assert a.error == b.error

    def test_monotone_sparsification(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        sweep = threshold_sweep(Theta, targets, np.logspace(-3, 1, 50), n_workers=1)
        active = np.array([entry.active_per_column for entry in sweep])

        assert np.all(np.diff(active, axis=0) <= 0)
        assert active[0].sum() > active[-1].sum()

    def test_entries_are_read_only(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        sweep = threshold_sweep(Theta, targets, [0.1], n_workers=1)

        with pytest.raises(ValueError):
            sweep[0].coefficients[0, 0] = 1.0

    def test_error_and_count_consistent(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        sweep = threshold_sweep(Theta, targets, [0.01, 0.3], n_workers=1)

        for entry in sweep:
            assert entry.n_active == np.count_nonzero(entry.coefficients)
            assert entry.error == pytest.approx(
                residual_sum_of_squares(Theta, targets, entry.coefficients)
            )
        assert sweep.n_samples == 200
        assert sweep.n_vars == 2
        assert not sweep.cross_validated

    def test_empty_models_are_recorded(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        sweep = threshold_sweep(Theta, targets, [1e4, 1e5], n_workers=1)

        np.testing.assert_array_equal(sweep.n_active, [0, 0])
        assert sweep.errors[0] == pytest.approx(np.sum(targets**2))

    def test_cross_validation_errors(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        sweep = threshold_sweep(
            Theta, targets, [1e-3, 0.1, 100.0], n_workers=1, n_folds=4, random_state=0
        )

        assert sweep.cross_validated
        held_out = [entry.validation_error for entry in sweep]
        assert all(err >= 0 for err in held_out)
        # The empty model generalises worst
        assert held_out[2] > held_out[1]

    def test_invalid_folds(self, sparse_problem):
        Theta, targets, _ = sparse_problem
        with pytest.raises(ValueError, match="n_folds"):
            threshold_sweep(Theta, targets, [0.1], n_folds=1)

    def test_default_sweep_grid(self):
        thresholds = SweepConfig().thresholds()
        assert len(thresholds) == 801
        assert thresholds[0] == pytest.approx(1e-3)
        assert thresholds[-1] == pytest.approx(1e5)
        assert np.all(np.diff(np.log10(thresholds)) > 0)

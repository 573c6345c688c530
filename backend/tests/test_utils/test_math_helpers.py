"""Tests for categorical draws, posterior modes and label alignment."""

from __future__ import annotations

import numpy as np
import pytest

from polyreg.utils.math_helpers import align_labels, log_normalize, posterior_mode, sample_categorical


class TestLogNormalize:
    def test_rows_sum_to_one(self):
        probs, degenerate = log_normalize(np.array([[0.0, 0.0], [np.log(3.0), 0.0]]))
        np.testing.assert_allclose(probs, [[0.5, 0.5], [0.75, 0.25]])
        assert not degenerate.any()

    def test_handles_large_magnitudes(self):
        probs, degenerate = log_normalize(np.array([[-1e4, -1e4 - np.log(3.0)]]))
        np.testing.assert_allclose(probs, [[0.75, 0.25]])
        assert not degenerate.any()

    def test_all_minus_inf_row_becomes_uniform(self):
        probs, degenerate = log_normalize(np.array([[-np.inf, -np.inf, -np.inf], [0.0, -np.inf, 0.0]]))
        np.testing.assert_allclose(probs[0], 1.0 / 3.0)
        np.testing.assert_allclose(probs[1], [0.5, 0.0, 0.5])
        assert degenerate.tolist() == [True, False]

    def test_nan_row_becomes_uniform(self):
        probs, degenerate = log_normalize(np.array([[np.nan, np.nan]]))
        np.testing.assert_allclose(probs, [[0.5, 0.5]])
        assert degenerate.tolist() == [True]


class TestSampleCategorical:
    def test_certain_outcome(self):
        rng = np.random.default_rng(0)
        log_w = np.array([[-np.inf, 0.0, -np.inf], [0.0, -np.inf, -np.inf]])
        for _ in range(20):
            idx, n_degenerate = sample_categorical(log_w, rng)
            assert idx.tolist() == [1, 0]
            assert n_degenerate == 0

    def test_frequencies(self):
        rng = np.random.default_rng(1)
        log_w = np.tile(np.log([0.2, 0.8]), (20000, 1))
        idx, _ = sample_categorical(log_w, rng)
        assert idx.mean() == pytest.approx(0.8, abs=0.02)

    def test_counts_degenerate_rows(self):
        rng = np.random.default_rng(2)
        idx, n_degenerate = sample_categorical(np.full((3, 4), -np.inf), rng)
        assert n_degenerate == 3
        assert np.all((idx >= 0) & (idx < 4))


class TestPosteriorMode:
    def test_mode_per_column(self):
        samples = np.array([[0, 2], [1, 2], [1, 0]])
        assert posterior_mode(samples, 3).tolist() == [1, 2]

    def test_ties_go_to_lowest(self):
        samples = np.array([[3, 1], [1, 0]])
        assert posterior_mode(samples, 4).tolist() == [1, 0]


class TestAlignLabels:
    def test_undoes_permutation(self):
        reference = np.array([0, 0, 1, 1, 2, 2])
        switched = np.array([2, 2, 0, 0, 1, 1])
        assert align_labels(switched, reference, 3).tolist() == reference.tolist()

    def test_keeps_best_overlap(self):
        reference = np.array([0, 0, 0, 1])
        labels = np.array([1, 1, 0, 0])
        assert align_labels(labels, reference, 2).tolist() == [0, 0, 1, 1]

"""Tests for registrations, orbits and registration scores."""

from __future__ import annotations

import math

import numpy as np
import pytest

from polyreg.engine.errors import ConfigurationError
from polyreg.engine.registration import (
    Registration,
    admissible_mask,
    best_registration,
    marginal_scores,
    orbit,
    orbit_matrix,
    register,
    score,
    score_orbits,
)
from polyreg.engine.templates import fit_template
from polyreg.utils.geometry import polygon_features


class TestRegistration:
    def test_identity_is_noop(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        reg_l, reg_a = register(lengths, angles, Registration.identity(5))
        np.testing.assert_array_equal(reg_l, lengths)
        np.testing.assert_array_equal(reg_a, angles)

    def test_shift_moves_start_vertex(self):
        lengths = np.array([1.0, 2.0, 3.0, 4.0])
        angles = np.array([10.0, 20.0, 30.0, 40.0])
        reg_l, reg_a = register(lengths, angles, Registration(1, 0, 4))
        assert reg_l.tolist() == [2.0, 3.0, 4.0, 1.0]
        assert reg_a.tolist() == [20.0, 30.0, 40.0, 10.0]

    def test_reflection_keeps_start_vertex(self):
        lengths = np.array([1.0, 2.0, 3.0, 4.0])
        angles = np.array([10.0, 20.0, 30.0, 40.0])
        reg_l, reg_a = register(lengths, angles, Registration(0, 1, 4))
        assert reg_l.tolist() == [4.0, 3.0, 2.0, 1.0]
        assert reg_a.tolist() == [10.0, 40.0, 30.0, 20.0]

    def test_shift_matches_relabelled_polygon(self, l_hexagon):
        lengths, angles = polygon_features(l_hexagon)
        for s in range(6):
            expected = polygon_features(np.roll(l_hexagon, -s, axis=0))
            got = register(lengths, angles, Registration(s, 0, 6))
            np.testing.assert_allclose(got[0], expected[0], atol=1e-12)
            np.testing.assert_allclose(got[1], expected[1], atol=1e-12)

    def test_reflection_matches_reversed_polygon(self, l_hexagon):
        lengths, angles = polygon_features(l_hexagon)
        reversed_points = l_hexagon[[0, 5, 4, 3, 2, 1]]
        expected = polygon_features(reversed_points)
        got = register(lengths, angles, Registration(0, 1, 6))
        np.testing.assert_allclose(got[0], expected[0], atol=1e-12)
        np.testing.assert_allclose(got[1], expected[1], atol=1e-12)

    def test_reflection_is_an_involution(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        once = register(lengths, angles, Registration(0, 1, 5))
        twice = Registration(0, 1, 5).apply(*once)
        np.testing.assert_array_equal(twice[0], lengths)
        np.testing.assert_array_equal(twice[1], angles)

    @pytest.mark.parametrize("shift, reflect", [(-1, 0), (4, 0), (0, 2)])
    def test_invalid_registration(self, shift, reflect):
        with pytest.raises(ValueError):
            Registration(shift, reflect, 4)

    def test_mismatched_vector_length(self):
        with pytest.raises(ValueError):
            register(np.ones(3), np.ones(3), Registration(0, 0, 4))

    def test_admissible_order(self):
        regs = Registration.admissible(3)
        assert [(r.shift, r.reflect) for r in regs] == [(0, 0), (0, 1), (1, 0), (1, 1), (2, 0), (2, 1)]
        assert [r.index for r in regs] == list(range(6))
        assert Registration.admissible(3, estimate_s=False) == [Registration(0, 0, 3), Registration(0, 1, 3)]
        assert Registration.admissible(3, estimate_r=False) == [Registration(s, 0, 3) for s in range(3)]


class TestOrbit:
    def test_orbit_layout(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        l_orb, a_orb = orbit(lengths, angles)
        assert l_orb.shape == (5, 2, 5)
        reg_l, reg_a = register(lengths, angles, Registration(3, 1, 5))
        np.testing.assert_array_equal(l_orb[3, 1], reg_l)
        np.testing.assert_array_equal(a_orb[3, 1], reg_a)

    def test_orbit_matrix_stacks_rows(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        l_orbs, a_orbs = orbit_matrix(np.stack([lengths, lengths[::-1]]), np.stack([angles, angles]))
        assert l_orbs.shape == (2, 5, 2, 5)
        np.testing.assert_array_equal(l_orbs[1, 0, 0], lengths[::-1])


class TestScore:
    def test_perfect_match_score(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        template = fit_template(lengths[None], angles[None], 0.05, 0.1)
        got = score(lengths, angles, Registration.identity(5), template)
        assert got == pytest.approx(-5 * (math.log(0.05) + math.log(0.1)))

    def test_score_decreases_with_distance(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        template = fit_template(lengths[None], angles[None], 0.05, 0.05)
        near = score(lengths + 0.01, angles, Registration.identity(5), template)
        far = score(lengths + 0.05, angles, Registration.identity(5), template)
        assert near > far

    def test_zero_weight_ignores_channel(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        template = fit_template(lengths[None], angles[None], 0.05, 0.05)
        base = score(lengths, angles, Registration.identity(5), template, weight_angles=0.0)
        perturbed = score(lengths, angles + 0.3, Registration.identity(5), template, weight_angles=0.0)
        assert base == perturbed

    def test_negative_weight_rejected(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        template = fit_template(lengths[None], angles[None], 0.05, 0.05)
        with pytest.raises(ConfigurationError) as exc:
            score(lengths, angles, Registration.identity(5), template, weight_lengths=-1.0)
        assert exc.value.parameter == "weight_lengths"

    def test_score_orbits_matches_score(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        template = fit_template(lengths[None] * 1.1, angles[None], 0.05, 0.07)
        l_orb, a_orb = orbit(lengths, angles)
        grid = score_orbits(l_orb[None], a_orb[None], [template], 1.0, 0.5)
        assert grid.shape == (1, 1, 5, 2)
        for reg in Registration.admissible(5):
            expected = score(lengths, angles, reg, template, 1.0, 0.5)
            assert grid[0, 0, reg.shift, reg.reflect] == pytest.approx(expected)


class TestBestRegistration:
    @pytest.mark.parametrize("shift, reflect", [(0, 0), (2, 0), (4, 1), (1, 1)])
    def test_recovers_applied_registration(self, asymmetric_pentagon, shift, reflect):
        lengths, angles = asymmetric_pentagon
        target = Registration(shift, reflect, 5)
        reg_l, reg_a = register(lengths, angles, target)
        template = fit_template(reg_l[None], reg_a[None], 0.05, 0.05)
        assert best_registration(lengths, angles, template) == target

    def test_respects_fixed_reflection(self, asymmetric_pentagon):
        lengths, angles = asymmetric_pentagon
        reg_l, reg_a = register(lengths, angles, Registration(2, 1, 5))
        template = fit_template(reg_l[None], reg_a[None], 0.05, 0.05)
        found = best_registration(lengths, angles, template, estimate_r=False)
        assert found.reflect == 0

    def test_ties_prefer_identity(self):
        # A regular shape scores identically under every registration
        lengths = np.full(4, 0.25)
        angles = np.full(4, 0.25)
        template = fit_template(lengths[None], angles[None], 0.05, 0.05)
        assert best_registration(lengths, angles, template) == Registration.identity(4)


class TestMarginalScores:
    def test_mask_shapes(self):
        assert admissible_mask(4, True, True).sum() == 8
        assert admissible_mask(4, False, True).sum() == 2
        assert admissible_mask(4, True, False).sum() == 4
        mask = admissible_mask(4, False, False)
        assert mask.sum() == 1 and mask[0, 0]

    def test_constant_scores_average_to_themselves(self):
        scores = np.full((3, 2, 4, 2), -1.5)
        got = marginal_scores(scores, admissible_mask(4, True, True))
        np.testing.assert_allclose(got, -1.5)

    def test_best_mode_takes_admissible_max(self):
        scores = np.zeros((1, 1, 3, 2))
        scores[0, 0, 2, 1] = 5.0
        scores[0, 0, 1, 0] = 2.0
        assert marginal_scores(scores, admissible_mask(3, True, True), "best")[0, 0] == 5.0
        assert marginal_scores(scores, admissible_mask(3, True, False), "best")[0, 0] == 2.0

    def test_marginal_between_mean_and_max(self):
        scores = np.log(np.array([1.0, 3.0])).reshape(1, 1, 1, 2)
        got = marginal_scores(scores, admissible_mask(1, True, True))[0, 0]
        assert got == pytest.approx(math.log(2.0))

"""
Tests for RPE estimation and load-velocity helpers.
"""

import pytest

from liftcore.scoring.rpe import (
    VelocityZone, curve_for, DEFAULT_CURVE, estimate_one_rep_max, estimate_rpe,
)


class TestEstimateRPE:

    def test_twenty_percent_loss_is_rpe_eight(self):
        estimate = estimate_rpe(20.0)
        assert estimate.rpe == 8.0
        assert estimate.reps_in_reserve == 2

    def test_no_loss(self):
        estimate = estimate_rpe(0.0)
        assert estimate.rpe == 6.0
        assert estimate.reps_in_reserve == 4

    def test_exercise_specific_curve(self):
        assert estimate_rpe(20.0, "Barbell Back Squat").rpe == pytest.approx(7.8)
        assert estimate_rpe(20.0, "Pull-Up").rpe == pytest.approx(8.2)
        assert curve_for("Unknown Lift") is DEFAULT_CURVE

    @pytest.mark.parametrize("loss, rpe, rir", [
        (-10.0, 6.0, 4),
        (40.0, 10.0, 0),
        (150.0, 10.0, 0),
    ])
    def test_clamped(self, loss, rpe, rir):
        estimate = estimate_rpe(loss)
        assert estimate.rpe == rpe
        assert estimate.reps_in_reserve == rir

    def test_deterministic(self):
        assert estimate_rpe(17.3, "Overhead Press") == estimate_rpe(17.3, "Overhead Press")


class TestLoadVelocity:

    @pytest.mark.parametrize("velocity, zone", [
        (0.3, VelocityZone.MAX_STRENGTH),
        (0.6, VelocityZone.STRENGTH),
        (0.8, VelocityZone.STRENGTH_SPEED),
        (1.1, VelocityZone.SPEED_STRENGTH),
        (1.5, VelocityZone.SPEED),
    ])
    def test_velocity_zones(self, velocity, zone):
        assert VelocityZone.for_velocity(velocity) is zone

    def test_one_rep_max_needs_velocity(self):
        assert estimate_one_rep_max(100.0, None, "Barbell Back Squat") is None
        assert estimate_one_rep_max(0.0, 0.5, "Barbell Back Squat") is None

    def test_one_rep_max_not_below_load(self):
        estimate = estimate_one_rep_max(100.0, 0.5, "Barbell Back Squat")
        assert estimate >= 100.0
        # Slower reps at the same load imply a lower max
        assert estimate_one_rep_max(100.0, 0.35, "Barbell Back Squat") < estimate

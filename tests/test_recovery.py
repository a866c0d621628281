"""
Tests for the recovery heatmap, readiness and auto-deload.
"""

from datetime import datetime, timedelta, timezone

import pytest

from liftcore.scoring.recovery import (
    DeloadReason, Muscle, MuscleRecoveryState, ReadinessLevel, RecoveryZone, VolumeEvent,
    apply_volume, evaluate_deload, hrv_baseline, initial_heatmap, log_volume, readiness,
    reset_weekly_volume, resolve_muscles,
)

T0 = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)


# ============================================================================
# Per-muscle model
# ============================================================================

class TestMuscleRecovery:

    def test_recovery_horizon_by_size(self):
        assert Muscle.QUADRICEPS.recovery_hours == pytest.approx(62.4)
        assert Muscle.BICEPS_LONG.recovery_hours == pytest.approx(33.6)
        assert Muscle.CHEST_UPPER.recovery_hours == 48.0
        assert Muscle.QUADRICEPS.tau_hours == pytest.approx(20.8)

    @pytest.mark.parametrize("muscle", [Muscle.QUADRICEPS, Muscle.BICEPS_LONG, Muscle.ERECTOR_SPINAE])
    def test_recovered_within_five_percent_after_horizon(self, muscle):
        state = MuscleRecoveryState(muscle=muscle, score=20.0, last_trained=T0)
        later = T0 + timedelta(hours=muscle.recovery_hours)
        assert state.current_score(later) >= 95.0
        assert state.current_score(later) < 100.0

    def test_score_is_monotonic_and_untrained_is_full(self):
        state = MuscleRecoveryState(muscle=Muscle.HAMSTRINGS, score=40.0, last_trained=T0)
        scores = [state.current_score(T0 + timedelta(hours=h)) for h in range(0, 80, 8)]
        assert scores[0] == pytest.approx(40.0)
        assert scores == sorted(scores)
        assert MuscleRecoveryState(muscle=Muscle.CALVES).current_score(T0) == 100.0

    def test_hours_to_recovered(self):
        state = MuscleRecoveryState(muscle=Muscle.CHEST_UPPER, score=40.0, last_trained=T0)
        hours = state.hours_to_recovered(T0)
        assert state.current_score(T0 + timedelta(hours=hours)) == pytest.approx(95.0)
        assert MuscleRecoveryState(muscle=Muscle.CHEST_UPPER).hours_to_recovered(T0) == 0.0

    def test_weekly_volume_slows_recovery(self):
        light = MuscleRecoveryState(muscle=Muscle.QUADRICEPS, score=40.0, last_trained=T0, weekly_volume_sets=1)
        heavy = MuscleRecoveryState(muscle=Muscle.QUADRICEPS, score=40.0, last_trained=T0, weekly_volume_sets=5)

        # 1 + 0.15 x 4 sets beyond the first
        assert light.tau_hours == pytest.approx(20.8)
        assert heavy.tau_hours == pytest.approx(20.8 * 1.6)

        later = T0 + timedelta(hours=24)
        assert heavy.current_score(later) < light.current_score(later)
        assert heavy.hours_to_recovered(T0) == pytest.approx(light.hours_to_recovered(T0) * 1.6)

    def test_zones(self):
        assert RecoveryZone.for_score(95) is RecoveryZone.FULLY_RECOVERED
        assert RecoveryZone.for_score(55) is RecoveryZone.MODERATE
        assert RecoveryZone.for_score(10) is RecoveryZone.OVERREACHED


# ============================================================================
# Volume
# ============================================================================

class TestVolume:

    def test_log_volume(self):
        state = log_volume(MuscleRecoveryState(muscle=Muscle.QUADRICEPS), T0, sets=3)
        assert state.score == pytest.approx(64.0)
        assert state.last_trained == T0
        assert state.weekly_volume_sets == 3

    def test_high_rpe_costs_more(self):
        state = log_volume(MuscleRecoveryState(muscle=Muscle.QUADRICEPS), T0, sets=3, rpe=9.5)
        assert state.score == pytest.approx(100.0 - 36.0 * 1.3)

    def test_score_floors_at_zero(self):
        state = log_volume(MuscleRecoveryState(muscle=Muscle.QUADRICEPS), T0, sets=20)
        assert state.score == 0.0

    def test_existing_fatigue_decays_before_new_cost(self):
        tired = MuscleRecoveryState(muscle=Muscle.CHEST_UPPER, score=40.0, last_trained=T0)
        later = T0 + timedelta(hours=16)
        state = log_volume(tired, later, sets=1)
        assert state.score == pytest.approx(tired.current_score(later) - 12.0)

    def test_secondary_muscles_get_half_credit(self):
        event = VolumeEvent(
            timestamp=T0,
            primary=(Muscle.QUADRICEPS,),
            secondary=(Muscle.GLUTE_MAX, Muscle.QUADRICEPS),
            sets=4,
        )
        states = apply_volume(initial_heatmap(), event)

        assert states[Muscle.QUADRICEPS].score == pytest.approx(52.0)
        assert states[Muscle.QUADRICEPS].weekly_volume_sets == 4
        assert states[Muscle.GLUTE_MAX].score == pytest.approx(76.0)
        assert states[Muscle.CHEST_UPPER].score == 100.0

    def test_single_set_still_hits_secondaries(self):
        event = VolumeEvent(timestamp=T0, primary=(Muscle.CHEST_UPPER,), secondary=(Muscle.TRICEPS_LONG,))
        states = apply_volume(initial_heatmap(), event)
        assert states[Muscle.TRICEPS_LONG].weekly_volume_sets == 1

    def test_weekly_reset_keeps_scores(self):
        event = VolumeEvent(timestamp=T0, primary=(Muscle.CHEST_UPPER,), sets=2)
        states = reset_weekly_volume(apply_volume(initial_heatmap(), event))
        assert states[Muscle.CHEST_UPPER].weekly_volume_sets == 0
        assert states[Muscle.CHEST_UPPER].score == pytest.approx(76.0)

    def test_resolve_muscles(self):
        assert resolve_muscles("Glutes") == (Muscle.GLUTE_MAX, Muscle.GLUTE_MED)
        assert resolve_muscles("rear delts") == (Muscle.REAR_DELTS,)
        assert resolve_muscles("glute med") == (Muscle.GLUTE_MED,)
        with pytest.raises(KeyError):
            resolve_muscles("wings")


# ============================================================================
# Readiness
# ============================================================================

class TestReadiness:

    @pytest.mark.parametrize("components, expected", [
        ((100, 0, 0, 0), 35.0),
        ((0, 100, 0, 0), 30.0),
        ((0, 0, 100, 0), 15.0),
        ((0, 0, 0, 100), 20.0),
        ((80, 80, 80, 80), 80.0),
    ])
    def test_weights(self, components, expected):
        assert readiness(*components).overall == pytest.approx(expected)

    def test_levels_and_adjustments(self):
        assert readiness(90, 90, 90, 90).level is ReadinessLevel.OPTIMAL
        low = readiness(20, 20, 20, 20)
        assert low.level is ReadinessLevel.CRITICAL
        assert low.adjustment.should_deload
        assert readiness(60, 60, 60, 60).adjustment.volume_modifier == 0.85


# ============================================================================
# Auto-deload
# ============================================================================

class TestDeload:

    def test_no_triggers(self):
        result = evaluate_deload(48.0, 50.0, [0.5, 0.52, 0.51], [7.5, 8.0, 7.0])
        assert not result.should_deload
        assert result.reason is None
        assert result.volume_modifier == 1.0

    def test_hrv_drop(self):
        result = evaluate_deload(40.0, 50.0)
        assert result.should_deload
        assert result.reasons == (DeloadReason.HRV_DROP,)
        assert result.load_reduction == 0.20
        assert result.duration_days == 3

    def test_small_hrv_dip_is_ignored(self):
        assert not evaluate_deload(45.0, 50.0).should_deload

    def test_velocity_decline(self):
        result = evaluate_deload(None, 0.0, session_velocities=[0.7, 0.6, 0.55, 0.5])
        assert result.reason is DeloadReason.VELOCITY_DECLINE

    def test_flat_velocity_is_not_decline(self):
        assert not evaluate_deload(None, 0.0, session_velocities=[0.6, 0.55, 0.55]).should_deload

    def test_poor_sleep(self):
        result = evaluate_deload(None, 0.0, sleep_hours=[8.0, 5.5, 5.0, 5.9])
        assert result.reason is DeloadReason.POOR_SLEEP

    def test_combined_triggers(self):
        result = evaluate_deload(40.0, 50.0, session_velocities=[0.7, 0.6, 0.5], sleep_hours=[5, 5, 5])
        assert len(result.reasons) == 3
        assert result.reason is DeloadReason.COMBINED_FATIGUE
        assert result.load_reduction == 0.25
        assert result.duration_days == 5
        assert result.volume_modifier == pytest.approx(0.75)

    def test_hrv_baseline_uses_recent_window(self):
        readings = [100.0] * 10 + [50.0] * 14
        assert hrv_baseline(readings) == 50.0
        assert hrv_baseline([]) == 0.0

"""
End-to-end tests for the per-session pipeline and its output channels.
"""

from datetime import datetime, timezone

import pytest

from liftcore.cv.exercise_profiles import ResistanceProfile
from liftcore.cv.pose import Joint, PoseFrame
from liftcore.cv.rep_phase import TrackingLost
from liftcore.cv.session_pipeline import Channel, IterableFrameSource, SessionPipeline
from liftcore.schemas import RecoveryInputs, UserContext
from liftcore.scoring.ranking import RankingState, set_points
from liftcore.scoring.recovery import Muscle

from conftest import FPS, SQUAT, empty_frame, squat_frames

ENDED = datetime(2026, 3, 2, 19, 0, tzinfo=timezone.utc)


def make_pipeline(profile_store, settings, **kwargs):
    pipeline = SessionPipeline(profile_store, settings, **kwargs)
    pipeline.set_user_context(UserContext(height_cm=180.0, bodyweight_kg=80.0, sex="male"))
    pipeline.select_exercise(SQUAT)
    pipeline.calibrate(body_height_units=1.0)
    return pipeline


def collect(channel):
    received = []
    channel.subscribe(received.append)
    return received


# ============================================================================
# Channels
# ============================================================================

class TestChannel:

    def test_failing_subscriber_does_not_block_others(self):
        channel = Channel("test")

        def broken(_):
            raise RuntimeError("subscriber bug")

        channel.subscribe(broken)
        received = collect(channel)
        channel.publish(1)
        channel.publish(2)

        assert received == [1, 2]
        assert len(channel) == 2

    def test_unsubscribe(self):
        channel = Channel("test")
        received = collect(channel)
        channel.unsubscribe(received.append)
        channel.publish(1)
        assert received == []


# ============================================================================
# Frame loop
# ============================================================================

class TestFrameLoop:

    def test_reps_and_fatigue_published(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        reps = collect(pipeline.rep_events)
        fatigue = collect(pipeline.fatigue_updates)

        processed = pipeline.run(IterableFrameSource(squat_frames(3)))

        assert processed == 3 * 60 + 1
        assert [r.rep_number for r in reps] == [1, 2, 3]
        assert len(fatigue) == 3
        for rep in reps:
            assert rep.mean_concentric_velocity is not None and rep.mean_concentric_velocity > 0
            assert rep.concentric_duration > 0
            assert 0.0 <= rep.form_score <= 100.0
        assert pipeline.current_reps == tuple(reps)

    def test_subscriber_exception_does_not_break_loop(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)

        def broken(_):
            raise ValueError("boom")

        pipeline.rep_events.subscribe(broken)
        reps = collect(pipeline.rep_events)
        pipeline.run(IterableFrameSource(squat_frames(2)))

        assert len(reps) == 2

    def test_uncalibrated_session_has_no_absolute_velocity(self, profile_store, settings):
        pipeline = SessionPipeline(profile_store, settings)
        pipeline.select_exercise(SQUAT)
        reps = collect(pipeline.rep_events)
        pipeline.run(IterableFrameSource(squat_frames(1)))

        assert reps[0].mean_concentric_velocity is None
        assert pipeline.end_set(60.0).record.mean_concentric_velocity is None

    def test_lost_velocity_joint_does_not_trip_auto_stop(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        reps = collect(pipeline.rep_events)

        # Root drops out after the first rep while the knee angle stays tracked
        frames = [
            f if f.timestamp <= 2.0
            else PoseFrame(f.timestamp, {j: r for j, r in f.joints.items() if j is not Joint.ROOT})
            for f in squat_frames(2)
        ]
        pipeline.run(IterableFrameSource(frames))

        assert [r.rep_number for r in reps] == [1, 2]
        assert reps[0].mean_concentric_velocity is not None
        assert reps[1].mean_concentric_velocity is None
        assert not pipeline.fatigue_status.auto_stop
        assert pipeline.fatigue_status.velocity_loss_percent == pytest.approx(0.0, abs=1e-6)

    def test_session_peak_velocity_spans_exercises(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        assert pipeline.session_peak_velocity is None

        reps = collect(pipeline.rep_events)
        pipeline.run(IterableFrameSource(squat_frames(2)))
        pipeline.end_set(100.0)
        peak = max(r.peak_concentric_velocity for r in reps)
        assert pipeline.session_peak_velocity == pytest.approx(peak)

        pipeline.select_exercise("Barbell Bench Press")
        assert pipeline.session_peak_velocity == pytest.approx(peak)

    def test_tracking_lost_notice(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        notices = collect(pipeline.notices)

        frames = squat_frames(1)[:25]
        last_t = frames[-1].timestamp
        frames += [empty_frame(last_t + (i + 1) / FPS) for i in range(20)]
        pipeline.run(IterableFrameSource(frames))

        assert len(notices) == 1
        assert isinstance(notices[0], TrackingLost)
        assert pipeline.current_reps == ()

    def test_retained_frames_are_compacted(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings, retain_frames=True)
        frames = squat_frames(1)
        pipeline.run(IterableFrameSource(frames))

        assert len(pipeline.compact_frames) == len(frames)
        assert set(pipeline.compact_frames[0].points) <= {"left_knee", "left_hip", "left_ankle", "root",
                                                           "right_knee", "right_hip", "right_ankle",
                                                           "left_shoulder", "neck"}


# ============================================================================
# Set and session boundaries
# ============================================================================

class TestBoundaries:

    def test_frames_before_exercise_selection(self, profile_store, settings):
        pipeline = SessionPipeline(profile_store, settings)
        with pytest.raises(RuntimeError):
            pipeline.process_frame(squat_frames(1)[0])

    def test_unknown_exercise(self, profile_store, settings):
        pipeline = SessionPipeline(profile_store, settings)
        with pytest.raises(KeyError):
            pipeline.select_exercise("Underwater Basket Squat")

    def test_end_set(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        summaries = collect(pipeline.set_summaries)
        pipeline.run(IterableFrameSource(squat_frames(3)))

        summary = pipeline.end_set(100.0)

        assert summary.set_number == 1
        assert summary.record.exercise == SQUAT
        assert summary.record.reps == 3
        assert summary.record.effective_load_kg == 100.0
        assert summary.record.mean_concentric_velocity is not None
        assert 0.0 <= summary.rpe.rpe <= 10.0
        assert len(summary.reps) == 3
        assert summaries == [summary]
        assert pipeline.current_reps == ()
        assert not pipeline.fatigue_status.auto_stop

    def test_rep_numbering_restarts_each_set(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        reps = collect(pipeline.rep_events)
        pipeline.run(IterableFrameSource(squat_frames(2)))
        pipeline.end_set(100.0)
        pipeline.run(IterableFrameSource(squat_frames(2, start=30.0)))

        assert [r.rep_number for r in reps] == [1, 2, 1, 2]

    def test_negative_load(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        with pytest.raises(ValueError):
            pipeline.end_set(-5.0)

    def test_machine_resistance_profile(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        pipeline.select_exercise(SQUAT, ResistanceProfile.ASCENDING, starting_resistance_kg=10.0)
        pipeline.run(IterableFrameSource(squat_frames(1)))
        assert pipeline.end_set(90.0).record.effective_load_kg == pytest.approx(90.0)

    def test_switching_exercise_mid_set(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        pipeline.run(IterableFrameSource(squat_frames(1)))
        with pytest.raises(RuntimeError):
            pipeline.select_exercise("Barbell Bench Press")

    def test_end_session(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        outcomes = collect(pipeline.lp_outcomes)
        pipeline.run(IterableFrameSource(squat_frames(3)))
        summary = pipeline.end_set(100.0)

        outcome = pipeline.end_session(ENDED)
        lp = outcome.lp

        assert lp.computed
        assert lp.session_delta == set_points(summary.record, 80.0, "male").points
        assert lp.cumulative_points == lp.session_delta
        assert outcomes == [lp]
        assert pipeline.ranking_state == lp.state
        assert pipeline.recovery_states[Muscle.QUADRICEPS].score < 100.0
        assert pipeline.recovery_states[Muscle.QUADRICEPS].last_trained == ENDED
        assert pipeline.recovery_states[Muscle.CHEST_UPPER].score == 100.0

        with pytest.raises(RuntimeError):
            pipeline.end_session(ENDED)

    def test_end_session_with_open_set(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        pipeline.run(IterableFrameSource(squat_frames(1)))
        with pytest.raises(RuntimeError):
            pipeline.end_session(ENDED)

    def test_session_points_build_on_existing_state(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings, ranking_state=RankingState(cumulative_points=500))
        pipeline.run(IterableFrameSource(squat_frames(2)))
        pipeline.end_set(100.0)
        lp = pipeline.end_session(ENDED).lp
        assert lp.cumulative_points == 500 + lp.session_delta

    def test_missing_bodyweight(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        pipeline.set_user_context(UserContext(height_cm=180.0))
        pipeline.run(IterableFrameSource(squat_frames(1)))
        pipeline.end_set(100.0)

        outcome = pipeline.end_session(ENDED)
        assert not outcome.lp.computed
        # Recovery still updates
        assert outcome.recovery[Muscle.QUADRICEPS].score < 100.0

    def test_abort_keeps_completed_reps(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        frames = squat_frames(2)
        pipeline.run(IterableFrameSource(frames[:90]))  # One rep and half of the next
        pipeline.abort()
        assert len(pipeline.current_reps) == 1
        assert pipeline.end_set(100.0).record.reps == 1

    def test_assess_recovery(self, profile_store, settings):
        pipeline = make_pipeline(profile_store, settings)
        report = pipeline.assess_recovery(
            RecoveryInputs(hrv_score=80, sleep_score=80, resting_hr_score=80),
            now=ENDED,
        )
        assert report.readiness.overall == pytest.approx(84.0)
        assert not report.deload.should_deload
        assert report.scores[Muscle.QUADRICEPS] == 100.0

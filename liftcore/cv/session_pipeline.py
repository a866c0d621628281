"""
Per-session processing pipeline.

PIPELINE STAGES (per frame, synchronous):
1. Velocity engine sees the frame under the phase it was captured in
2. Rep phase state machine advances and may complete a rep
3. Form analyzer scores the frame and reports new issues immediately
4. On a completed rep: RepEvent and FatigueStatus are published

SESSION BOUNDARIES:
- end_set(): assembles the SetRecord/SetSummary (with RPE estimate)
- end_session(): ranking and recovery updates, once per session

Outputs go through explicit Channel objects; consumers subscribe to the
channel they need. All mutable state is owned by the pipeline instance.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Generic, Iterable, Iterator, List, Optional, Protocol, Tuple, TypeVar

import numpy as np

from liftcore.config import Settings, get_settings
from liftcore.cv.exercise_profiles import ExerciseProfile, ExerciseProfileStore, ResistanceProfile
from liftcore.cv.form_analyzer import FormAnalyzer, FormIssue
from liftcore.cv.pose import CompactFrame, Joint, PoseFrame
from liftcore.cv.rep_phase import PhaseUpdate, RepPhaseMachine
from liftcore.cv.velocity_engine import Calibration, FatigueStatus, VelocityEngine
from liftcore.schemas import RecoveryInputs, UserContext
from liftcore.scoring.ranking import LPOutcome, RankingState, SetRecord
from liftcore.scoring.recovery import Muscle, MuscleRecoveryState, initial_heatmap
from liftcore.scoring.rpe import RPEEstimate, estimate_rpe
from liftcore.scoring.session_end import RecoveryReport, SessionOutcome, assess_recovery, finalize_session

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RepEvent:
    """One completed rep. Velocities are None when uncalibrated."""
    rep_number: int
    timestamp: float
    eccentric_duration: float
    concentric_duration: float
    form_score: float
    rom_degrees: float
    bar_path_deviation: Optional[float]
    mean_concentric_velocity: Optional[float]
    peak_concentric_velocity: Optional[float]
    mean_eccentric_velocity: Optional[float] = None
    issues: Tuple[FormIssue, ...] = ()


@dataclass(frozen=True)
class SetSummary:
    set_number: int
    record: SetRecord
    reps: Tuple[RepEvent, ...]
    fatigue: FatigueStatus
    rpe: RPEEstimate


class Channel(Generic[T]):
    """Explicit output channel; subscribers are called synchronously in order."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[T], None]:
        self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Callable[[T], None]):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, message: T):
        for callback in list(self._subscribers):
            try:
                callback(message)
            except Exception:
                logger.exception(f"Subscriber on '{self.name}' failed")

    def __len__(self) -> int:
        return len(self._subscribers)


class FrameSource(Protocol):
    """Pose frame producer: next frame, or None at end of stream."""

    def next_frame(self) -> Optional[PoseFrame]:
        ...


class IterableFrameSource:
    """Adapts any iterable of PoseFrames to the FrameSource protocol."""

    def __init__(self, frames: Iterable[PoseFrame]):
        self._frames: Iterator[PoseFrame] = iter(frames)

    def next_frame(self) -> Optional[PoseFrame]:
        return next(self._frames, None)


def profile_joints(profile: ExerciseProfile) -> Tuple[Joint, ...]:
    """Joints a profile reads, used when compacting frames."""
    joints = {profile.velocity_joint}
    spec = profile.tracking_angle
    joints.update((spec.vertex, spec.start, spec.end))
    for check in profile.angle_checks:
        joints.update((check.angle.vertex, check.angle.start, check.angle.end))
    for check in profile.issue_checks:
        joints.add(check.joint)
    if profile.bar_path_joint is not None:
        joints.add(profile.bar_path_joint)
    return tuple(sorted(joints, key=lambda j: j.value))


class SessionPipeline:
    """
    One active training session.

    Collaborators (profile store, settings, long-lived ranking and recovery
    state) are passed in; nothing is shared across sessions.
    """

    def __init__(
        self,
        profile_store: ExerciseProfileStore,
        settings: Optional[Settings] = None,
        ranking_state: Optional[RankingState] = None,
        recovery_states: Optional[Dict[Muscle, MuscleRecoveryState]] = None,
        retain_frames: bool = False
    ):
        self.profile_store = profile_store
        self.settings = settings or get_settings()
        self.ranking_state = ranking_state or RankingState()
        self.recovery_states = dict(recovery_states) if recovery_states is not None else initial_heatmap()
        self.retain_frames = retain_frames

        # Output channels
        self.rep_events: Channel[RepEvent] = Channel("rep_events")
        self.fatigue_updates: Channel[FatigueStatus] = Channel("fatigue_updates")
        self.form_issues: Channel[FormIssue] = Channel("form_issues")
        self.notices: Channel[object] = Channel("notices")
        self.set_summaries: Channel[SetSummary] = Channel("set_summaries")
        self.lp_outcomes: Channel[LPOutcome] = Channel("lp_outcomes")

        self.user = UserContext()
        self.profile: Optional[ExerciseProfile] = None
        self._phase: Optional[RepPhaseMachine] = None
        self._velocity: Optional[VelocityEngine] = None
        self._form: Optional[FormAnalyzer] = None
        self._calibration: Optional[Calibration] = None

        self._current_reps: List[RepEvent] = []
        self._set_summaries: List[SetSummary] = []
        self.compact_frames: List[CompactFrame] = []
        self._frames_seen = 0
        self._session_peak: Optional[float] = None  # m/s, across all exercises
        self._ended = False

    # ------------------------------------------------------------------
    # Inbound calls
    # ------------------------------------------------------------------

    def select_exercise(
        self,
        name: str,
        resistance_profile: Optional[ResistanceProfile] = None,
        starting_resistance_kg: float = 0.0
    ) -> ExerciseProfile:
        """Activate an exercise profile. Frames are rejected until this is called."""
        if self._current_reps:
            raise RuntimeError("End the current set before switching exercise")

        profile = self.profile_store.get(name)
        if resistance_profile is not None or starting_resistance_kg:
            profile = profile.for_machine(
                resistance_profile or profile.resistance_profile,
                starting_resistance_kg,
            )

        self.profile = profile
        self._phase = RepPhaseMachine(profile, self.settings)
        self._velocity = VelocityEngine(profile, self.settings)
        self._velocity.calibration = self._calibration
        self._form = FormAnalyzer(profile)

        logger.info(f"Exercise selected: {profile.name} "
                    f"({profile.resistance_profile.value}, +{profile.starting_resistance_kg}kg)")
        return profile

    def set_user_context(self, user: UserContext):
        self.user = user

    def calibrate(
        self,
        frame: Optional[PoseFrame] = None,
        body_height_units: Optional[float] = None
    ) -> bool:
        """Calibrate velocity from the user's height; False if it could not be applied."""
        velocity = self._require_exercise()[1]
        applied = velocity.calibrate(self.user.height_cm, frame=frame, body_height_units=body_height_units)
        if applied:
            self._calibration = velocity.calibration
        return applied

    def assess_recovery(self, inputs: RecoveryInputs, now: Optional[datetime] = None) -> RecoveryReport:
        return assess_recovery(inputs, self.recovery_states, now or datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Frame loop
    # ------------------------------------------------------------------

    def _require_exercise(self) -> Tuple[RepPhaseMachine, VelocityEngine, FormAnalyzer]:
        if self._phase is None or self._velocity is None or self._form is None:
            raise RuntimeError("No exercise selected")
        return self._phase, self._velocity, self._form

    def process_frame(self, frame: PoseFrame) -> PhaseUpdate:
        phase, velocity, form = self._require_exercise()
        self._frames_seen += 1

        velocity.process_frame(frame)
        update = phase.process_frame(frame)
        velocity.update_phase(update.phase)

        assessment = form.process_frame(frame, update)
        for issue in assessment.issues:
            self.form_issues.publish(issue)

        if update.notice is not None:
            form.discard_rep()
            self.notices.publish(update.notice)

        if update.completed is not None:
            self._emit_rep(update, velocity, form)

        if self.retain_frames:
            self.compact_frames.append(CompactFrame.from_frame(frame, profile_joints(self.profile)))

        return update

    def _emit_rep(self, update: PhaseUpdate, velocity: VelocityEngine, form: FormAnalyzer):
        cycle = update.completed
        rep_velocity = velocity.complete_rep()
        rep_form = form.complete_rep(cycle)

        event = RepEvent(
            rep_number=cycle.rep_number,
            timestamp=cycle.end_timestamp,
            eccentric_duration=cycle.eccentric_duration,
            concentric_duration=cycle.concentric_duration,
            form_score=rep_form.form_score,
            rom_degrees=rep_form.rom_degrees,
            bar_path_deviation=rep_form.bar_path_deviation,
            mean_concentric_velocity=rep_velocity.mean_concentric,
            peak_concentric_velocity=rep_velocity.peak_concentric,
            mean_eccentric_velocity=rep_velocity.mean_eccentric,
            issues=rep_form.issues,
        )
        if event.peak_concentric_velocity is not None:
            self._session_peak = max(self._session_peak or 0.0, event.peak_concentric_velocity)
        self._current_reps.append(event)
        self.rep_events.publish(event)
        self.fatigue_updates.publish(velocity.fatigue_status())

    def run(self, source: FrameSource) -> int:
        """Drain a frame source; returns the number of frames processed."""
        count = 0
        while True:
            frame = source.next_frame()
            if frame is None:
                break
            self.process_frame(frame)
            count += 1
        logger.info(f"Frame source exhausted after {count} frames")
        return count

    @property
    def fatigue_status(self) -> FatigueStatus:
        if self._velocity is None:
            return FatigueStatus()
        return self._velocity.fatigue_status()

    @property
    def current_reps(self) -> Tuple[RepEvent, ...]:
        return tuple(self._current_reps)

    @property
    def set_summaries_so_far(self) -> Tuple[SetSummary, ...]:
        return tuple(self._set_summaries)

    @property
    def session_peak_velocity(self) -> Optional[float]:
        """Fastest rep peak concentric velocity of the session in m/s."""
        return self._session_peak

    # ------------------------------------------------------------------
    # Boundaries
    # ------------------------------------------------------------------

    def abort(self):
        """Drop the in-flight rep; completed reps are kept."""
        if self._phase is None:
            return
        self._phase.abort_rep()
        self._velocity.discard_rep()
        self._velocity.update_phase(self._phase.phase)
        self._form.discard_rep()

    def end_set(self, load_kg: float) -> SetSummary:
        """Close the current set at the given nominal load."""
        if load_kg < 0:
            raise ValueError("load_kg must be >= 0")
        phase, velocity, form = self._require_exercise()
        self.abort()

        reps = tuple(self._current_reps)
        fatigue = velocity.fatigue_status()
        form_score = float(np.mean([r.form_score for r in reps])) if reps else 0.0

        record = SetRecord(
            exercise=self.profile.name,
            reps=len(reps),
            load_kg=float(load_kg),
            effective_load_kg=velocity.effective_load(load_kg),
            mean_concentric_velocity=velocity.set_mean_velocity,
            form_score=round(form_score, 1),
        )
        summary = SetSummary(
            set_number=len(self._set_summaries) + 1,
            record=record,
            reps=reps,
            fatigue=fatigue,
            rpe=estimate_rpe(fatigue.velocity_loss_percent, self.profile.name),
        )
        self._set_summaries.append(summary)
        logger.info(f"Set {summary.set_number} ended: {record.reps} reps @ {load_kg}kg, "
                    f"loss={fatigue.velocity_loss_percent:.1f}%, rpe={summary.rpe.rpe}")

        self._current_reps = []
        velocity.reset_for_new_set()
        phase.reset()
        form.reset()

        self.set_summaries.publish(summary)
        return summary

    def end_session(self, timestamp: Optional[datetime] = None) -> SessionOutcome:
        """
        Rank the session and update recovery. Call exactly once.

        Raises:
            RuntimeError: if a set still has unrecorded reps or the session already ended
        """
        if self._ended:
            raise RuntimeError("Session already ended")
        if self._current_reps:
            raise RuntimeError("End the current set before ending the session")

        self.abort()
        outcome = finalize_session(
            [(s.record, s.rpe.rpe) for s in self._set_summaries],
            self.user,
            self.ranking_state,
            self.recovery_states,
            self.profile_store,
            timestamp or datetime.now(timezone.utc),
            self.settings,
        )
        self.ranking_state = outcome.lp.state
        self.recovery_states = outcome.recovery
        self._ended = True

        self.lp_outcomes.publish(outcome.lp)
        return outcome

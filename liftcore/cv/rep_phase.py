"""
Rep phase state machine.

Tracks the movement phase of the active exercise from the tracked joint
angle and emits exactly one RepCycle per completed
DESCENDING -> BOTTOM_HOLD -> ASCENDING -> TOP_HOLD cycle.

PHASE DETECTION:
- The smoothed angle is mapped to a normalized depth (0 = top target,
  1 = bottom target) so the same thresholds work for exercises where the
  top is the extended angle (squat) and where it is the flexed one (row).
- Each zone has separate enter/exit depths. Jitter smaller than the gap
  between them cannot flip the phase back and forth.

MISSING DATA:
- An Absent tracked angle holds the current phase.
- More than `missing_frame_budget` consecutive Absent frames resets to
  IDLE and reports TrackingLost. The in-flight rep is discarded.
- No amplitude change for `inactivity_timeout_seconds` also resets to
  IDLE without emitting a partial rep.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from liftcore.config import Settings, get_settings
from liftcore.cv.exercise_profiles import ExerciseProfile
from liftcore.cv.pose import PoseFrame, Present
from liftcore.cv.signal_smoother import SignalSmoother

logger = logging.getLogger(__name__)


class RepPhase(Enum):
    """Phases of a repetition."""
    IDLE = "idle"                # No movement tracked yet, or reset
    DESCENDING = "descending"    # Eccentric: moving from top toward bottom
    BOTTOM_HOLD = "bottom_hold"  # In the bottom zone
    ASCENDING = "ascending"      # Concentric: moving from bottom toward top
    TOP_HOLD = "top_hold"        # In the top zone / lockout


IN_REP_PHASES = (RepPhase.DESCENDING, RepPhase.BOTTOM_HOLD, RepPhase.ASCENDING)


@dataclass(frozen=True)
class PhaseThresholds:
    """Normalized depth thresholds with hysteresis."""
    top_enter: float = 0.2
    top_exit: float = 0.3
    bottom_enter: float = 0.7
    bottom_exit: float = 0.6

    def __post_init__(self):
        if not (self.top_enter < self.top_exit <= self.bottom_exit < self.bottom_enter):
            raise ValueError(f"Phase thresholds must satisfy top_enter < top_exit <= "
                             f"bottom_exit < bottom_enter, got {self}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PhaseThresholds":
        return cls(
            top_enter=settings.top_enter_depth,
            top_exit=settings.top_exit_depth,
            bottom_enter=settings.bottom_enter_depth,
            bottom_exit=settings.bottom_exit_depth,
        )


def advance(phase: RepPhase, depth: float, thresholds: PhaseThresholds) -> RepPhase:
    """Pure phase transition for one depth sample."""
    th = thresholds

    if phase is RepPhase.IDLE:
        return RepPhase.TOP_HOLD if depth <= th.top_enter else RepPhase.IDLE

    if phase is RepPhase.TOP_HOLD:
        return RepPhase.DESCENDING if depth > th.top_exit else RepPhase.TOP_HOLD

    if phase is RepPhase.DESCENDING:
        if depth >= th.bottom_enter:
            return RepPhase.BOTTOM_HOLD
        if depth <= th.top_enter:
            # Came back up without reaching the bottom
            return RepPhase.TOP_HOLD
        return RepPhase.DESCENDING

    if phase is RepPhase.BOTTOM_HOLD:
        return RepPhase.ASCENDING if depth < th.bottom_exit else RepPhase.BOTTOM_HOLD

    if phase is RepPhase.ASCENDING:
        if depth <= th.top_enter:
            return RepPhase.TOP_HOLD
        if depth >= th.bottom_enter:
            return RepPhase.BOTTOM_HOLD
        return RepPhase.ASCENDING

    raise ValueError(f"Unknown phase: {phase}")


@dataclass(frozen=True)
class RepCycle:
    """Timing and range of one completed repetition."""
    rep_number: int
    eccentric_start: float
    concentric_start: float
    end_timestamp: float
    min_angle: float
    max_angle: float

    @property
    def eccentric_duration(self) -> float:
        return self.concentric_start - self.eccentric_start

    @property
    def concentric_duration(self) -> float:
        return self.end_timestamp - self.concentric_start

    @property
    def rom_degrees(self) -> float:
        return self.max_angle - self.min_angle


@dataclass(frozen=True)
class TrackingLost:
    """Non-fatal notice: the tracked angle was missing for too long."""
    timestamp: float
    missing_frames: int
    discarded_rep: bool


@dataclass(frozen=True)
class RepAbandoned:
    """Non-fatal notice: an in-flight rep was dropped after inactivity."""
    timestamp: float
    phase: RepPhase


@dataclass(frozen=True)
class PhaseUpdate:
    """Result of feeding one frame to the machine."""
    timestamp: float
    previous: RepPhase
    phase: RepPhase
    angle: Optional[float] = None  # Smoothed tracked angle, None when Absent
    completed: Optional[RepCycle] = None
    notice: Optional[object] = None

    @property
    def changed(self) -> bool:
        return self.phase is not self.previous


class RepPhaseMachine:
    """
    Stateful wrapper around `advance` for one exercise.

    Owns the angle smoother, rep accumulation and the missing-data and
    inactivity policies. One instance per active session.
    """

    def __init__(self, profile: ExerciseProfile, settings: Optional[Settings] = None):
        self.profile = profile
        self.settings = settings or get_settings()
        self.thresholds = PhaseThresholds.from_settings(self.settings)

        self.phase = RepPhase.IDLE
        self.rep_count = 0

        self._smoother = SignalSmoother(window_size=self.settings.angle_smoothing_window)
        self._missing_frames = 0
        self._tracking_lost_reported = False

        # Inactivity tracking
        self._motion_anchor: Optional[float] = None
        self._motion_anchor_time: Optional[float] = None

        # Current rep accumulation
        self._eccentric_start: Optional[float] = None
        self._concentric_start: Optional[float] = None
        self._min_angle = float("inf")
        self._max_angle = float("-inf")
        self._top_angle: Optional[float] = None  # Shallowest angle of the current top hold

        logger.info(f"RepPhaseMachine initialized: {profile.name}, "
                    f"top={profile.top_angle}, bottom={profile.bottom_angle}")

    def process_frame(self, frame: PoseFrame) -> PhaseUpdate:
        previous = self.phase
        timestamp = frame.timestamp
        reading = self.profile.tracking_angle.measure(frame)

        if not isinstance(reading, Present):
            return self._hold_missing(previous, timestamp)

        self._missing_frames = 0
        self._tracking_lost_reported = False

        angle = self._smoother.push(reading.value, timestamp, reading.confidence)

        notice = self._check_inactivity(angle, timestamp)
        if notice is not None or (self.phase is RepPhase.IDLE and previous is not RepPhase.IDLE):
            # Reset this frame; re-entry starts on the next one
            return PhaseUpdate(timestamp, previous, self.phase, angle=angle, notice=notice)

        new_phase = advance(self.phase, self.profile.depth(angle), self.thresholds)
        completed = self._on_transition(self.phase, new_phase, angle, timestamp)
        self.phase = new_phase

        if self.phase in IN_REP_PHASES:
            self._min_angle = min(self._min_angle, angle)
            self._max_angle = max(self._max_angle, angle)
        elif self.phase is RepPhase.TOP_HOLD:
            if self._top_angle is None or self.profile.depth(angle) < self.profile.depth(self._top_angle):
                self._top_angle = angle

        return PhaseUpdate(timestamp, previous, self.phase, angle=angle, completed=completed)

    def _hold_missing(self, previous: RepPhase, timestamp: float) -> PhaseUpdate:
        self._missing_frames += 1
        budget = self.settings.missing_frame_budget

        if self._missing_frames > budget and not self._tracking_lost_reported:
            in_rep = self.phase in IN_REP_PHASES
            logger.warning(f"Tracking lost at {timestamp:.2f}s after "
                           f"{self._missing_frames} missing frames (phase={self.phase.value})")
            self._reset_to_idle()
            self._smoother.reset()
            self._tracking_lost_reported = True
            notice = TrackingLost(timestamp, self._missing_frames, discarded_rep=in_rep)
            return PhaseUpdate(timestamp, previous, self.phase, notice=notice)

        return PhaseUpdate(timestamp, previous, self.phase)

    def _check_inactivity(self, angle: float, timestamp: float) -> Optional[RepAbandoned]:
        if self._motion_anchor is None or abs(angle - self._motion_anchor) > self.settings.motion_epsilon_degrees:
            self._motion_anchor = angle
            self._motion_anchor_time = timestamp
            return None

        if self.phase is RepPhase.IDLE:
            return None

        if timestamp - self._motion_anchor_time < self.settings.inactivity_timeout_seconds:
            return None

        abandoned = self.phase if self.phase in IN_REP_PHASES else None
        logger.info(f"Inactivity at {timestamp:.2f}s, resetting from {self.phase.value}")
        self._reset_to_idle()
        self._motion_anchor_time = timestamp
        if abandoned is not None:
            return RepAbandoned(timestamp, abandoned)
        return None

    def _on_transition(
        self,
        old: RepPhase,
        new: RepPhase,
        angle: float,
        timestamp: float
    ) -> Optional[RepCycle]:
        if old is new:
            return None

        logger.debug(f"{timestamp:.2f}s: {old.value} -> {new.value} (angle={angle:.1f})")

        if new is RepPhase.TOP_HOLD:
            self._top_angle = None

        if new is RepPhase.DESCENDING and old is RepPhase.TOP_HOLD:
            self._clear_rep()
            self._eccentric_start = timestamp
            if self._top_angle is not None:
                # Range of motion starts from the lockout held before the descent
                self._min_angle = self._max_angle = self._top_angle
        elif new is RepPhase.ASCENDING:
            self._concentric_start = timestamp
        elif new is RepPhase.TOP_HOLD and old is RepPhase.DESCENDING:
            # Partial descent, nothing to count
            self._clear_rep()
        elif new is RepPhase.TOP_HOLD and old is RepPhase.ASCENDING:
            return self._complete_rep(angle, timestamp)
        return None

    def _complete_rep(self, angle: float, timestamp: float) -> Optional[RepCycle]:
        if self._eccentric_start is None or self._concentric_start is None:
            self._clear_rep()
            return None

        self.rep_count += 1
        cycle = RepCycle(
            rep_number=self.rep_count,
            eccentric_start=self._eccentric_start,
            concentric_start=self._concentric_start,
            end_timestamp=timestamp,
            min_angle=min(self._min_angle, angle),
            max_angle=max(self._max_angle, angle),
        )
        logger.info(f"Rep #{cycle.rep_number} completed: rom={cycle.rom_degrees:.1f}deg, "
                    f"ecc={cycle.eccentric_duration:.2f}s, con={cycle.concentric_duration:.2f}s")
        self._clear_rep()
        return cycle

    def _clear_rep(self):
        self._eccentric_start = None
        self._concentric_start = None
        self._min_angle = float("inf")
        self._max_angle = float("-inf")

    def _reset_to_idle(self):
        self.phase = RepPhase.IDLE
        self._top_angle = None
        self._clear_rep()

    @property
    def rep_in_progress(self) -> bool:
        return self.phase in IN_REP_PHASES

    def abort_rep(self):
        """Discard any in-flight rep (external session abort)."""
        if self.rep_in_progress:
            logger.info(f"Discarding in-flight rep in phase {self.phase.value}")
        self._reset_to_idle()

    def reset(self, keep_count: bool = False):
        """Reset phase tracking; rep numbering restarts unless `keep_count`."""
        self._reset_to_idle()
        self._smoother.reset()
        self._missing_frames = 0
        self._tracking_lost_reported = False
        self._motion_anchor = None
        self._motion_anchor_time = None
        if not keep_count:
            self.rep_count = 0

"""
Form analyzer.

Per frame: scores joint angles against the profile's ideal ranges and
evaluates discrete form issues. Issues are returned from the same call
that detected them, so major issues reach subscribers in the tick they
occur.

Per rep: combines range-of-motion attainment, tempo adherence and frame
quality into a 0-100 form score, minus a penalty for bar-path drift
outside the profile's envelope.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

import numpy as np

from liftcore.cv.exercise_profiles import ExerciseProfile, IssueSeverity
from liftcore.cv.pose import Joint, PoseFrame, Present
from liftcore.cv.rep_phase import IN_REP_PHASES, PhaseUpdate, RepCycle, RepPhase

logger = logging.getLogger(__name__)

# Form score weights (sum to 100)
ROM_WEIGHT = 60.0
TEMPO_WEIGHT = 25.0
FRAME_QUALITY_WEIGHT = 15.0
MAX_DEVIATION_PENALTY = 25.0


@dataclass(frozen=True)
class FormIssue:
    name: str
    severity: IssueSeverity
    joint: Joint
    message: str
    timestamp: float
    rep_number: int  # Rep the issue occurred in (next rep number while in progress)

    @property
    def is_major(self) -> bool:
        return self.severity is IssueSeverity.MAJOR


@dataclass(frozen=True)
class FrameAssessment:
    timestamp: float
    score: float  # 0-100
    issues: Tuple[FormIssue, ...] = ()  # Newly detected this frame

    @property
    def major_issues(self) -> Tuple[FormIssue, ...]:
        return tuple(i for i in self.issues if i.is_major)


@dataclass(frozen=True)
class RepForm:
    form_score: float
    rom_degrees: float
    rom_attainment: float      # 0-1
    tempo_adherence: float     # 0-1
    frame_quality: float       # 0-1
    bar_path_deviation: Optional[float]  # Max lateral drift in pose units
    deviation_penalty: float
    issues: Tuple[FormIssue, ...] = ()


def angle_penalty(value: float, ideal_min: float, ideal_max: float, weight: float) -> float:
    """Penalty for an angle outside its ideal range, capped at weight x 30."""
    if value < ideal_min:
        deviation = ideal_min - value
    elif value > ideal_max:
        deviation = value - ideal_max
    else:
        return 0.0
    return min(weight * 30.0, deviation * weight * 2.0)


def tempo_adherence(actual: float, target: float, tolerance: float) -> float:
    """1.0 within `tolerance` (fractional) of target, falling linearly to 0."""
    if target <= 0:
        return 1.0
    relative_error = abs(actual - target) / target
    return max(0.0, 1.0 - max(0.0, relative_error - tolerance))


def deviation_penalty(deviation: float, envelope: float) -> float:
    if envelope <= 0 or deviation <= envelope:
        return 0.0
    return min(MAX_DEVIATION_PENALTY, (deviation - envelope) / envelope * MAX_DEVIATION_PENALTY)


class FormAnalyzer:
    """Form scoring for one exercise profile."""

    def __init__(self, profile: ExerciseProfile):
        self.profile = profile
        self._rep_number = 1
        self._reset_rep()

    def _reset_rep(self):
        self._frame_scores: List[float] = []
        self._issues: List[FormIssue] = []
        self._reported: Set[str] = set()
        self._path_start_x: Optional[float] = None
        self._max_drift: float = 0.0
        self._path_samples = 0

    def score_frame(self, frame: PoseFrame) -> float:
        """Ideal-angle score of a single frame, 0-100."""
        penalty = 0.0
        for check in self.profile.angle_checks:
            reading = check.angle.measure(frame)
            if isinstance(reading, Present):
                penalty += angle_penalty(reading.value, check.ideal_min, check.ideal_max, check.weight)
        return max(0.0, 100.0 - penalty)

    def detect_issues(self, frame: PoseFrame) -> List[Tuple[str, IssueSeverity, Joint, str]]:
        found = []
        for check in self.profile.issue_checks:
            if check.detect(frame):
                found.append((check.name, check.severity, check.joint, check.message))
        return found

    def process_frame(self, frame: PoseFrame, update: PhaseUpdate) -> FrameAssessment:
        """
        Assess one frame given this frame's phase update.

        Issues are deduplicated per rep: each issue is reported on the first
        frame it appears in.
        """
        if update.changed and update.phase is RepPhase.DESCENDING and update.previous is RepPhase.TOP_HOLD:
            self._reset_rep()
        elif update.changed and update.phase is RepPhase.IDLE:
            self._reset_rep()

        if update.phase is RepPhase.IDLE:
            return FrameAssessment(frame.timestamp, self.score_frame(frame))

        score = self.score_frame(frame)
        new_issues = []
        for name, severity, joint, message in self.detect_issues(frame):
            score -= severity.penalty
            if name in self._reported:
                continue
            issue = FormIssue(name, severity, joint, message, frame.timestamp, self._rep_number)
            self._reported.add(name)
            new_issues.append(issue)
            if issue.is_major:
                logger.warning(f"Major form issue at {frame.timestamp:.2f}s: {name}")

        score = max(0.0, score)
        tracking_rep = update.phase in IN_REP_PHASES or update.completed is not None
        if tracking_rep:
            self._frame_scores.append(score)
            self._issues.extend(new_issues)
            self._track_bar_path(frame)

        return FrameAssessment(frame.timestamp, score, tuple(new_issues))

    def _track_bar_path(self, frame: PoseFrame):
        joint = self.profile.bar_path_joint
        if joint is None:
            return
        reading = frame.get(joint)
        if not isinstance(reading, Present):
            return
        if self._path_start_x is None:
            self._path_start_x = reading.x
        self._max_drift = max(self._max_drift, abs(reading.x - self._path_start_x))
        self._path_samples += 1

    def complete_rep(self, cycle: RepCycle) -> RepForm:
        profile = self.profile

        rom = cycle.rom_degrees
        attainment = min(1.0, rom / profile.angle_range) if profile.angle_range else 1.0

        tempo = profile.tempo
        adherence = (
            tempo_adherence(cycle.eccentric_duration, tempo.eccentric_seconds, tempo.tolerance)
            + tempo_adherence(cycle.concentric_duration, tempo.concentric_seconds, tempo.tolerance)
        ) / 2.0

        quality = float(np.mean(self._frame_scores)) / 100.0 if self._frame_scores else 1.0

        drift: Optional[float] = None
        penalty = 0.0
        if profile.bar_path_joint is not None and self._path_samples:
            drift = self._max_drift
            penalty = deviation_penalty(drift, profile.bar_path_envelope)

        raw = ROM_WEIGHT * attainment + TEMPO_WEIGHT * adherence + FRAME_QUALITY_WEIGHT * quality - penalty
        result = RepForm(
            form_score=round(min(100.0, max(0.0, raw)), 1),
            rom_degrees=rom,
            rom_attainment=attainment,
            tempo_adherence=adherence,
            frame_quality=quality,
            bar_path_deviation=drift,
            deviation_penalty=penalty,
            issues=tuple(self._issues),
        )
        logger.debug(f"Rep #{cycle.rep_number} form: {result.form_score} "
                     f"(rom={attainment:.2f}, tempo={adherence:.2f}, quality={quality:.2f})")

        self._rep_number = cycle.rep_number + 1
        self._reset_rep()
        return result

    def discard_rep(self):
        self._reset_rep()

    def reset(self):
        self._rep_number = 1
        self._reset_rep()

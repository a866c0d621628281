"""
Exercise form profiles.

Each profile defines the tracked joint angle and its top/bottom targets,
ideal angle ranges, discrete form-issue checks, bar-path envelope, tempo
targets and the resistance profile class of the equipment.

Profiles live in an ExerciseProfileStore that is handed to the session
pipeline, so tests and callers can register their own.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from liftcore.cv import geometry
from liftcore.cv.pose import Joint, PoseFrame, Present
from liftcore.scoring.recovery import Muscle


class IssueSeverity(Enum):
    """Severity of a detected form issue."""
    MINOR = "minor"
    MAJOR = "major"

    @property
    def penalty(self) -> float:
        return 5.0 if self is IssueSeverity.MINOR else 25.0


class ResistanceProfile(Enum):
    """Resistance curve class of the equipment."""
    LINEAR = "linear"
    ASCENDING = "ascending"    # Heavier toward lockout (cam machines, bands)
    DESCENDING = "descending"  # Lighter toward lockout

    @property
    def load_correction(self) -> float:
        return {
            ResistanceProfile.LINEAR: 1.0,
            ResistanceProfile.ASCENDING: 0.90,
            ResistanceProfile.DESCENDING: 1.10,
        }[self]


@dataclass(frozen=True)
class AngleSpec:
    """Three joints defining an angle at `vertex`."""
    vertex: Joint
    start: Joint
    end: Joint

    def measure(self, frame: PoseFrame):
        return geometry.joint_angle(frame, self.vertex, self.start, self.end)


@dataclass(frozen=True)
class AngleCheck:
    name: str
    angle: AngleSpec
    ideal_min: float
    ideal_max: float
    weight: float  # Contribution to the per-frame score (0-1)


@dataclass(frozen=True)
class IssueCheck:
    name: str
    severity: IssueSeverity
    joint: Joint
    message: str
    detect: Callable[[PoseFrame], bool]  # True if the issue is present


@dataclass(frozen=True)
class TempoTarget:
    """Target phase durations in seconds."""
    eccentric_seconds: float
    concentric_seconds: float
    tolerance: float = 0.5  # Fractional deviation allowed before penalty


@dataclass(frozen=True)
class ExerciseProfile:
    name: str
    tracking_angle: AngleSpec
    top_angle: float
    bottom_angle: float
    velocity_joint: Joint
    tempo: TempoTarget
    angle_checks: Tuple[AngleCheck, ...] = ()
    issue_checks: Tuple[IssueCheck, ...] = ()
    bar_path_joint: Optional[Joint] = None
    bar_path_envelope: float = 0.03  # Max lateral drift in pose units
    resistance_profile: ResistanceProfile = ResistanceProfile.LINEAR
    starting_resistance_kg: float = 0.0
    primary_muscle: Optional[Muscle] = None
    secondary_muscles: Tuple[Muscle, ...] = ()

    @property
    def angle_range(self) -> float:
        return abs(self.top_angle - self.bottom_angle)

    def depth(self, angle: float) -> float:
        """Normalized depth of an angle: 0 at the top target, 1 at the bottom."""
        if self.angle_range == 0:
            return 0.0
        return (self.top_angle - angle) / (self.top_angle - self.bottom_angle)

    def for_machine(
        self,
        resistance_profile: ResistanceProfile,
        starting_resistance_kg: float = 0.0
    ) -> "ExerciseProfile":
        return replace(
            self,
            resistance_profile=resistance_profile,
            starting_resistance_kg=starting_resistance_kg,
        )


class ExerciseProfileStore:
    """Registry of exercise profiles keyed by exercise name."""

    def __init__(self, profiles: Optional[List[ExerciseProfile]] = None):
        self._profiles: Dict[str, ExerciseProfile] = {}
        for profile in profiles or []:
            self.register(profile)

    def register(self, profile: ExerciseProfile):
        self._profiles[profile.name] = profile

    def get(self, name: str) -> ExerciseProfile:
        try:
            return self._profiles[name]
        except KeyError:
            raise KeyError(f"Unknown exercise profile: {name}") from None

    def __contains__(self, name: str) -> bool:
        return name in self._profiles

    def __iter__(self) -> Iterator[ExerciseProfile]:
        return iter(self._profiles.values())

    def names(self) -> List[str]:
        return sorted(self._profiles)


# ---------------------------------------------------------------------------
# Issue detectors. Pose space is y-up; an Absent joint never raises an issue.
# ---------------------------------------------------------------------------

def _points(frame: PoseFrame, *joints: Joint):
    readings = [frame.get(j) for j in joints]
    if all(isinstance(r, Present) for r in readings):
        return readings
    return None


def _knee_cave(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.LEFT_KNEE, Joint.RIGHT_KNEE, Joint.LEFT_HIP, Joint.RIGHT_HIP)
    if pts is None:
        return False
    l_knee, r_knee, l_hip, r_hip = pts
    return abs(l_knee.x - r_knee.x) < abs(l_hip.x - r_hip.x) * 0.75


def _forward_lean(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.NECK, Joint.ROOT)
    return pts is not None and abs(pts[0].x - pts[1].x) > 0.08


def _elbow_flare(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.LEFT_SHOULDER, Joint.RIGHT_SHOULDER, Joint.LEFT_ELBOW, Joint.RIGHT_ELBOW)
    if pts is None:
        return False
    l_sh, r_sh, l_el, r_el = pts
    return abs(l_el.x - r_el.x) > abs(l_sh.x - r_sh.x) * 1.4


def _uneven_arms(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.LEFT_WRIST, Joint.RIGHT_WRIST)
    return pts is not None and abs(pts[0].y - pts[1].y) > 0.04


def _back_lean(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.NECK, Joint.ROOT, Joint.LEFT_HIP)
    if pts is None:
        return False
    neck, root, hip = pts
    return root.x - hip.x > 0.05 or neck.x - root.x > 0.06


def _hip_angle_above(limit: float) -> Callable[[PoseFrame], bool]:
    def detect(frame: PoseFrame) -> bool:
        angle = geometry.joint_angle(frame, Joint.LEFT_HIP, Joint.LEFT_SHOULDER, Joint.LEFT_KNEE)
        return isinstance(angle, Present) and angle.value > limit
    return detect


def _knee_angle_below(limit: float) -> Callable[[PoseFrame], bool]:
    def detect(frame: PoseFrame) -> bool:
        angle = geometry.joint_angle(frame, Joint.LEFT_KNEE, Joint.LEFT_HIP, Joint.LEFT_ANKLE)
        return isinstance(angle, Present) and angle.value < limit
    return detect


def _rounded_back_hinge(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.NECK, Joint.LEFT_SHOULDER)
    return pts is not None and pts[0].y - pts[1].y > 0.06


def _rounded_back_pull(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.NECK, Joint.ROOT)
    return pts is not None and abs(pts[0].x - pts[1].x) > 0.10


def _kipping(frame: PoseFrame) -> bool:
    pts = _points(frame, Joint.LEFT_HIP, Joint.LEFT_SHOULDER)
    return pts is not None and pts[0].x - pts[1].x > 0.06


def _hyperextension(frame: PoseFrame) -> bool:
    # Interior angles cap at 180; a hip angle that close to straight at lockout is overarching
    return _hip_angle_above(178.0)(frame)


L_KNEE = AngleSpec(Joint.LEFT_KNEE, Joint.LEFT_HIP, Joint.LEFT_ANKLE)
R_KNEE = AngleSpec(Joint.RIGHT_KNEE, Joint.RIGHT_HIP, Joint.RIGHT_ANKLE)
L_ELBOW = AngleSpec(Joint.LEFT_ELBOW, Joint.LEFT_SHOULDER, Joint.LEFT_WRIST)
R_ELBOW = AngleSpec(Joint.RIGHT_ELBOW, Joint.RIGHT_SHOULDER, Joint.RIGHT_WRIST)
L_HIP_HINGE = AngleSpec(Joint.LEFT_HIP, Joint.LEFT_SHOULDER, Joint.LEFT_KNEE)
L_SHOULDER = AngleSpec(Joint.LEFT_SHOULDER, Joint.LEFT_HIP, Joint.LEFT_ELBOW)
R_SHOULDER = AngleSpec(Joint.RIGHT_SHOULDER, Joint.RIGHT_HIP, Joint.RIGHT_ELBOW)
TORSO_TO_KNEE = AngleSpec(Joint.ROOT, Joint.NECK, Joint.LEFT_KNEE)
TORSO_LINE = AngleSpec(Joint.ROOT, Joint.NECK, Joint.LEFT_HIP)
NECK_LINE = AngleSpec(Joint.NECK, Joint.ROOT, Joint.NOSE)


def default_profiles() -> List[ExerciseProfile]:
    """Built-in profiles for the supported barbell and bodyweight lifts."""
    return [
        ExerciseProfile(
            name="Barbell Back Squat",
            tracking_angle=L_KNEE,
            top_angle=170.0,
            bottom_angle=70.0,
            velocity_joint=Joint.ROOT,
            tempo=TempoTarget(eccentric_seconds=3.5, concentric_seconds=1.5),
            angle_checks=(
                AngleCheck("Knee Flexion (L)", L_KNEE, 60, 175, 0.3),
                AngleCheck("Knee Flexion (R)", R_KNEE, 60, 175, 0.3),
                AngleCheck("Hip Hinge", L_HIP_HINGE, 50, 170, 0.2),
                AngleCheck("Torso Angle", TORSO_TO_KNEE, 40, 90, 0.2),
            ),
            issue_checks=(
                IssueCheck("Knee Cave", IssueSeverity.MAJOR, Joint.LEFT_KNEE,
                           "Keep knees tracking over toes", _knee_cave),
                IssueCheck("Forward Lean", IssueSeverity.MINOR, Joint.NECK,
                           "Keep chest up, avoid excessive forward lean", _forward_lean),
            ),
            bar_path_joint=Joint.ROOT,
            primary_muscle=Muscle.QUADRICEPS,
            secondary_muscles=(Muscle.GLUTE_MAX, Muscle.HAMSTRINGS, Muscle.ERECTOR_SPINAE),
        ),
        ExerciseProfile(
            name="Barbell Bench Press",
            tracking_angle=L_ELBOW,
            top_angle=170.0,
            bottom_angle=75.0,
            velocity_joint=Joint.LEFT_WRIST,
            tempo=TempoTarget(eccentric_seconds=3.0, concentric_seconds=1.0),
            angle_checks=(
                AngleCheck("Elbow Flexion (L)", L_ELBOW, 70, 175, 0.3),
                AngleCheck("Elbow Flexion (R)", R_ELBOW, 70, 175, 0.3),
                AngleCheck("Shoulder Angle (L)", L_SHOULDER, 40, 85, 0.2),
                AngleCheck("Shoulder Angle (R)", R_SHOULDER, 40, 85, 0.2),
            ),
            issue_checks=(
                IssueCheck("Elbow Flare", IssueSeverity.MINOR, Joint.LEFT_ELBOW,
                           "Tuck elbows to ~45 degrees from torso", _elbow_flare),
                IssueCheck("Uneven Arms", IssueSeverity.MINOR, Joint.LEFT_WRIST,
                           "Press evenly with both arms", _uneven_arms),
            ),
            bar_path_joint=Joint.LEFT_WRIST,
            primary_muscle=Muscle.CHEST_UPPER,
            secondary_muscles=(Muscle.ANTERIOR_DELTOID, Muscle.TRICEPS_LONG, Muscle.TRICEPS_LATERAL),
        ),
        ExerciseProfile(
            name="Overhead Press",
            tracking_angle=L_ELBOW,
            top_angle=170.0,
            bottom_angle=80.0,
            velocity_joint=Joint.LEFT_WRIST,
            tempo=TempoTarget(eccentric_seconds=3.0, concentric_seconds=1.0),
            angle_checks=(
                AngleCheck("Elbow Flexion (L)", L_ELBOW, 75, 175, 0.3),
                AngleCheck("Elbow Flexion (R)", R_ELBOW, 75, 175, 0.3),
                AngleCheck("Torso Lean", TORSO_LINE, 160, 180, 0.4),
            ),
            issue_checks=(
                IssueCheck("Excessive Back Lean", IssueSeverity.MAJOR, Joint.ROOT,
                           "Avoid leaning back, brace core", _back_lean),
            ),
            bar_path_joint=Joint.LEFT_WRIST,
            primary_muscle=Muscle.ANTERIOR_DELTOID,
            secondary_muscles=(Muscle.LATERAL_DELTOID, Muscle.TRICEPS_LONG, Muscle.TRAPS_UPPER),
        ),
        ExerciseProfile(
            name="Barbell Row",
            tracking_angle=L_ELBOW,
            top_angle=50.0,
            bottom_angle=160.0,
            velocity_joint=Joint.LEFT_WRIST,
            tempo=TempoTarget(eccentric_seconds=3.0, concentric_seconds=1.0),
            angle_checks=(
                AngleCheck("Elbow Flexion (L)", L_ELBOW, 40, 170, 0.3),
                AngleCheck("Hip Hinge", L_HIP_HINGE, 60, 120, 0.4),
                AngleCheck("Elbow Flexion (R)", R_ELBOW, 40, 170, 0.3),
            ),
            issue_checks=(
                IssueCheck("Torso Rising", IssueSeverity.MINOR, Joint.NECK,
                           "Maintain hip hinge angle throughout the row", _hip_angle_above(140.0)),
            ),
            bar_path_joint=Joint.LEFT_WRIST,
            primary_muscle=Muscle.LATS_UPPER,
            secondary_muscles=(Muscle.TRAPS_MID, Muscle.RHOMBOIDS, Muscle.BICEPS_LONG, Muscle.REAR_DELTS),
        ),
        ExerciseProfile(
            name="Romanian Deadlift",
            tracking_angle=L_HIP_HINGE,
            top_angle=170.0,
            bottom_angle=70.0,
            velocity_joint=Joint.LEFT_WRIST,
            tempo=TempoTarget(eccentric_seconds=4.0, concentric_seconds=1.5),
            angle_checks=(
                AngleCheck("Hip Hinge", L_HIP_HINGE, 60, 175, 0.4),
                AngleCheck("Knee Flexion", L_KNEE, 150, 180, 0.3),
                AngleCheck("Spine Neutral", NECK_LINE, 140, 180, 0.3),
            ),
            issue_checks=(
                IssueCheck("Back Rounding", IssueSeverity.MAJOR, Joint.ROOT,
                           "Maintain neutral spine, chest up", _rounded_back_hinge),
                IssueCheck("Excessive Knee Bend", IssueSeverity.MINOR, Joint.LEFT_KNEE,
                           "Keep knees slightly bent, not squatting", _knee_angle_below(140.0)),
            ),
            bar_path_joint=Joint.LEFT_WRIST,
            primary_muscle=Muscle.HAMSTRINGS,
            secondary_muscles=(Muscle.GLUTE_MAX, Muscle.ERECTOR_SPINAE),
        ),
        ExerciseProfile(
            name="Conventional Deadlift",
            tracking_angle=L_HIP_HINGE,
            top_angle=170.0,
            bottom_angle=60.0,
            velocity_joint=Joint.LEFT_WRIST,
            tempo=TempoTarget(eccentric_seconds=2.5, concentric_seconds=1.0),
            angle_checks=(
                AngleCheck("Hip Hinge", L_HIP_HINGE, 55, 175, 0.3),
                AngleCheck("Knee Flexion", L_KNEE, 60, 175, 0.3),
                AngleCheck("Spine", TORSO_LINE, 140, 180, 0.4),
            ),
            issue_checks=(
                IssueCheck("Back Rounding", IssueSeverity.MAJOR, Joint.ROOT,
                           "Maintain neutral spine off the floor", _rounded_back_pull),
            ),
            bar_path_joint=Joint.LEFT_WRIST,
            primary_muscle=Muscle.ERECTOR_SPINAE,
            secondary_muscles=(Muscle.GLUTE_MAX, Muscle.HAMSTRINGS, Muscle.QUADRICEPS, Muscle.FOREARMS),
        ),
        ExerciseProfile(
            name="Pull-Up",
            tracking_angle=L_ELBOW,
            top_angle=50.0,
            bottom_angle=170.0,
            velocity_joint=Joint.NECK,
            tempo=TempoTarget(eccentric_seconds=3.5, concentric_seconds=1.5),
            angle_checks=(
                AngleCheck("Elbow Flexion (L)", L_ELBOW, 40, 175, 0.4),
                AngleCheck("Elbow Flexion (R)", R_ELBOW, 40, 175, 0.4),
            ),
            issue_checks=(
                IssueCheck("Kipping", IssueSeverity.MINOR, Joint.LEFT_HIP,
                           "Avoid swinging, use strict form", _kipping),
            ),
            primary_muscle=Muscle.LATS_UPPER,
            secondary_muscles=(Muscle.BICEPS_LONG, Muscle.BICEPS_SHORT, Muscle.FOREARMS, Muscle.REAR_DELTS),
        ),
        ExerciseProfile(
            name="Lat Pulldown",
            tracking_angle=L_ELBOW,
            top_angle=170.0,
            bottom_angle=50.0,
            velocity_joint=Joint.LEFT_WRIST,
            tempo=TempoTarget(eccentric_seconds=3.5, concentric_seconds=1.5),
            angle_checks=(
                AngleCheck("Elbow Flexion (L)", L_ELBOW, 40, 175, 0.4),
                AngleCheck("Elbow Flexion (R)", R_ELBOW, 40, 175, 0.4),
                AngleCheck("Torso Lean", TORSO_LINE, 155, 180, 0.2),
            ),
            primary_muscle=Muscle.LATS_UPPER,
            secondary_muscles=(Muscle.BICEPS_LONG, Muscle.FOREARMS, Muscle.REAR_DELTS),
        ),
        ExerciseProfile(
            name="Hip Thrust",
            tracking_angle=L_HIP_HINGE,
            top_angle=170.0,
            bottom_angle=80.0,
            velocity_joint=Joint.LEFT_HIP,
            tempo=TempoTarget(eccentric_seconds=3.0, concentric_seconds=1.0),
            angle_checks=(
                AngleCheck("Hip Extension", L_HIP_HINGE, 75, 180, 0.4),
                AngleCheck("Knee Angle", L_KNEE, 80, 100, 0.3),
            ),
            issue_checks=(
                IssueCheck("Hyperextension", IssueSeverity.MINOR, Joint.ROOT,
                           "Avoid overarching lower back at lockout", _hyperextension),
            ),
            primary_muscle=Muscle.GLUTE_MAX,
            secondary_muscles=(Muscle.HAMSTRINGS,),
        ),
    ]


def default_profile_store() -> ExerciseProfileStore:
    return ExerciseProfileStore(default_profiles())

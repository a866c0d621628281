"""
Recovery heatmap engine.

Per-muscle exponential recovery model driven by logged training volume,
plus a composite readiness score and auto-deload detection.

MODEL:
- Each muscle has a recovery horizon of 48h x size rate (large muscles
  recover slower). The score relaxes toward 100 with time constant
  tau = recovery_hours / 3, so after one full horizon an untouched muscle
  is within 5% of fully recovered.
- Weekly volume stretches tau by 15% per set beyond the first, so a
  heavily trained muscle recovers more slowly.
- A volume event first brings the score current, then subtracts a cost
  per effective set and restarts the clock.

All functions are pure: states are frozen and every update returns a new
state, so session-end outputs can be re-derived from stored sets.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


BASE_RECOVERY_HOURS = 48.0
SET_COST = 12.0  # Score points removed per effective set
HIGH_RPE = 9.0
HIGH_RPE_MULTIPLIER = 1.3
VOLUME_TAU_SCALE = 0.15  # Fractional tau increase per weekly set beyond the first


class Muscle(str, Enum):
    """Trackable muscle groups."""
    CHEST_UPPER = "chest_upper"
    CHEST_LOWER = "chest_lower"
    ANTERIOR_DELTOID = "anterior_deltoid"
    LATERAL_DELTOID = "lateral_deltoid"
    POSTERIOR_DELTOID = "posterior_deltoid"
    TRICEPS_LONG = "triceps_long"
    TRICEPS_LATERAL = "triceps_lateral"
    TRICEPS_MEDIAL = "triceps_medial"
    LATS_UPPER = "lats_upper"
    LATS_LOWER = "lats_lower"
    TRAPS_UPPER = "traps_upper"
    TRAPS_MID = "traps_mid"
    TRAPS_LOWER = "traps_lower"
    RHOMBOIDS = "rhomboids"
    REAR_DELTS = "rear_delts"
    BICEPS_LONG = "biceps_long"
    BICEPS_SHORT = "biceps_short"
    BRACHIALIS = "brachialis"
    FOREARMS = "forearms"
    QUADRICEPS = "quadriceps"
    HAMSTRINGS = "hamstrings"
    GLUTE_MAX = "glute_max"
    GLUTE_MED = "glute_med"
    ADDUCTORS = "adductors"
    CALVES = "calves"
    TIBIALIS = "tibialis"
    RECTUS_ABDOMINIS = "rectus_abdominis"
    OBLIQUES = "obliques"
    TRANSVERSE_ABDOMINIS = "transverse_abdominis"
    ERECTOR_SPINAE = "erector_spinae"

    @property
    def recovery_rate(self) -> float:
        """Size multiplier on the base recovery time (>1 recovers slower)."""
        return RECOVERY_RATES.get(self, 1.0)

    @property
    def recovery_hours(self) -> float:
        return BASE_RECOVERY_HOURS * self.recovery_rate

    @property
    def tau_hours(self) -> float:
        return self.recovery_hours / 3.0


RECOVERY_RATES: Dict[Muscle, float] = {
    # Large muscles
    Muscle.QUADRICEPS: 1.3,
    Muscle.HAMSTRINGS: 1.2,
    Muscle.GLUTE_MAX: 1.3,
    Muscle.LATS_UPPER: 1.2,
    Muscle.LATS_LOWER: 1.2,
    Muscle.ERECTOR_SPINAE: 1.4,
    # Medium
    Muscle.LATERAL_DELTOID: 0.9,
    Muscle.REAR_DELTS: 0.9,
    Muscle.POSTERIOR_DELTOID: 0.9,
    Muscle.ADDUCTORS: 1.1,
    Muscle.RECTUS_ABDOMINIS: 0.8,
    Muscle.OBLIQUES: 0.8,
    # Small muscles
    Muscle.BICEPS_LONG: 0.7,
    Muscle.BICEPS_SHORT: 0.7,
    Muscle.BRACHIALIS: 0.7,
    Muscle.TRICEPS_LONG: 0.8,
    Muscle.TRICEPS_LATERAL: 0.8,
    Muscle.TRICEPS_MEDIAL: 0.8,
    Muscle.FOREARMS: 0.7,
    Muscle.CALVES: 0.8,
    Muscle.TIBIALIS: 0.8,
}

# Coarse exercise-library muscle names -> tracked muscles
MUSCLE_ALIASES: Dict[str, Tuple[Muscle, ...]] = {
    "quadriceps": (Muscle.QUADRICEPS,),
    "hamstrings": (Muscle.HAMSTRINGS,),
    "glutes": (Muscle.GLUTE_MAX, Muscle.GLUTE_MED),
    "chest": (Muscle.CHEST_UPPER, Muscle.CHEST_LOWER),
    "back": (Muscle.LATS_UPPER, Muscle.LATS_LOWER),
    "lats": (Muscle.LATS_UPPER, Muscle.LATS_LOWER),
    "shoulders": (Muscle.ANTERIOR_DELTOID, Muscle.LATERAL_DELTOID),
    "front delts": (Muscle.ANTERIOR_DELTOID,),
    "side delts": (Muscle.LATERAL_DELTOID,),
    "rear delts": (Muscle.REAR_DELTS,),
    "traps": (Muscle.TRAPS_UPPER, Muscle.TRAPS_MID),
    "biceps": (Muscle.BICEPS_LONG, Muscle.BICEPS_SHORT),
    "triceps": (Muscle.TRICEPS_LONG, Muscle.TRICEPS_LATERAL),
    "forearms": (Muscle.FOREARMS,),
    "calves": (Muscle.CALVES,),
    "core": (Muscle.RECTUS_ABDOMINIS, Muscle.OBLIQUES),
    "abs": (Muscle.RECTUS_ABDOMINIS,),
    "lower back": (Muscle.ERECTOR_SPINAE,),
    "erector spinae": (Muscle.ERECTOR_SPINAE,),
    "adductors": (Muscle.ADDUCTORS,),
}


def resolve_muscles(name: str) -> Tuple[Muscle, ...]:
    """Map a muscle name (alias or raw value) to tracked muscles."""
    key = name.strip().lower()
    if key in MUSCLE_ALIASES:
        return MUSCLE_ALIASES[key]
    try:
        return (Muscle(key.replace(" ", "_")),)
    except ValueError:
        raise KeyError(f"Unknown muscle: {name}") from None


class RecoveryZone(Enum):
    FULLY_RECOVERED = "fully_recovered"
    RECOVERED = "recovered"
    MODERATE = "moderate"
    FATIGUED = "fatigued"
    OVERREACHED = "overreached"

    @classmethod
    def for_score(cls, score: float) -> "RecoveryZone":
        if score >= 90:
            return cls.FULLY_RECOVERED
        if score >= 70:
            return cls.RECOVERED
        if score >= 50:
            return cls.MODERATE
        if score >= 30:
            return cls.FATIGUED
        return cls.OVERREACHED


@dataclass(frozen=True)
class MuscleRecoveryState:
    """Recovery score of one muscle as of `last_trained` (or fully rested)."""
    muscle: Muscle
    score: float = 100.0
    last_trained: Optional[datetime] = None
    weekly_volume_sets: int = 0

    @property
    def tau_hours(self) -> float:
        """Muscle time constant stretched by this week's volume."""
        return self.muscle.tau_hours * (1.0 + VOLUME_TAU_SCALE * max(0, self.weekly_volume_sets - 1))

    def current_score(self, now: datetime) -> float:
        """Score decayed toward 100 at time `now`."""
        if self.last_trained is None:
            return self.score
        hours = max(0.0, (now - self.last_trained).total_seconds() / 3600.0)
        deficit = 100.0 - self.score
        return min(100.0, 100.0 - deficit * math.exp(-hours / self.tau_hours))

    def zone(self, now: datetime) -> RecoveryZone:
        return RecoveryZone.for_score(self.current_score(now))

    def hours_to_recovered(self, now: datetime, target: float = 95.0) -> float:
        """Hours from `now` until the score reaches `target`."""
        current = self.current_score(now)
        if current >= target:
            return 0.0
        return self.tau_hours * math.log((100.0 - current) / (100.0 - target))


@dataclass(frozen=True)
class VolumeEvent:
    """Training volume logged for one exercise at session end."""
    timestamp: datetime
    primary: Tuple[Muscle, ...]
    secondary: Tuple[Muscle, ...] = ()
    sets: int = 1
    rpe: float = 7.0


def set_cost(sets: int, rpe: float) -> float:
    cost = SET_COST * sets
    if rpe >= HIGH_RPE:
        cost *= HIGH_RPE_MULTIPLIER
    return cost


def log_volume(
    state: MuscleRecoveryState,
    timestamp: datetime,
    sets: int,
    rpe: float = 7.0
) -> MuscleRecoveryState:
    """Apply `sets` effective sets to one muscle and restart its clock."""
    if sets <= 0:
        return state
    current = state.current_score(timestamp)
    return replace(
        state,
        score=max(0.0, current - set_cost(sets, rpe)),
        last_trained=timestamp,
        weekly_volume_sets=state.weekly_volume_sets + sets,
    )


def apply_volume(
    states: Dict[Muscle, MuscleRecoveryState],
    event: VolumeEvent
) -> Dict[Muscle, MuscleRecoveryState]:
    """
    Apply a volume event to a heatmap.

    Primary muscles get full credit, secondary muscles half (at least one
    set). A muscle listed as both counts as primary.
    """
    updated = dict(states)
    affected: List[Tuple[Muscle, int]] = [(m, event.sets) for m in event.primary]
    seen = set(event.primary)
    for muscle in event.secondary:
        if muscle not in seen:
            affected.append((muscle, max(1, event.sets // 2)))
            seen.add(muscle)

    for muscle, sets in affected:
        state = updated.get(muscle) or MuscleRecoveryState(muscle=muscle)
        updated[muscle] = log_volume(state, event.timestamp, sets, event.rpe)
    return updated


def initial_heatmap(muscles: Optional[Iterable[Muscle]] = None) -> Dict[Muscle, MuscleRecoveryState]:
    return {m: MuscleRecoveryState(muscle=m) for m in (muscles or Muscle)}


def heatmap_scores(states: Dict[Muscle, MuscleRecoveryState], now: datetime) -> Dict[Muscle, float]:
    return {m: s.current_score(now) for m, s in states.items()}


def reset_weekly_volume(states: Dict[Muscle, MuscleRecoveryState]) -> Dict[Muscle, MuscleRecoveryState]:
    return {m: replace(s, weekly_volume_sets=0) for m, s in states.items()}


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------

HRV_WEIGHT = 0.35
SLEEP_WEIGHT = 0.30
RESTING_HR_WEIGHT = 0.15
MUSCLE_WEIGHT = 0.20


class ReadinessLevel(Enum):
    OPTIMAL = "optimal"
    GOOD = "good"
    MODERATE = "moderate"
    LOW = "low"
    CRITICAL = "critical"

    @classmethod
    def for_score(cls, score: float) -> "ReadinessLevel":
        if score >= 85:
            return cls.OPTIMAL
        if score >= 70:
            return cls.GOOD
        if score >= 50:
            return cls.MODERATE
        if score >= 30:
            return cls.LOW
        return cls.CRITICAL


@dataclass(frozen=True)
class TrainingAdjustment:
    volume_modifier: float
    intensity_modifier: float
    recommendation: str
    should_deload: bool = False


_ADJUSTMENTS = {
    ReadinessLevel.OPTIMAL: TrainingAdjustment(
        1.1, 1.05, "Readiness is high. Push for PRs and add volume."),
    ReadinessLevel.GOOD: TrainingAdjustment(
        1.0, 1.0, "Good readiness. Follow your normal program."),
    ReadinessLevel.MODERATE: TrainingAdjustment(
        0.85, 0.90, "Moderate fatigue detected. Reduce volume by 15% and intensity by 10%."),
    ReadinessLevel.LOW: TrainingAdjustment(
        0.70, 0.80, "Low readiness. Consider a light session focused on technique and mobility."),
    ReadinessLevel.CRITICAL: TrainingAdjustment(
        0.50, 0.70, "Critical fatigue. Rest day strongly recommended.", should_deload=True),
}


@dataclass(frozen=True)
class ReadinessAssessment:
    overall: float
    hrv_score: float
    sleep_score: float
    resting_hr_score: float
    muscle_score: float

    @property
    def level(self) -> ReadinessLevel:
        return ReadinessLevel.for_score(self.overall)

    @property
    def adjustment(self) -> TrainingAdjustment:
        return _ADJUSTMENTS[self.level]


def readiness(
    hrv_score: float,
    sleep_score: float,
    resting_hr_score: float,
    muscle_average: float
) -> ReadinessAssessment:
    """Weighted blend of externally computed component scores (each 0-100)."""
    overall = (
        hrv_score * HRV_WEIGHT
        + sleep_score * SLEEP_WEIGHT
        + resting_hr_score * RESTING_HR_WEIGHT
        + muscle_average * MUSCLE_WEIGHT
    )
    return ReadinessAssessment(
        overall=min(100.0, max(0.0, overall)),
        hrv_score=hrv_score,
        sleep_score=sleep_score,
        resting_hr_score=resting_hr_score,
        muscle_score=muscle_average,
    )


def muscle_average(states: Dict[Muscle, MuscleRecoveryState], now: datetime) -> float:
    if not states:
        return 100.0
    scores = heatmap_scores(states, now)
    return sum(scores.values()) / len(scores)


# ---------------------------------------------------------------------------
# Auto-deload
# ---------------------------------------------------------------------------

HRV_DROP_THRESHOLD = 0.15
VELOCITY_DECLINE_SESSIONS = 2
SLEEP_DEFICIT_HOURS = 6.0
SLEEP_DEFICIT_NIGHTS = 3
HRV_BASELINE_DAYS = 14


class DeloadReason(Enum):
    HRV_DROP = "HRV dropped >15% below baseline"
    VELOCITY_DECLINE = "Bar velocity declining for 2+ sessions"
    POOR_SLEEP = "Chronic sleep deficit detected"
    COMBINED_FATIGUE = "Multiple fatigue markers elevated"


@dataclass(frozen=True)
class DeloadRecommendation:
    should_deload: bool
    reasons: Tuple[DeloadReason, ...] = ()
    load_reduction: float = 0.0  # Fraction, 0.20 = -20%
    duration_days: int = 0

    @property
    def reason(self) -> Optional[DeloadReason]:
        if not self.reasons:
            return None
        if len(self.reasons) >= 2:
            return DeloadReason.COMBINED_FATIGUE
        return self.reasons[0]

    @property
    def volume_modifier(self) -> float:
        return 1.0 - self.load_reduction


NO_DELOAD = DeloadRecommendation(should_deload=False)


def hrv_baseline(readings: Sequence[float], days: int = HRV_BASELINE_DAYS) -> float:
    """Mean of the last `days` daily HRV readings (0 when there are none)."""
    recent = [r for r in readings[-days:] if r > 0]
    if not recent:
        return 0.0
    return sum(recent) / len(recent)


def _velocity_declining(velocities: Sequence[float]) -> bool:
    needed = VELOCITY_DECLINE_SESSIONS + 1
    if len(velocities) < needed:
        return False
    recent = list(velocities[-needed:])
    return all(b < a for a, b in zip(recent, recent[1:]))


def evaluate_deload(
    current_hrv: Optional[float],
    baseline_hrv: float,
    session_velocities: Sequence[float] = (),
    sleep_hours: Sequence[float] = ()
) -> DeloadRecommendation:
    """Any one trigger is sufficient; two or more give a deeper, longer deload."""
    reasons: List[DeloadReason] = []

    if current_hrv and baseline_hrv > 0:
        if (baseline_hrv - current_hrv) / baseline_hrv > HRV_DROP_THRESHOLD:
            reasons.append(DeloadReason.HRV_DROP)

    if _velocity_declining(session_velocities):
        reasons.append(DeloadReason.VELOCITY_DECLINE)

    if len(sleep_hours) >= SLEEP_DEFICIT_NIGHTS:
        if all(h < SLEEP_DEFICIT_HOURS for h in sleep_hours[-SLEEP_DEFICIT_NIGHTS:]):
            reasons.append(DeloadReason.POOR_SLEEP)

    if not reasons:
        return NO_DELOAD
    if len(reasons) >= 2:
        return DeloadRecommendation(True, tuple(reasons), load_reduction=0.25, duration_days=5)
    return DeloadRecommendation(True, tuple(reasons), load_reduction=0.20, duration_days=3)

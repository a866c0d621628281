"""
RPE / load estimator.

Pure functions mapping the set's velocity loss (percent) and the exercise
to an exertion rating (0-10) and reps in reserve. Linear regression
curves anchored at RPE 6 for a set with no velocity loss; the default
curve passes through 20% loss -> RPE 8.0.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


@dataclass(frozen=True)
class RPECurve:
    intercept: float
    slope: float  # RPE points per percent of velocity loss

    def __call__(self, velocity_loss_percent: float) -> float:
        return self.intercept + self.slope * velocity_loss_percent


DEFAULT_CURVE = RPECurve(intercept=6.0, slope=0.10)

# Squats and deadlifts tolerate more velocity loss; bodyweight pulls less
EXERCISE_CURVES: Dict[str, RPECurve] = {
    "Barbell Back Squat": RPECurve(6.0, 0.09),
    "Conventional Deadlift": RPECurve(6.0, 0.09),
    "Pull-Up": RPECurve(6.0, 0.11),
}


@dataclass(frozen=True)
class RPEEstimate:
    rpe: float
    reps_in_reserve: int


def curve_for(exercise: Optional[str]) -> RPECurve:
    if exercise is None:
        return DEFAULT_CURVE
    return EXERCISE_CURVES.get(exercise, DEFAULT_CURVE)


def estimate_rpe(velocity_loss_percent: float, exercise: Optional[str] = None) -> RPEEstimate:
    """
    Estimate exertion from velocity loss.

    Args:
        velocity_loss_percent: Loss relative to the set's best rep (0-100)
        exercise: Exercise name; unknown names use the default curve

    Returns:
        RPEEstimate with rpe clamped to [0, 10] and rounded to 2 decimals,
        and reps_in_reserve = floor(10 - rpe)
    """
    loss = min(100.0, max(0.0, float(velocity_loss_percent)))
    rpe = round(min(10.0, max(0.0, curve_for(exercise)(loss))), 2)
    return RPEEstimate(rpe=rpe, reps_in_reserve=max(0, math.floor(10.0 - rpe)))


class VelocityZone(Enum):
    """Training zones by mean concentric velocity (m/s)."""
    MAX_STRENGTH = "max_strength"      # < 0.5
    STRENGTH = "strength"              # 0.5 - 0.75
    STRENGTH_SPEED = "strength_speed"  # 0.75 - 1.0
    SPEED_STRENGTH = "speed_strength"  # 1.0 - 1.3
    SPEED = "speed"                    # > 1.3

    @classmethod
    def for_velocity(cls, velocity: float) -> "VelocityZone":
        if velocity < 0.5:
            return cls.MAX_STRENGTH
        if velocity < 0.75:
            return cls.STRENGTH
        if velocity < 1.0:
            return cls.STRENGTH_SPEED
        if velocity < 1.3:
            return cls.SPEED_STRENGTH
        return cls.SPEED


# Mean concentric velocity at 1RM (m/s)
VELOCITY_AT_1RM: Dict[str, float] = {
    "Barbell Back Squat": 0.30,
    "Barbell Bench Press": 0.17,
    "Overhead Press": 0.20,
    "Conventional Deadlift": 0.15,
    "Romanian Deadlift": 0.20,
    "Barbell Row": 0.25,
    "Pull-Up": 0.20,
    "Lat Pulldown": 0.25,
    "Hip Thrust": 0.25,
}

LOAD_VELOCITY_SLOPE: Dict[str, float] = {
    "Barbell Back Squat": 0.55,
    "Barbell Bench Press": 0.65,
    "Overhead Press": 0.60,
    "Conventional Deadlift": 0.50,
}


def estimate_one_rep_max(
    load_kg: float,
    mean_velocity: Optional[float],
    exercise: Optional[str] = None
) -> Optional[float]:
    """Load-velocity 1RM estimate; None without a positive load and velocity."""
    if load_kg <= 0 or not mean_velocity or mean_velocity <= 0:
        return None
    v1rm = VELOCITY_AT_1RM.get(exercise, 0.17) if exercise else 0.17
    slope = LOAD_VELOCITY_SLOPE.get(exercise, 0.60) if exercise else 0.60
    estimated = load_kg / max(0.1, 1.0 - (mean_velocity - v1rm) * slope)
    return round(max(load_kg, estimated), 1)

"""
Velocity engine.

Differentiates the vertical position of the profile's velocity joint
between consecutive frames and aggregates per-rep concentric/eccentric
velocities and set-level fatigue.

UNITS:
- Internally velocities are in pose units per second.
- Absolute values (m/s) are only reported after calibration against the
  user's height; uncalibrated absolute velocities are None.
- Velocity loss is a ratio, so fatigue tracking works either way.

FATIGUE:
- loss = 1 - (current rep mean / best rep mean so far in the set)
- reps without usable concentric samples have no velocity and leave the
  fatigue state untouched
- auto_stop trips once loss exceeds the configured threshold and stays
  tripped until the next set.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from liftcore.config import Settings, get_settings
from liftcore.cv import geometry
from liftcore.cv.exercise_profiles import ExerciseProfile
from liftcore.cv.pose import Joint, PoseFrame, Present
from liftcore.cv.rep_phase import RepPhase
from liftcore.cv.signal_smoother import SignalSmoother

logger = logging.getLogger(__name__)

# Nose-to-ankle distance as a fraction of standing height
NOSE_TO_ANKLE_STATURE_RATIO = 0.89

# Failure is modeled as the rep where velocity falls to this fraction of best
FAILURE_VELOCITY_RATIO = 0.3


@dataclass(frozen=True)
class Calibration:
    """Pose-space to metric scale."""
    meters_per_unit: float
    user_height_cm: float
    reference_segment: float  # Measured reference length in pose units


@dataclass(frozen=True)
class RepVelocity:
    """Velocity metrics for one completed rep."""
    mean_concentric: Optional[float]   # m/s, None when uncalibrated
    peak_concentric: Optional[float]
    mean_eccentric: Optional[float]
    mean_concentric_units: Optional[float]  # Pose units/s, None without usable samples
    samples: int


@dataclass(frozen=True)
class FatigueStatus:
    """Set-level fatigue snapshot."""
    velocity_loss_percent: float = 0.0
    auto_stop: bool = False
    reps_to_failure: Optional[int] = None
    best_rep_velocity: Optional[float] = None  # m/s, None when uncalibrated


class VelocityEngine:
    """
    Per-session velocity tracker for one exercise.

    Call order per frame: `process_frame` (with the phase before this
    frame's update), then `update_phase` with the new phase, then
    `complete_rep` when the phase machine reports a finished rep.
    """

    def __init__(self, profile: ExerciseProfile, settings: Optional[Settings] = None):
        self.profile = profile
        self.settings = settings or get_settings()
        self.calibration: Optional[Calibration] = None

        self._smoother = SignalSmoother(window_size=self.settings.velocity_smoothing_window)
        self._phase = RepPhase.IDLE
        self._prev_y: Optional[float] = None
        self._prev_t: Optional[float] = None

        self._concentric: List[float] = []
        self._eccentric: List[float] = []

        # Set state
        self._set_velocities: List[float] = []
        self._best: float = 0.0
        self._auto_stop = False


    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    @property
    def calibrated(self) -> bool:
        return self.calibration is not None

    def calibrate(
        self,
        user_height_cm: Optional[float],
        frame: Optional[PoseFrame] = None,
        body_height_units: Optional[float] = None
    ) -> bool:
        """
        Derive meters per pose unit from the user's height.

        Either pass a neutral standing `frame` (nose to ankle midpoint is
        taken as 0.89 of stature) or the measured full `body_height_units`.

        Returns:
            True if calibration was applied, False if the inputs were unusable
            (previous calibration, if any, is kept)
        """
        if not user_height_cm or user_height_cm <= 0:
            logger.warning("Calibration skipped: no user height")
            return False

        height_m = user_height_cm / 100.0
        if body_height_units is not None:
            segment = float(body_height_units)
            reference_m = height_m
        elif frame is not None:
            nose = frame.get(Joint.NOSE)
            ankles = geometry.either_side(frame, Joint.LEFT_ANKLE, Joint.RIGHT_ANKLE)
            if not (isinstance(nose, Present) and isinstance(ankles, Present)):
                logger.warning("Calibration skipped: reference joints not visible")
                return False
            segment = geometry.distance(nose.value, ankles.value)
            reference_m = height_m * NOSE_TO_ANKLE_STATURE_RATIO
        else:
            raise ValueError("calibrate() needs a neutral frame or a body height")

        if segment < self.settings.min_calibration_segment:
            logger.warning(f"Calibration rejected: reference segment {segment:.4f} too short")
            return False

        self.calibration = Calibration(
            meters_per_unit=reference_m / segment,
            user_height_cm=float(user_height_cm),
            reference_segment=segment,
        )
        logger.info(f"Calibrated: {self.calibration.meters_per_unit:.3f} m/unit "
                    f"(height={user_height_cm}cm, segment={segment:.3f})")
        return True

    def _to_metric(self, units_per_second: float) -> Optional[float]:
        if self.calibration is None:
            return None
        return units_per_second * self.calibration.meters_per_unit

    # ------------------------------------------------------------------
    # Per-frame
    # ------------------------------------------------------------------

    def update_phase(self, phase: RepPhase):
        previous = self._phase
        self._phase = phase
        if phase is previous:
            return

        if phase is RepPhase.DESCENDING:
            self._eccentric = []
            self._smoother.reset()
        elif phase is RepPhase.ASCENDING:
            self._concentric = []
            self._smoother.reset()
        elif phase is RepPhase.IDLE:
            # Tracking lost or inactivity: the in-flight rep is gone
            self._concentric = []
            self._eccentric = []

    def process_frame(self, frame: PoseFrame) -> Optional[float]:
        """
        Update with one frame.

        Returns:
            Smoothed instantaneous speed in pose units/s, or None when the
            joint is Absent or the interval is unusable
        """
        reading = frame.get(self.profile.velocity_joint)
        if not isinstance(reading, Present):
            return None

        y, t = reading.y, frame.timestamp
        prev_y, prev_t = self._prev_y, self._prev_t
        self._prev_y, self._prev_t = y, t

        if prev_y is None:
            return None

        dt = t - prev_t
        if dt <= 0 or dt > self.settings.max_velocity_gap_seconds:
            logger.debug(f"Skipping velocity sample at {t:.3f}s (dt={dt:.3f})")
            return None

        raw = abs(y - prev_y) / dt
        smoothed = max(0.0, self._smoother.push(raw, t, reading.confidence))

        if self._phase is RepPhase.ASCENDING:
            self._concentric.append(smoothed)
        elif self._phase is RepPhase.DESCENDING:
            self._eccentric.append(smoothed)
        return smoothed

    # ------------------------------------------------------------------
    # Per-rep / per-set
    # ------------------------------------------------------------------

    def complete_rep(self) -> RepVelocity:
        """Close out the current rep and update set fatigue."""
        concentric = np.array(self._concentric)
        mean_ecc = float(np.mean(self._eccentric)) if self._eccentric else None

        self._concentric = []
        self._eccentric = []

        if not concentric.size:
            # Velocity joint unusable through the ascent; fatigue state is left as is
            logger.warning("Rep completed without usable concentric velocity samples")
            return RepVelocity(
                mean_concentric=None,
                peak_concentric=None,
                mean_eccentric=self._to_metric(mean_ecc) if mean_ecc is not None else None,
                mean_concentric_units=None,
                samples=0,
            )

        mean_con = float(concentric.mean())
        peak_con = float(concentric.max())

        self._set_velocities.append(mean_con)
        self._best = max(self._best, mean_con)

        loss = self._loss_percent()
        if loss > self.settings.auto_stop_velocity_loss_percent and not self._auto_stop:
            self._auto_stop = True
            logger.info(f"Auto-stop tripped: velocity loss {loss:.1f}%")

        return RepVelocity(
            mean_concentric=self._to_metric(mean_con),
            peak_concentric=self._to_metric(peak_con),
            mean_eccentric=self._to_metric(mean_ecc) if mean_ecc is not None else None,
            mean_concentric_units=mean_con,
            samples=int(concentric.size),
        )

    def _loss_percent(self) -> float:
        if self._best <= 0 or not self._set_velocities:
            return 0.0
        current = self._set_velocities[-1]
        return min(100.0, max(0.0, (1.0 - current / self._best) * 100.0))

    def _reps_to_failure(self) -> Optional[int]:
        velocities = self._set_velocities
        if len(velocities) < 2 or self._best <= 0:
            return None
        per_rep = (velocities[0] - velocities[-1]) / (len(velocities) - 1)
        if per_rep <= 0:
            return None
        remaining = (velocities[-1] - self._best * FAILURE_VELOCITY_RATIO) / per_rep
        return max(0, int(remaining))

    def fatigue_status(self) -> FatigueStatus:
        return FatigueStatus(
            velocity_loss_percent=self._loss_percent(),
            auto_stop=self._auto_stop,
            reps_to_failure=self._reps_to_failure(),
            best_rep_velocity=self._to_metric(self._best) if self._best > 0 else None,
        )

    @property
    def set_mean_velocity(self) -> Optional[float]:
        """Mean of the set's rep mean concentric velocities in m/s."""
        reps = [v for v in self._set_velocities if v > 0]
        if not reps:
            return None
        return self._to_metric(float(np.mean(reps)))

    def effective_load(self, load_kg: float) -> float:
        """Nominal load plus machine starting resistance, corrected for the resistance curve."""
        profile = self.profile
        return (load_kg + profile.starting_resistance_kg) * profile.resistance_profile.load_correction

    def discard_rep(self):
        self._concentric = []
        self._eccentric = []

    def reset_for_new_set(self):
        self._smoother.reset()
        self._phase = RepPhase.IDLE
        self._prev_y = None
        self._prev_t = None
        self._concentric = []
        self._eccentric = []
        self._set_velocities = []
        self._best = 0.0
        self._auto_stop = False

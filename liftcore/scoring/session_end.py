"""
Session-end transformations.

Pure functions run once per finished session: ranking from the session's
set records, recovery updates from its volume, and the readiness/deload
report. The live pipeline and the persistence worker both go through
here, so stored sets re-derive exactly what the live session produced.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from liftcore.config import Settings
from liftcore.schemas import RecoveryInputs, UserContext
from liftcore.scoring import recovery
from liftcore.scoring.ranking import LPOutcome, RankingState, SetRecord, evaluate_session
from liftcore.scoring.recovery import Muscle, MuscleRecoveryState, VolumeEvent

if TYPE_CHECKING:
    from liftcore.cv.exercise_profiles import ExerciseProfileStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionOutcome:
    lp: LPOutcome
    recovery: Dict[Muscle, MuscleRecoveryState]
    volume_events: Tuple[VolumeEvent, ...] = ()

    def recovery_deltas(self, before: Dict[Muscle, MuscleRecoveryState]) -> Dict[Muscle, MuscleRecoveryState]:
        """States of the muscles this session changed."""
        return {m: s for m, s in self.recovery.items() if before.get(m) != s}


@dataclass(frozen=True)
class RecoveryReport:
    readiness: recovery.ReadinessAssessment
    deload: recovery.DeloadRecommendation
    scores: Dict[Muscle, float]


def volume_events(
    sets: Sequence[Tuple[SetRecord, float]],
    profile_store: "ExerciseProfileStore",
    timestamp: datetime
) -> List[VolumeEvent]:
    """
    One volume event per exercise from (set record, rpe) pairs.

    Sets without reps and exercises unknown to the store are skipped.
    """
    grouped: "OrderedDict[str, List[float]]" = OrderedDict()
    for record, rpe in sets:
        if record.reps > 0:
            grouped.setdefault(record.exercise, []).append(rpe)

    events = []
    for exercise, rpes in grouped.items():
        if exercise not in profile_store:
            logger.warning(f"No muscle mapping for {exercise}, volume not logged")
            continue
        profile = profile_store.get(exercise)
        if profile.primary_muscle is None:
            continue
        events.append(VolumeEvent(
            timestamp=timestamp,
            primary=(profile.primary_muscle,),
            secondary=profile.secondary_muscles,
            sets=len(rpes),
            rpe=max(rpes),
        ))
    return events


def finalize_session(
    sets: Sequence[Tuple[SetRecord, float]],
    user: UserContext,
    ranking_state: RankingState,
    recovery_states: Dict[Muscle, MuscleRecoveryState],
    profile_store: "ExerciseProfileStore",
    timestamp: datetime,
    settings: Optional[Settings] = None
) -> SessionOutcome:
    """Rank the session and apply its volume to the recovery heatmap."""
    records = [record for record, _ in sets]
    lp = evaluate_session(records, user.bodyweight_kg, user.sex, ranking_state, settings)

    events = volume_events(sets, profile_store, timestamp)
    states = dict(recovery_states)
    for event in events:
        states = recovery.apply_volume(states, event)

    return SessionOutcome(lp=lp, recovery=states, volume_events=tuple(events))


def assess_recovery(
    inputs: RecoveryInputs,
    states: Dict[Muscle, MuscleRecoveryState],
    now: datetime
) -> RecoveryReport:
    """Readiness and deload recommendation from external scores plus the heatmap."""
    assessment = recovery.readiness(
        inputs.hrv_score,
        inputs.sleep_score,
        inputs.resting_hr_score,
        recovery.muscle_average(states, now),
    )
    deload = recovery.evaluate_deload(
        inputs.current_hrv_ms,
        recovery.hrv_baseline(inputs.hrv_history_ms),
        inputs.session_velocities,
        inputs.recent_sleep_hours,
    )
    if deload.should_deload:
        logger.info(f"Deload recommended: {deload.reason.value}")
    return RecoveryReport(
        readiness=assessment,
        deload=deload,
        scores=recovery.heatmap_scores(states, now),
    )

"""Celery worker for session finalization."""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from celery import Celery
from sqlalchemy.orm import Session

from liftcore.config import Settings, get_settings
from liftcore.cv.exercise_profiles import ExerciseProfileStore, default_profile_store
from liftcore.database import SyncSessionLocal
from liftcore.models import Athlete, MuscleRecovery, StoredSet, TrainingSession
from liftcore.scoring.recovery import Muscle, MuscleRecoveryState
from liftcore.scoring.session_end import SessionOutcome, finalize_session

settings = get_settings()
logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery(
    "liftcore",
    broker=settings.redis_url,
    backend=settings.redis_url
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,  # Re-deliver if the worker dies mid-commit
    worker_prefetch_multiplier=1,
)


def record_session(
    db: Session,
    athlete: Athlete,
    summaries: Sequence,
    ended_at: Optional[datetime] = None,
    peak_velocity: Optional[float] = None
) -> TrainingSession:
    """Persist a finished session's set summaries, unfinalized."""
    session = TrainingSession(
        athlete_id=athlete.id,
        ended_at=ended_at or datetime.now(timezone.utc),
        peak_velocity=peak_velocity,
    )
    session.sets = [StoredSet.from_summary(s) for s in summaries]
    db.add(session)
    db.commit()
    logger.info(f"Recorded session {session.id} with {len(session.sets)} sets")
    return session


def load_recovery_states(athlete: Athlete) -> Dict[Muscle, MuscleRecoveryState]:
    states = {m: MuscleRecoveryState(muscle=m) for m in Muscle}
    for row in athlete.muscle_recovery:
        state = row.to_state()
        states[state.muscle] = state
    return states


def _store_recovery_states(db: Session, athlete: Athlete, outcome: SessionOutcome,
                           before: Dict[Muscle, MuscleRecoveryState]):
    rows = {row.muscle: row for row in athlete.muscle_recovery}
    for muscle, state in outcome.recovery_deltas(before).items():
        row = rows.get(muscle.value)
        if row is None:
            row = MuscleRecovery(athlete_id=athlete.id, muscle=muscle.value)
            athlete.muscle_recovery.append(row)
        row.apply_state(state)


def finalize_training_session(
    db: Session,
    session_id: str,
    profile_store: Optional[ExerciseProfileStore] = None,
    app_settings: Optional[Settings] = None
) -> Optional[SessionOutcome]:
    """
    Re-derive ranking and recovery for a stored session and commit them.

    Returns None when the session does not exist or was already finalized.
    """
    session = db.query(TrainingSession).filter(TrainingSession.id == session_id).first()
    if session is None:
        logger.error(f"Training session {session_id} not found")
        return None
    if session.finalized:
        logger.info(f"Training session {session_id} already finalized, skipping")
        return None

    athlete = session.athlete
    ended_at = session.ended_at
    if ended_at.tzinfo is None:
        ended_at = ended_at.replace(tzinfo=timezone.utc)

    before = load_recovery_states(athlete)
    outcome = finalize_session(
        [(s.to_record(), s.rpe) for s in session.sets],
        athlete.user_context(),
        athlete.ranking_state(),
        before,
        profile_store or default_profile_store(),
        ended_at,
        app_settings or settings,
    )

    lp = outcome.lp
    if lp.computed:
        athlete.apply_ranking_state(lp.state)
    _store_recovery_states(db, athlete, outcome, before)

    session.points_computed = lp.computed
    session.session_delta = lp.session_delta if lp.computed else None
    session.promoted = lp.promoted
    session.finalized = True
    session.finalized_at = datetime.now(timezone.utc)
    db.commit()

    logger.info(f"Finalized session {session_id}: delta={lp.session_delta}, "
                f"tier={lp.tier.value}, computed={lp.computed}")
    return outcome


@celery_app.task(bind=True, name="finalize_session", max_retries=3, default_retry_delay=30)
def finalize_session_task(self, session_id: str):
    """Finalize a stored session; retried on database errors."""
    db = SyncSessionLocal()
    try:
        outcome = finalize_training_session(db, session_id)
        if outcome is None:
            return {"session_id": session_id, "finalized": False}
        return {
            "session_id": session_id,
            "finalized": True,
            "computed": outcome.lp.computed,
            "session_delta": outcome.lp.session_delta,
            "cumulative_points": outcome.lp.cumulative_points,
            "tier": outcome.lp.tier.value,
            "promoted": outcome.lp.promoted,
        }
    except Exception as e:
        db.rollback()
        logger.exception(f"Finalization failed for session {session_id}")
        raise self.retry(exc=e)
    finally:
        db.close()

"""Database models."""

from liftcore.models.base import Base
from liftcore.models.athlete import Athlete
from liftcore.models.training_session import TrainingSession, StoredSet
from liftcore.models.muscle_recovery import MuscleRecovery

__all__ = [
    "Base",
    "Athlete",
    "TrainingSession",
    "StoredSet",
    "MuscleRecovery",
]

"""Muscle recovery model."""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from liftcore.models.base import Base
from liftcore.scoring.recovery import Muscle, MuscleRecoveryState


class MuscleRecovery(Base):
    """Persisted MuscleRecoveryState, one row per athlete and muscle."""

    __tablename__ = "muscle_recovery"
    __table_args__ = (UniqueConstraint("athlete_id", "muscle"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    athlete_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("athletes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    muscle: Mapped[str] = mapped_column(String(40), nullable=False)
    score: Mapped[float] = mapped_column(Float, default=100.0, nullable=False)
    last_trained: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    weekly_volume_sets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    athlete: Mapped["Athlete"] = relationship("Athlete", back_populates="muscle_recovery")

    def to_state(self) -> MuscleRecoveryState:
        last = self.last_trained
        if last is not None and last.tzinfo is None:
            # SQLite drops tzinfo; values are stored as UTC
            last = last.replace(tzinfo=timezone.utc)
        return MuscleRecoveryState(
            muscle=Muscle(self.muscle),
            score=self.score,
            last_trained=last,
            weekly_volume_sets=self.weekly_volume_sets or 0,
        )

    def apply_state(self, state: MuscleRecoveryState):
        self.score = state.score
        self.last_trained = state.last_trained
        self.weekly_volume_sets = state.weekly_volume_sets

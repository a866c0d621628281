"""Training session and stored set models."""

import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, Integer, Float, Boolean, ForeignKey, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from liftcore.models.base import Base, TimestampMixin, utcnow
from liftcore.scoring.ranking import SetRecord


class TrainingSession(Base, TimestampMixin):
    """
    One finished camera session.

    `finalized` is set once ranking and recovery have been applied from
    its stored sets; finalization is never applied twice.
    """

    __tablename__ = "training_sessions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    athlete_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("athletes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    ended_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Finalization results
    finalized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    points_computed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    session_delta: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    promoted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    peak_velocity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Relationships
    athlete: Mapped["Athlete"] = relationship("Athlete", back_populates="sessions")
    sets: Mapped[List["StoredSet"]] = relationship(
        "StoredSet",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="StoredSet.set_number"
    )


class StoredSet(Base):
    """Persisted SetRecord plus its RPE estimate."""

    __tablename__ = "stored_sets"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("training_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    set_number: Mapped[int] = mapped_column(Integer, nullable=False)
    exercise: Mapped[str] = mapped_column(String(100), nullable=False)
    reps: Mapped[int] = mapped_column(Integer, nullable=False)
    load_kg: Mapped[float] = mapped_column(Float, nullable=False)
    effective_load_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    mean_concentric_velocity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    form_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    rpe: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    velocity_loss_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    session: Mapped["TrainingSession"] = relationship("TrainingSession", back_populates="sets")

    def to_record(self) -> SetRecord:
        return SetRecord(
            exercise=self.exercise,
            reps=self.reps,
            load_kg=self.load_kg,
            effective_load_kg=self.effective_load_kg,
            mean_concentric_velocity=self.mean_concentric_velocity,
            form_score=self.form_score,
        )

    @classmethod
    def from_summary(cls, summary) -> "StoredSet":
        """Build from a pipeline SetSummary."""
        record = summary.record
        return cls(
            set_number=summary.set_number,
            exercise=record.exercise,
            reps=record.reps,
            load_kg=record.load_kg,
            effective_load_kg=record.effective_load_kg,
            mean_concentric_velocity=record.mean_concentric_velocity,
            form_score=record.form_score,
            rpe=summary.rpe.rpe,
            velocity_loss_percent=summary.fatigue.velocity_loss_percent,
        )

"""Athlete model."""

import uuid
from typing import List, Optional
from sqlalchemy import String, Integer, Float
from sqlalchemy.orm import Mapped, mapped_column, relationship

from liftcore.models.base import Base, TimestampMixin
from liftcore.schemas import UserContext
from liftcore.scoring.ranking import PromotionSeries, RankingState, Tier


class Athlete(Base, TimestampMixin):
    """
    Long-lived user profile: body data plus tier/point state.

    Ranking state is only mutated when a session is finalized.
    """

    __tablename__ = "athletes"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Calibration / normalization
    height_cm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    bodyweight_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sex: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Ranking state
    cumulative_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tier: Mapped[str] = mapped_column(String(20), default=Tier.IRON.value, nullable=False)
    series_target_tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    series_wins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    series_baseline_delta: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    sessions: Mapped[List["TrainingSession"]] = relationship(
        "TrainingSession",
        back_populates="athlete",
        cascade="all, delete-orphan"
    )
    muscle_recovery: Mapped[List["MuscleRecovery"]] = relationship(
        "MuscleRecovery",
        back_populates="athlete",
        cascade="all, delete-orphan"
    )

    def user_context(self) -> UserContext:
        return UserContext(height_cm=self.height_cm, bodyweight_kg=self.bodyweight_kg, sex=self.sex)

    def ranking_state(self) -> RankingState:
        series = None
        if self.series_target_tier:
            series = PromotionSeries(
                target_tier=Tier(self.series_target_tier),
                wins=self.series_wins or 0,
                baseline_delta=self.series_baseline_delta or 0,
            )
        return RankingState(
            cumulative_points=self.cumulative_points or 0,
            tier=Tier(self.tier or Tier.IRON.value),
            series=series,
        )

    def apply_ranking_state(self, state: RankingState):
        self.cumulative_points = state.cumulative_points
        self.tier = state.tier.value
        if state.series is None:
            self.series_target_tier = None
            self.series_wins = 0
            self.series_baseline_delta = 0
        else:
            self.series_target_tier = state.series.target_tier.value
            self.series_wins = state.series.wins
            self.series_baseline_delta = state.series.baseline_delta

"""
Ranking engine.

Turns a session's completed sets into integer skill points and maintains
the user's tier.

SKILL POINTS (per set):
    points = (effective load / bodyweight) x reps
             x velocity modifier (1.1 inside 0.40-0.60 m/s)
             x form modifier (1.2 at form score >= 95)
             x sex normalization (1.25 for female lifters)
rounded half-up, at least 1 for any non-empty set.

PROMOTION SERIES:
Points update every session, the displayed tier does not. Crossing the
next tier's threshold opens a series instead of promoting. Each later
session whose delta is non-decreasing relative to the series baseline is
a win and becomes the new baseline; a lower delta resets the wins to 0
(banked points stay). Enough wins promote one tier and close the series.
"""

import logging
import math
import statistics
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from liftcore.config import Settings, get_settings

logger = logging.getLogger(__name__)


OPTIMAL_VELOCITY_MIN = 0.40
OPTIMAL_VELOCITY_MAX = 0.60
VELOCITY_BONUS = 1.1
PERFECT_FORM_SCORE = 95.0
FORM_BONUS = 1.2
FEMALE_MULTIPLIER = 1.25
FEMALE_STANDARD_FACTOR = 0.8


class Tier(Enum):
    """Competitive tiers in ascending order."""
    IRON = "iron"
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"
    MASTER = "master"
    GRANDMASTER = "grandmaster"
    CHALLENGER = "challenger"

    @property
    def threshold(self) -> int:
        return TIER_THRESHOLDS[self]

    @property
    def index(self) -> int:
        return TIER_ORDER.index(self)

    @property
    def next_tier(self) -> Optional["Tier"]:
        idx = self.index
        return TIER_ORDER[idx + 1] if idx + 1 < len(TIER_ORDER) else None

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


TIER_ORDER: Tuple[Tier, ...] = tuple(Tier)

TIER_THRESHOLDS: Dict[Tier, int] = {
    Tier.IRON: 0,
    Tier.BRONZE: 100,
    Tier.SILVER: 250,
    Tier.GOLD: 500,
    Tier.PLATINUM: 800,
    Tier.DIAMOND: 1200,
    Tier.MASTER: 1800,
    Tier.GRANDMASTER: 2500,
    Tier.CHALLENGER: 3500,
}


def tier_for_points(points: int) -> Tier:
    """Highest tier whose threshold `points` has reached."""
    for tier in reversed(TIER_ORDER):
        if points >= tier.threshold:
            return tier
    return Tier.IRON


@dataclass(frozen=True)
class SetRecord:
    """One completed set, the ranking input unit."""
    exercise: str
    reps: int
    load_kg: float
    effective_load_kg: Optional[float] = None  # Resistance-corrected; defaults to load_kg
    mean_concentric_velocity: Optional[float] = None
    form_score: float = 0.0

    @property
    def ranking_load(self) -> float:
        return self.load_kg if self.effective_load_kg is None else self.effective_load_kg


@dataclass(frozen=True)
class SetPoints:
    """Points breakdown for one set."""
    base: float
    velocity_modifier: float
    form_modifier: float
    sex_multiplier: float
    points: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_female(sex: Optional[str]) -> bool:
    return sex is not None and sex.strip().lower() == "female"


def set_points(record: SetRecord, bodyweight_kg: float, sex: Optional[str] = None) -> SetPoints:
    """Points for one set. Caller guarantees bodyweight_kg > 0."""
    load = record.ranking_load
    if record.reps <= 0 or load <= 0:
        return SetPoints(0.0, 1.0, 1.0, 1.0, 0)

    base = load / bodyweight_kg * record.reps

    velocity = record.mean_concentric_velocity
    velocity_mod = (
        VELOCITY_BONUS
        if velocity is not None and OPTIMAL_VELOCITY_MIN <= velocity <= OPTIMAL_VELOCITY_MAX
        else 1.0
    )
    form_mod = FORM_BONUS if record.form_score >= PERFECT_FORM_SCORE else 1.0
    sex_mult = FEMALE_MULTIPLIER if is_female(sex) else 1.0

    total = base * velocity_mod * form_mod * sex_mult
    return SetPoints(
        base=base,
        velocity_modifier=velocity_mod,
        form_modifier=form_mod,
        sex_multiplier=sex_mult,
        points=max(1, round_half_up(total)),
    )


@dataclass(frozen=True)
class PromotionSeries:
    """Open promotion series toward `target_tier`."""
    target_tier: Tier
    wins: int = 0
    baseline_delta: int = 0


@dataclass(frozen=True)
class RankingState:
    """Long-lived tier/point state owned by the user profile."""
    cumulative_points: int = 0
    tier: Tier = Tier.IRON
    series: Optional[PromotionSeries] = None

    @property
    def threshold_tier(self) -> Tier:
        return tier_for_points(self.cumulative_points)


@dataclass(frozen=True)
class LPOutcome:
    """End-of-session ranking result."""
    computed: bool
    session_delta: int
    cumulative_points: int
    tier: Tier
    threshold_tier: Tier
    series: Optional[PromotionSeries]
    wins_required: int
    promoted: bool = False
    set_breakdown: Tuple[SetPoints, ...] = ()
    state: RankingState = field(default_factory=RankingState)
    reason: Optional[str] = None

    @property
    def in_series(self) -> bool:
        return self.series is not None

    @property
    def series_wins(self) -> int:
        return self.series.wins if self.series else 0


def _is_win(delta: int, baseline: int, strict: bool) -> bool:
    return delta > baseline if strict else delta >= baseline


def _open_series_if_crossed(state: RankingState, delta: int) -> RankingState:
    next_tier = state.tier.next_tier
    if next_tier is None or state.cumulative_points < next_tier.threshold:
        return state
    logger.info(f"Promotion series opened toward {next_tier.value} "
                f"at {state.cumulative_points} points")
    return replace(state, series=PromotionSeries(target_tier=next_tier, wins=0, baseline_delta=delta))


def advance_series(
    state: RankingState,
    delta: int,
    wins_required: int = 3,
    strict: bool = False
) -> Tuple[RankingState, bool]:
    """
    Pure promotion-series transition for one session.

    `state.cumulative_points` must already include `delta`.

    Returns:
        (new state, promoted this session)
    """
    series = state.series
    if series is None:
        return _open_series_if_crossed(state, delta), False

    if _is_win(delta, series.baseline_delta, strict):
        series = replace(series, wins=series.wins + 1, baseline_delta=delta)
    else:
        logger.info(f"Promotion series toward {series.target_tier.value} reset: "
                    f"delta {delta} < baseline {series.baseline_delta}")
        series = replace(series, wins=0, baseline_delta=delta)

    if series.wins < wins_required:
        return replace(state, series=series), False

    logger.info(f"Promoted to {series.target_tier.value}")
    promoted = replace(state, tier=series.target_tier, series=None)
    return _open_series_if_crossed(promoted, delta), True


def evaluate_session(
    sets: Sequence[SetRecord],
    bodyweight_kg: Optional[float],
    sex: Optional[str],
    state: RankingState,
    settings: Optional[Settings] = None
) -> LPOutcome:
    """
    Score a session and advance the ranking state.

    Missing or non-positive bodyweight returns computed=False and leaves
    the state untouched.
    """
    settings = settings or get_settings()
    wins_required = settings.promotion_wins_required

    if bodyweight_kg is None or bodyweight_kg <= 0:
        logger.warning("Bodyweight missing, skipping skill point computation")
        return LPOutcome(
            computed=False,
            session_delta=0,
            cumulative_points=state.cumulative_points,
            tier=state.tier,
            threshold_tier=state.threshold_tier,
            series=state.series,
            wins_required=wins_required,
            state=state,
            reason="bodyweight_missing",
        )

    breakdown = tuple(set_points(s, bodyweight_kg, sex) for s in sets)
    delta = sum(b.points for b in breakdown)

    banked = replace(state, cumulative_points=state.cumulative_points + delta)
    new_state, promoted = advance_series(
        banked,
        delta,
        wins_required=wins_required,
        strict=settings.promotion_strict_improvement,
    )

    logger.info(f"Session scored: +{delta} -> {new_state.cumulative_points} points, "
                f"tier={new_state.tier.value}")

    return LPOutcome(
        computed=True,
        session_delta=delta,
        cumulative_points=new_state.cumulative_points,
        tier=new_state.tier,
        threshold_tier=new_state.threshold_tier,
        series=new_state.series,
        wins_required=wins_required,
        promoted=promoted,
        set_breakdown=breakdown,
        state=new_state,
    )


# ---------------------------------------------------------------------------
# Strength standards: bodyweight ratio needed per tier per exercise
# ---------------------------------------------------------------------------

def _ratios(*values: float) -> Dict[Tier, float]:
    return dict(zip(TIER_ORDER, values))


STRENGTH_STANDARDS: Dict[str, Dict[Tier, float]] = {
    "Barbell Bench Press": _ratios(0.30, 0.50, 0.75, 1.00, 1.30, 1.60, 1.80, 2.00, 2.20),
    "Barbell Back Squat": _ratios(0.50, 0.70, 0.95, 1.20, 1.70, 2.10, 2.30, 2.50, 2.70),
    "Conventional Deadlift": _ratios(0.70, 1.00, 1.25, 1.50, 2.00, 2.50, 2.70, 3.00, 3.20),
    "Overhead Press": _ratios(0.20, 0.35, 0.50, 0.65, 0.85, 1.00, 1.10, 1.20, 1.35),
    "Barbell Row": _ratios(0.30, 0.45, 0.65, 0.85, 1.10, 1.35, 1.50, 1.65, 1.80),
    "Romanian Deadlift": _ratios(0.40, 0.60, 0.80, 1.00, 1.30, 1.60, 1.80, 2.00, 2.20),
    "Pull-Up": _ratios(0.50, 0.80, 1.00, 1.20, 1.50, 1.80, 2.00, 2.20, 2.50),
    "Lat Pulldown": _ratios(0.30, 0.50, 0.65, 0.80, 1.00, 1.20, 1.35, 1.50, 1.65),
    "Hip Thrust": _ratios(0.50, 0.80, 1.10, 1.50, 2.00, 2.50, 2.80, 3.00, 3.30),
}


def standard_threshold(exercise: str, tier: Tier, sex: Optional[str] = None) -> Optional[float]:
    ratios = STRENGTH_STANDARDS.get(exercise)
    if ratios is None:
        return None
    factor = FEMALE_STANDARD_FACTOR if is_female(sex) else 1.0
    return ratios[tier] * factor


@dataclass(frozen=True)
class StrengthLevel:
    exercise: str
    load_kg: float
    bodyweight_kg: float
    ratio: float
    tier: Tier


def exercise_strength_level(
    exercise: str,
    load_kg: float,
    bodyweight_kg: float,
    sex: Optional[str] = None
) -> StrengthLevel:
    """Tier a single lift corresponds to by bodyweight ratio."""
    if bodyweight_kg <= 0:
        return StrengthLevel(exercise, load_kg, bodyweight_kg, 0.0, Tier.IRON)

    ratio = load_kg / bodyweight_kg
    achieved = Tier.IRON
    for tier in TIER_ORDER:
        threshold = standard_threshold(exercise, tier, sex)
        if threshold is None or ratio < threshold:
            break
        achieved = tier
    return StrengthLevel(exercise, load_kg, bodyweight_kg, ratio, achieved)


def overall_strength_tier(
    lifts: Sequence[Tuple[str, float]],
    bodyweight_kg: float,
    sex: Optional[str] = None
) -> Tier:
    """Median tier across (exercise, load) lifts."""
    if bodyweight_kg <= 0 or not lifts:
        return Tier.IRON
    indices: List[int] = sorted(
        exercise_strength_level(name, load, bodyweight_kg, sex).tier.index
        for name, load in lifts
    )
    return TIER_ORDER[int(statistics.median_high(indices))]

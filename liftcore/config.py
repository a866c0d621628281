"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "LiftCore"
    debug: bool = False

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url_sync: str = "sqlite:///./liftcore.db"

    # Redis (Celery broker for session finalization)
    redis_url: str = "redis://localhost:6379/0"

    # Pose input
    pose_confidence_threshold: float = 0.3  # Below this a joint is Absent for the frame

    # Rep phase detection (normalized depth: 0 = top of range, 1 = bottom)
    top_enter_depth: float = 0.2
    top_exit_depth: float = 0.3
    bottom_enter_depth: float = 0.7
    bottom_exit_depth: float = 0.6
    missing_frame_budget: int = 15  # ~0.5s at 30fps before tracking is declared lost
    inactivity_timeout_seconds: float = 8.0
    motion_epsilon_degrees: float = 3.0
    angle_smoothing_window: int = 5

    # Velocity engine
    velocity_smoothing_window: int = 7
    max_velocity_gap_seconds: float = 0.5  # Larger gaps are treated as frame drops
    auto_stop_velocity_loss_percent: float = 20.0
    min_calibration_segment: float = 0.05  # Reference segment in pose units

    # Ranking
    promotion_wins_required: int = 3
    promotion_strict_improvement: bool = False  # True = each series session must beat the last

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""Recovery input schemas."""

from typing import List, Optional
from pydantic import BaseModel, Field


class RecoveryInputs(BaseModel):
    """
    Externally computed biometric scores.

    Component scores are already on a 0-100 scale; raw readings are only
    used for the deload triggers.
    """
    hrv_score: float = Field(..., ge=0, le=100)
    sleep_score: float = Field(..., ge=0, le=100)
    resting_hr_score: float = Field(..., ge=0, le=100)

    # Deload trigger inputs
    current_hrv_ms: Optional[float] = Field(None, gt=0)
    hrv_history_ms: List[float] = Field(default_factory=list, description="Daily HRV, oldest first")
    recent_sleep_hours: List[float] = Field(default_factory=list, description="Nightly sleep, oldest first")
    session_velocities: List[float] = Field(default_factory=list, description="Mean session velocity, oldest first")

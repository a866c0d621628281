"""User context schemas."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator


class UserContext(BaseModel):
    """
    Per-user inputs for calibration and point normalization.

    Bodyweight may be missing or zero; ranking then reports "not computed".
    """
    height_cm: Optional[float] = Field(None, gt=0, description="Standing height for velocity calibration")
    bodyweight_kg: Optional[float] = Field(None, ge=0)
    sex: Optional[str] = Field(None, description="male or female")

    @field_validator("sex")
    @classmethod
    def normalize_sex(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        if v not in ("male", "female"):
            raise ValueError("sex must be 'male' or 'female'")
        return v

    class Config:
        frozen = True

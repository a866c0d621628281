"""Pydantic schemas for inbound session context."""

from liftcore.schemas.user import UserContext
from liftcore.schemas.recovery import RecoveryInputs

__all__ = [
    "UserContext",
    "RecoveryInputs",
]

"""
Models module containing Pydantic schemas.
"""

from .schemas import (
    NAME_MAX_LENGTH,
    UserCreate,
    User,
    HealthResponse,
    ErrorResponse
)

__all__ = [
    "NAME_MAX_LENGTH",
    "UserCreate",
    "User",
    "HealthResponse",
    "ErrorResponse"
]

"""
Pydantic models for request/response validation.

Request bodies are validated before any database interaction; the
length bound on ``name`` mirrors the VARCHAR(100) column.
"""

from pydantic import BaseModel, ConfigDict, Field, StrictStr

NAME_MAX_LENGTH = 100


# ============================================================
# Request Models
# ============================================================

class UserCreate(BaseModel):
    """
    The payload for creating a user.

    ``name`` must be a JSON string; numbers and other types are rejected
    rather than coerced.
    """
    name: StrictStr = Field(
        ...,
        min_length=1,
        max_length=NAME_MAX_LENGTH,
        description="Display name of the user",
        examples=["Ada"]
    )


# ============================================================
# Response Models
# ============================================================

class User(BaseModel):
    """A persisted user row."""
    model_config = ConfigDict(
        json_schema_extra={"example": {"id": 1, "name": "Ada"}}
    )

    id: int
    name: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"


class ErrorResponse(BaseModel):
    """Uniform error body returned for every failed request."""
    error: str

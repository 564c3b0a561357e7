"""
Archetype Backend - Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models defining the API contract.
Why:   The schema stage validates request bodies against these before the
       handler runs; FastAPI uses them for serialization and OpenAPI docs.

Design Decision:
    Schemas only check shape (required fields, types, minimal lengths).
    Business rules such as the email pattern live in the domain entity, so
    they apply to every caller of the service, not only HTTP.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class UserCreate(BaseModel):
    email: str = Field(description="Email address, unique per user")
    name: str = Field(min_length=2, description="Display name (at least 2 characters)")


class UserUpdate(BaseModel):
    """Partial update: omitted fields are left unchanged."""

    email: Optional[str] = Field(default=None)
    name: Optional[str] = Field(default=None, min_length=2)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    created_at: datetime = Field(
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
    )
    updated_at: datetime = Field(
        validation_alias=AliasChoices("updated_at", "updatedAt"),
        serialization_alias="updatedAt",
    )

    model_config = {"from_attributes": True}


class ErrorBody(BaseModel):
    message: str
    statusCode: int
    timestamp: str
    errorId: str
    path: Optional[str] = None
    retryAfter: Optional[int] = None
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Standardized error envelope returned for every failure."""

    error: ErrorBody


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or degraded")
    timestamp: str
    uptime: float = Field(description="Seconds since the process started")
    version: str
    environment: str
    database: str = Field(description="disabled, connected or disconnected")


class ReadyResponse(BaseModel):
    status: str = "ready"


__all__: List[str] = [
    "ErrorResponse",
    "HealthResponse",
    "ReadyResponse",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
]

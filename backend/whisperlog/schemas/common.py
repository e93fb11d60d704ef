"""
WhisperLog Backend — Shared Pydantic Schemas
==============================================

What:  Building blocks reused by every resource: camelCase base model,
       pagination envelope, error and message bodies, health report.
Why:   The web client speaks camelCase JSON (formatId, processingMetadata,
       hasNext). Declaring the alias generator once keeps Python attribute
       names snake_case while the wire format stays camelCase.
How:   FastAPI serializes response models by alias; `populate_by_name`
       lets requests use either spelling.
"""

import math
import uuid
from typing import Dict, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API models that are exposed with camelCase field names."""

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "alias_generator": to_camel,
    }


class UserSummary(CamelModel):
    """Owner identity attached to templates and processed records."""

    id: uuid.UUID = Field(description="User identifier")
    username: str = Field(description="Display name")
    email: str = Field(description="Login email (lower-cased)")


class PaginationMeta(CamelModel):
    """
    Offset pagination state returned next to every list.

    total_pages is ceil(total / limit); an empty result has zero pages, so
    has_next is False and has_prev only depends on the requested page.
    """

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class MessageResponse(BaseModel):
    """Plain acknowledgement body (soft deletes, password reset, ...)."""

    message: str


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "format with ID '…' was not found",
            "details": {"resource": "format"},
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Service status plus database and per-provider availability."""

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    providers: Dict[str, str] = Field(
        description="Provider name → available | unavailable | not_configured"
    )
    uptime_seconds: float = Field(description="Seconds since service started")

"""
WhisperLog Backend — Template (UserFormat) Schemas
====================================================

What:  API contract for /user-formats.
Why:   Separates what clients may send (create/update) from what they get
       back (response with owner summary).
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from whisperlog.schemas.common import CamelModel, PaginationMeta, UserSummary

MAX_PAGE_LIMIT = 50

FormatSortField = Literal["createdAt", "updatedAt", "title"]
SortOrder = Literal["asc", "desc"]


class UserFormatCreate(CamelModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    instruction: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Extra guidance for the AI; a generic directive is used when empty",
    )
    icon_name: str = Field(default="document", min_length=1, max_length=50)
    format: str = Field(
        min_length=1,
        max_length=20000,
        description="Markdown skeleton with {placeholder} tokens",
    )


class UserFormatUpdate(CamelModel):
    """Partial update; omitted fields keep their current value."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    instruction: Optional[str] = Field(default=None, max_length=2000)
    icon_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    format: Optional[str] = Field(default=None, min_length=1, max_length=20000)


class UserFormatResponse(CamelModel):
    id: uuid.UUID
    user: UserSummary
    title: str
    description: Optional[str] = None
    instruction: Optional[str] = None
    icon_name: str
    format: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class UserFormatListResponse(CamelModel):
    data: List[UserFormatResponse]
    pagination: PaginationMeta


class FormatListQuery(CamelModel):
    """Validated list parameters; `limit` is capped at MAX_PAGE_LIMIT."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=MAX_PAGE_LIMIT)
    search: Optional[str] = Field(default=None, max_length=200)
    sort_by: FormatSortField = "createdAt"
    sort_order: SortOrder = "desc"

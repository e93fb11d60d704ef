"""
WhisperLog Backend — Content Processing Schemas
=================================================

What:  API contract for /content-processing.
Why:   The process request is the entry point of the AI pipeline; the
       response shape is shared by process, list, get and update.

Notes:
    - `contentType` is accepted as a plain string so an unsupported value is
      rejected by the orchestrator with a 400 and a clear message rather
      than a generic schema error.
    - Audio `content` is base64, optionally prefixed with a data URI
      (`data:audio/mp4;base64,`). Size is checked after decoding.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from whisperlog.schemas.common import CamelModel, PaginationMeta, UserSummary
from whisperlog.schemas.user_format import MAX_PAGE_LIMIT, SortOrder

ContentSortField = Literal["createdAt", "updatedAt", "processingTime"]


class ProcessContentRequest(CamelModel):
    format_id: uuid.UUID = Field(description="Template to apply")
    content_type: str = Field(description="'text' or 'audio'")
    content: str = Field(min_length=1, description="Raw text, or base64 audio")


class UpdateProcessedContentRequest(CamelModel):
    processed_content: str = Field(min_length=1, description="Corrected markdown output")


class FormatSummary(CamelModel):
    id: uuid.UUID
    title: str
    icon_name: str


class ProcessingMetadata(CamelModel):
    submission_date: datetime
    processing_time: int = Field(ge=0, description="Milliseconds from acceptance to provider response")
    ai_model: str
    attempts: int
    placeholder_leak: bool = False


class ProcessedContentResponse(CamelModel):
    id: uuid.UUID
    user: UserSummary
    format: FormatSummary
    content_type: str
    original_content: str
    processed_content: str
    processing_metadata: ProcessingMetadata
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ProcessedContentListResponse(CamelModel):
    data: List[ProcessedContentResponse]
    pagination: PaginationMeta


class ContentListQuery(CamelModel):
    """
    Filters for processed-content listing.

    search matches the output text or the template title; format_name matches
    the template title only. Dates are ISO 8601; a bare date in date_to
    covers that whole day.
    """

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=MAX_PAGE_LIMIT)
    search: Optional[str] = Field(default=None, max_length=200)
    format_name: Optional[str] = Field(default=None, max_length=100)
    content_type: Optional[Literal["text", "audio"]] = None
    format_id: Optional[uuid.UUID] = None
    sort_by: ContentSortField = "createdAt"
    sort_order: SortOrder = "desc"
    date_from: Optional[str] = None
    date_to: Optional[str] = None


class StatsOverview(CamelModel):
    total_processed: int
    text_content: int
    audio_content: int
    avg_processing_time: float
    total_processing_time: int


class TopFormat(CamelModel):
    format_id: uuid.UUID
    format_title: str
    format_icon: str
    count: int


class ProcessingStatsResponse(CamelModel):
    overview: StatsOverview
    top_formats: List[TopFormat]

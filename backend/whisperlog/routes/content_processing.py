"""
WhisperLog Backend — Content Processing Route Handlers
========================================================

What:  POST /content-processing/process runs the AI pipeline; the remaining
       endpoints browse, edit, delete and summarize stored results.
Why:   Processing can take tens of seconds while retries back off. If the
       client hangs up during that time, the request is cancelled instead of
       burning further vendor calls.
How:   A watcher task polls request.is_disconnected() and trips the
       CancellationToken that the orchestrator checks between attempts.

Route order matters: /stats and /format/{id} are declared before /{id} so
they are not captured as content ids.
"""

import asyncio
import contextlib
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request

from whisperlog.dependencies import AppServices, CurrentUser, DbSession
from whisperlog.schemas.common import ErrorResponse, MessageResponse
from whisperlog.schemas.processed_content import (
    ContentListQuery,
    ContentSortField,
    ProcessContentRequest,
    ProcessedContentListResponse,
    ProcessedContentResponse,
    ProcessingStatsResponse,
    UpdateProcessedContentRequest,
)
from whisperlog.schemas.user_format import MAX_PAGE_LIMIT, SortOrder
from whisperlog.services.processing_service import CancellationToken

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content-processing", tags=["Content Processing"])

DISCONNECT_POLL_INTERVAL = 0.5

NOT_FOUND = {404: {"description": "Record not found", "model": ErrorResponse}}


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling processing")
            token.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


@router.post(
    "/process",
    response_model=ProcessedContentResponse,
    status_code=201,
    responses={
        400: {"description": "Invalid content or unsupported content type", "model": ErrorResponse},
        404: {"description": "Template not found", "model": ErrorResponse},
        502: {"description": "Formatting failed", "model": ErrorResponse},
        503: {"description": "AI provider unavailable", "model": ErrorResponse},
    },
    summary="Format text or a voice note with a template",
)
async def process_content(
    body: ProcessContentRequest,
    request: Request,
    user: CurrentUser,
    db: DbSession,
    services: AppServices,
) -> ProcessedContentResponse:
    token = CancellationToken()
    watcher = asyncio.create_task(_watch_disconnect(request, token))
    try:
        return await services.processing.process(
            db,
            user.id,
            body.format_id,
            body.content_type,
            body.content,
            cancel_token=token,
        )
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


def _list_query(
    page: int,
    limit: int,
    search: Optional[str],
    format_name: Optional[str],
    content_type: Optional[str],
    format_id: Optional[UUID],
    sort_by: str,
    sort_order: str,
    date_from: Optional[str],
    date_to: Optional[str],
) -> ContentListQuery:
    return ContentListQuery(
        page=page,
        limit=min(limit, MAX_PAGE_LIMIT),
        search=search,
        format_name=format_name,
        content_type=content_type,
        format_id=format_id,
        sort_by=sort_by,
        sort_order=sort_order,
        date_from=date_from,
        date_to=date_to,
    )


@router.get(
    "",
    response_model=ProcessedContentListResponse,
    summary="List processed content with filters",
)
async def list_contents(
    user: CurrentUser,
    db: DbSession,
    services: AppServices,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    search: Optional[str] = Query(default=None, max_length=200),
    format_name: Optional[str] = Query(default=None, alias="formatName", max_length=100),
    content_type: Optional[str] = Query(default=None, alias="contentType", pattern="^(text|audio)$"),
    format_id: Optional[UUID] = Query(default=None, alias="formatId"),
    sort_by: ContentSortField = Query(default="createdAt", alias="sortBy"),
    sort_order: SortOrder = Query(default="desc", alias="sortOrder"),
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
) -> ProcessedContentListResponse:
    query = _list_query(
        page, limit, search, format_name, content_type, format_id, sort_by, sort_order, date_from, date_to
    )
    return await services.contents.list_contents(db, user.id, query)


@router.get(
    "/stats",
    response_model=ProcessingStatsResponse,
    summary="Totals, processing time and most used templates",
)
async def get_stats(user: CurrentUser, db: DbSession, services: AppServices) -> ProcessingStatsResponse:
    return await services.contents.get_stats(db, user.id)


@router.get(
    "/format/{format_id}",
    response_model=ProcessedContentListResponse,
    responses={404: {"description": "Template not found", "model": ErrorResponse}},
    summary="List processed content for one template",
)
async def list_by_format(
    format_id: UUID,
    user: CurrentUser,
    db: DbSession,
    services: AppServices,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    search: Optional[str] = Query(default=None, max_length=200),
    content_type: Optional[str] = Query(default=None, alias="contentType", pattern="^(text|audio)$"),
    sort_by: ContentSortField = Query(default="createdAt", alias="sortBy"),
    sort_order: SortOrder = Query(default="desc", alias="sortOrder"),
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
) -> ProcessedContentListResponse:
    query = _list_query(
        page, limit, search, None, content_type, format_id, sort_by, sort_order, date_from, date_to
    )
    return await services.contents.list_by_format(db, user.id, format_id, query)


@router.get("/{content_id}", response_model=ProcessedContentResponse, responses=NOT_FOUND)
async def get_content(
    content_id: UUID, user: CurrentUser, db: DbSession, services: AppServices
) -> ProcessedContentResponse:
    return await services.contents.get_content(db, user.id, content_id)


@router.patch(
    "/{content_id}",
    response_model=ProcessedContentResponse,
    responses=NOT_FOUND,
    summary="Replace the formatted output after a manual edit",
)
async def update_content(
    content_id: UUID,
    body: UpdateProcessedContentRequest,
    user: CurrentUser,
    db: DbSession,
    services: AppServices,
) -> ProcessedContentResponse:
    return await services.contents.update_processed_text(db, user.id, content_id, body.processed_content)


@router.delete(
    "/{content_id}",
    response_model=MessageResponse,
    responses=NOT_FOUND,
    summary="Soft-delete a processed record",
)
async def delete_content(
    content_id: UUID, user: CurrentUser, db: DbSession, services: AppServices
) -> MessageResponse:
    return await services.contents.delete_content(db, user.id, content_id)

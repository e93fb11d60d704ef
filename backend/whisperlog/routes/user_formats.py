"""
WhisperLog Backend — Template Route Handlers
==============================================

What:  CRUD for the caller's formatting templates under /user-formats.
How:   Thin handlers; ownership, search and pagination live in FormatService.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from whisperlog.dependencies import AppServices, CurrentUser, DbSession
from whisperlog.schemas.common import ErrorResponse, MessageResponse
from whisperlog.schemas.user_format import (
    MAX_PAGE_LIMIT,
    FormatListQuery,
    FormatSortField,
    SortOrder,
    UserFormatCreate,
    UserFormatListResponse,
    UserFormatResponse,
    UserFormatUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user-formats", tags=["User Formats"])

NOT_FOUND = {404: {"description": "Template not found", "model": ErrorResponse}}


@router.post(
    "",
    response_model=UserFormatResponse,
    status_code=201,
    summary="Create a formatting template",
)
async def create_format(
    data: UserFormatCreate,
    user: CurrentUser,
    db: DbSession,
    services: AppServices,
) -> UserFormatResponse:
    return await services.formats.create_format(db, user, data)


@router.get(
    "",
    response_model=UserFormatListResponse,
    summary="List templates with search, sorting and pagination",
    description=f"`limit` defaults to 10; values above {MAX_PAGE_LIMIT} are capped.",
)
async def list_formats(
    user: CurrentUser,
    db: DbSession,
    services: AppServices,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    search: Optional[str] = Query(default=None, max_length=200),
    sort_by: FormatSortField = Query(default="createdAt", alias="sortBy"),
    sort_order: SortOrder = Query(default="desc", alias="sortOrder"),
) -> UserFormatListResponse:
    query = FormatListQuery(
        page=page,
        limit=min(limit, MAX_PAGE_LIMIT),
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await services.formats.list_formats(db, user.id, query)


@router.get("/{format_id}", response_model=UserFormatResponse, responses=NOT_FOUND)
async def get_format(
    format_id: UUID, user: CurrentUser, db: DbSession, services: AppServices
) -> UserFormatResponse:
    return await services.formats.get_format(db, user.id, format_id)


@router.patch(
    "/{format_id}",
    response_model=UserFormatResponse,
    responses=NOT_FOUND,
    summary="Partially update a template",
)
async def update_format(
    format_id: UUID,
    data: UserFormatUpdate,
    user: CurrentUser,
    db: DbSession,
    services: AppServices,
) -> UserFormatResponse:
    return await services.formats.update_format(db, user.id, format_id, data)


@router.delete(
    "/{format_id}",
    response_model=MessageResponse,
    responses=NOT_FOUND,
    summary="Soft-delete a template",
)
async def delete_format(
    format_id: UUID, user: CurrentUser, db: DbSession, services: AppServices
) -> MessageResponse:
    return await services.formats.delete_format(db, user.id, format_id)

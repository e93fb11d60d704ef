"""
WhisperLog Backend — Template Store (UserFormat Service)
==========================================================

What:  CRUD over formatting templates, always scoped to the owning user.
Why:   Templates are the "shape" half of every processing request; the
       orchestrator depends on find_for_processing() to enforce ownership.
How:   Stateless service; every call receives the request's AsyncSession.

Read-side projection:
    Responses carry an owner summary (id, username, email). It is produced
    by an explicit join against `users` in the query, not by an ORM
    relationship on the model.

Ownership and soft delete:
    Every read filters on (user_id, is_active=True). A template owned by
    someone else is indistinguishable from a missing one (404).
"""

import logging
import uuid
from typing import Any, List, Tuple

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from whisperlog.exceptions import DatabaseError, NotFoundError
from whisperlog.models import User, UserFormat
from whisperlog.schemas.common import MessageResponse, PaginationMeta, UserSummary
from whisperlog.schemas.user_format import (
    FormatListQuery,
    UserFormatCreate,
    UserFormatListResponse,
    UserFormatResponse,
    UserFormatUpdate,
)
from whisperlog.services.query_utils import LIKE_ESCAPE, like_pattern, page_offset

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createdAt": UserFormat.created_at,
    "updatedAt": UserFormat.updated_at,
    "title": UserFormat.title,
}

# An explicit null clears these; for the rest it is ignored
NULLABLE_FIELDS = frozenset({"description", "instruction"})


def _to_response(fmt: UserFormat, username: str, email: str) -> UserFormatResponse:
    return UserFormatResponse(
        id=fmt.id,
        user=UserSummary(id=fmt.user_id, username=username, email=email),
        title=fmt.title,
        description=fmt.description,
        instruction=fmt.instruction,
        icon_name=fmt.icon_name,
        format=fmt.format,
        is_active=fmt.is_active,
        created_at=fmt.created_at,
        updated_at=fmt.updated_at,
    )


class FormatService:
    """Template store. Methods raise NotFoundError for missing or foreign templates."""

    def _owned(self, user_id: uuid.UUID) -> List[Any]:
        return [UserFormat.user_id == user_id, UserFormat.is_active.is_(True)]

    async def _load(
        self, db: AsyncSession, user_id: uuid.UUID, format_id: uuid.UUID
    ) -> Tuple[UserFormat, str, str]:
        result = await db.execute(
            select(UserFormat, User.username, User.email)
            .join(User, User.id == UserFormat.user_id)
            .where(UserFormat.id == format_id, *self._owned(user_id))
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(resource="format", resource_id=str(format_id))
        return row[0], row[1], row[2]

    async def create_format(
        self, db: AsyncSession, user: User, data: UserFormatCreate
    ) -> UserFormatResponse:
        fmt = UserFormat(
            user_id=user.id,
            title=data.title.strip(),
            description=data.description,
            instruction=data.instruction,
            icon_name=data.icon_name,
            format=data.format,
        )
        db.add(fmt)
        await db.flush()
        logger.info("Format %s created by user %s", fmt.id, user.id)
        return _to_response(fmt, user.username, user.email)

    async def list_formats(
        self, db: AsyncSession, user_id: uuid.UUID, query: FormatListQuery
    ) -> UserFormatListResponse:
        """
        Paginated list with optional case-insensitive search over title and
        description. `limit` is already capped by FormatListQuery.
        """
        filters = self._owned(user_id)
        if query.search and query.search.strip():
            pattern = like_pattern(query.search.strip())
            filters.append(
                or_(
                    UserFormat.title.ilike(pattern, escape=LIKE_ESCAPE),
                    UserFormat.description.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        order = asc if query.sort_order == "asc" else desc
        sort_column = SORT_COLUMNS[query.sort_by]

        try:
            total = (
                await db.execute(select(func.count(UserFormat.id)).where(*filters))
            ).scalar() or 0
            result = await db.execute(
                select(UserFormat, User.username, User.email)
                .join(User, User.id == UserFormat.user_id)
                .where(*filters)
                .order_by(order(sort_column), order(UserFormat.id))
                .offset(page_offset(query.page, query.limit))
                .limit(query.limit)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Database error listing formats: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve formats. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return UserFormatListResponse(
            data=[_to_response(fmt, username, email) for fmt, username, email in rows],
            pagination=PaginationMeta.build(query.page, query.limit, total),
        )

    async def get_format(
        self, db: AsyncSession, user_id: uuid.UUID, format_id: uuid.UUID
    ) -> UserFormatResponse:
        fmt, username, email = await self._load(db, user_id, format_id)
        return _to_response(fmt, username, email)

    async def update_format(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        format_id: uuid.UUID,
        data: UserFormatUpdate,
    ) -> UserFormatResponse:
        fmt, username, email = await self._load(db, user_id, format_id)
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_FIELDS
        }
        for field, value in changes.items():
            setattr(fmt, field, value)
        if changes:
            await db.flush()
            logger.info("Format %s updated (%s)", format_id, ", ".join(sorted(changes)))
        return _to_response(fmt, username, email)

    async def delete_format(
        self, db: AsyncSession, user_id: uuid.UUID, format_id: uuid.UUID
    ) -> MessageResponse:
        """Soft delete: the row stays so existing processed content keeps its template."""
        fmt, _, _ = await self._load(db, user_id, format_id)
        fmt.is_active = False
        await db.flush()
        logger.info("Format %s soft-deleted", format_id)
        return MessageResponse(message="User format deleted successfully")

    async def find_for_processing(
        self, db: AsyncSession, format_id: uuid.UUID, user_id: uuid.UUID
    ) -> UserFormat:
        """
        Lookup used only by the processing orchestrator.

        Returns the ORM entity (template body and instruction are needed, not
        the API projection).

        Raises:
            NotFoundError: absent, soft-deleted, or owned by another user.
        """
        try:
            result = await db.execute(
                select(UserFormat).where(UserFormat.id == format_id, *self._owned(user_id))
            )
            fmt = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error loading format %s: %s", format_id, str(e))
            raise DatabaseError(context={"format_id": str(format_id)})
        if fmt is None:
            raise NotFoundError(resource="format", resource_id=str(format_id))
        return fmt

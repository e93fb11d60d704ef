"""
WhisperLog Backend — Content Store (ProcessedContent Service)
===============================================================

What:  Persistence, listing, editing and statistics for processed content.
Why:   History views, search and the dashboard numbers all read from here;
       the orchestrator writes here once a provider call has succeeded.
How:   Stateless service over an AsyncSession. Every read joins UserFormat
       and User so responses carry the template summary and owner summary.

Filtering (list_contents):
    search       substring of processed text OR template title
    format_name  substring of template title
    content_type exact "text" | "audio"
    format_id    exact template id
    date_from    created_at >= bound
    date_to      created_at <= bound (a bare date covers the whole day)

Stats are aggregated in SQL, never by loading rows into Python.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, List

from sqlalchemy import asc, case, desc, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from whisperlog.exceptions import DatabaseError, NotFoundError
from whisperlog.models import ProcessedContent, User, UserFormat
from whisperlog.schemas.common import MessageResponse, PaginationMeta, UserSummary
from whisperlog.schemas.processed_content import (
    ContentListQuery,
    FormatSummary,
    ProcessedContentListResponse,
    ProcessedContentResponse,
    ProcessingMetadata,
    ProcessingStatsResponse,
    StatsOverview,
    TopFormat,
)
from whisperlog.services.query_utils import (
    LIKE_ESCAPE,
    like_pattern,
    page_offset,
    parse_date_bound,
)

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createdAt": ProcessedContent.created_at,
    "updatedAt": ProcessedContent.updated_at,
    "processingTime": ProcessedContent.processing_time_ms,
}

TOP_FORMATS_LIMIT = 5

# (record, format title, format icon, username, email)
_PROJECTION = (
    ProcessedContent,
    UserFormat.title,
    UserFormat.icon_name,
    User.username,
    User.email,
)


def _projected():
    return (
        select(*_PROJECTION)
        .join(UserFormat, UserFormat.id == ProcessedContent.format_id)
        .join(User, User.id == ProcessedContent.user_id)
    )


def _to_response(row: Any) -> ProcessedContentResponse:
    record, format_title, format_icon, username, email = row
    return ProcessedContentResponse(
        id=record.id,
        user=UserSummary(id=record.user_id, username=username, email=email),
        format=FormatSummary(id=record.format_id, title=format_title, icon_name=format_icon),
        content_type=record.content_type,
        original_content=record.original_content,
        processed_content=record.processed_content,
        processing_metadata=ProcessingMetadata(
            submission_date=record.submission_date,
            processing_time=record.processing_time_ms,
            ai_model=record.ai_model,
            attempts=record.attempts,
            placeholder_leak=record.placeholder_leak,
        ),
        is_active=record.is_active,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class ContentService:
    """Content store. Reads are always scoped to (user_id, is_active=True)."""

    def _owned(self, user_id: uuid.UUID) -> List[Any]:
        return [ProcessedContent.user_id == user_id, ProcessedContent.is_active.is_(True)]

    async def _load_row(self, db: AsyncSession, user_id: uuid.UUID, content_id: uuid.UUID) -> Any:
        result = await db.execute(
            _projected().where(ProcessedContent.id == content_id, *self._owned(user_id))
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(resource="processed content", resource_id=str(content_id))
        return row

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_record(
        self,
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        format_id: uuid.UUID,
        content_type: str,
        original_content: str,
        processed_content: str,
        submission_date: datetime,
        processing_time_ms: int,
        ai_model: str,
        attempts: int,
        placeholder_leak: bool = False,
    ) -> ProcessedContent:
        """
        Insert one processed record. Called only after a successful run.

        Raises:
            DatabaseError: the insert failed.
        """
        record = ProcessedContent(
            user_id=user_id,
            format_id=format_id,
            content_type=content_type,
            original_content=original_content,
            processed_content=processed_content,
            submission_date=submission_date,
            processing_time_ms=max(0, processing_time_ms),
            ai_model=ai_model,
            attempts=attempts,
            placeholder_leak=placeholder_leak,
        )
        try:
            db.add(record)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to store processed content: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to save processed content. Please try again.",
                context={"error_type": type(e).__name__},
            )
        logger.info(
            "Processed content %s stored (type=%s, model=%s, %dms)",
            record.id,
            content_type,
            ai_model,
            record.processing_time_ms,
        )
        return record

    async def update_processed_text(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        content_id: uuid.UUID,
        processed_content: str,
    ) -> ProcessedContentResponse:
        """Replace the output text after a manual edit; everything else is kept."""
        row = await self._load_row(db, user_id, content_id)
        row[0].processed_content = processed_content
        await db.flush()
        logger.info("Processed content %s edited", content_id)
        return _to_response(row)

    async def delete_content(
        self, db: AsyncSession, user_id: uuid.UUID, content_id: uuid.UUID
    ) -> MessageResponse:
        row = await self._load_row(db, user_id, content_id)
        row[0].is_active = False
        await db.flush()
        logger.info("Processed content %s soft-deleted", content_id)
        return MessageResponse(message="Processed content deleted successfully")

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_content(
        self, db: AsyncSession, user_id: uuid.UUID, content_id: uuid.UUID
    ) -> ProcessedContentResponse:
        return _to_response(await self._load_row(db, user_id, content_id))

    async def list_contents(
        self, db: AsyncSession, user_id: uuid.UUID, query: ContentListQuery
    ) -> ProcessedContentListResponse:
        """
        Filtered, sorted, paginated history for one user.

        Raises:
            ValidationError: date_from / date_to are not ISO 8601.
            DatabaseError: the query failed.
        """
        filters = self._owned(user_id)

        if query.search and query.search.strip():
            pattern = like_pattern(query.search.strip())
            filters.append(
                or_(
                    ProcessedContent.processed_content.ilike(pattern, escape=LIKE_ESCAPE),
                    UserFormat.title.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        if query.format_name and query.format_name.strip():
            filters.append(
                UserFormat.title.ilike(like_pattern(query.format_name.strip()), escape=LIKE_ESCAPE)
            )
        if query.content_type:
            filters.append(ProcessedContent.content_type == query.content_type)
        if query.format_id:
            filters.append(ProcessedContent.format_id == query.format_id)

        lower = parse_date_bound(query.date_from, "dateFrom")
        if lower:
            filters.append(ProcessedContent.created_at >= lower[0])
        upper = parse_date_bound(query.date_to, "dateTo", end=True)
        if upper:
            bound, inclusive = upper
            filters.append(
                ProcessedContent.created_at <= bound if inclusive else ProcessedContent.created_at < bound
            )

        order = asc if query.sort_order == "asc" else desc
        sort_column = SORT_COLUMNS[query.sort_by]

        try:
            total = (
                await db.execute(
                    select(func.count(ProcessedContent.id))
                    .join(UserFormat, UserFormat.id == ProcessedContent.format_id)
                    .where(*filters)
                )
            ).scalar() or 0
            result = await db.execute(
                _projected()
                .where(*filters)
                .order_by(order(sort_column), order(ProcessedContent.id))
                .offset(page_offset(query.page, query.limit))
                .limit(query.limit)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Database error listing processed content: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve processed content. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return ProcessedContentListResponse(
            data=[_to_response(row) for row in rows],
            pagination=PaginationMeta.build(query.page, query.limit, total),
        )

    async def list_by_format(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        format_id: uuid.UUID,
        query: ContentListQuery,
    ) -> ProcessedContentListResponse:
        """History for one template; 404 when the template is missing or not owned."""
        owned = (
            await db.execute(
                select(UserFormat.id).where(
                    UserFormat.id == format_id,
                    UserFormat.user_id == user_id,
                    UserFormat.is_active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if owned is None:
            raise NotFoundError(resource="format", resource_id=str(format_id))
        return await self.list_contents(
            db, user_id, query.model_copy(update={"format_id": format_id})
        )

    async def get_stats(self, db: AsyncSession, user_id: uuid.UUID) -> ProcessingStatsResponse:
        """Totals per content type, processing time aggregates, and the five most used templates."""
        filters = self._owned(user_id)
        try:
            overview = (
                await db.execute(
                    select(
                        func.count(ProcessedContent.id),
                        func.sum(case((ProcessedContent.content_type == "text", 1), else_=0)),
                        func.sum(case((ProcessedContent.content_type == "audio", 1), else_=0)),
                        func.avg(ProcessedContent.processing_time_ms),
                        func.sum(ProcessedContent.processing_time_ms),
                    ).where(*filters)
                )
            ).one()

            usage = func.count(ProcessedContent.id).label("usage")
            top_rows = (
                await db.execute(
                    select(UserFormat.id, UserFormat.title, UserFormat.icon_name, usage)
                    .join(ProcessedContent, ProcessedContent.format_id == UserFormat.id)
                    .where(*filters)
                    .group_by(UserFormat.id, UserFormat.title, UserFormat.icon_name)
                    .order_by(desc(usage), asc(UserFormat.title))
                    .limit(TOP_FORMATS_LIMIT)
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error("Database error computing stats: %s", str(e), exc_info=True)
            raise DatabaseError(context={"error_type": type(e).__name__})

        total, text_count, audio_count, avg_time, total_time = overview
        return ProcessingStatsResponse(
            overview=StatsOverview(
                total_processed=total or 0,
                text_content=int(text_count or 0),
                audio_content=int(audio_count or 0),
                avg_processing_time=round(float(avg_time or 0), 2),
                total_processing_time=int(total_time or 0),
            ),
            top_formats=[
                TopFormat(format_id=fid, format_title=title, format_icon=icon, count=count)
                for fid, title, icon, count in top_rows
            ],
        )

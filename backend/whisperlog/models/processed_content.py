"""
WhisperLog Backend — ProcessedContent Model
=============================================

What:  ORM model for `processed_contents` — one row per successful processing request.
Why:   Pairs what the user submitted with what the AI produced, plus the
       metadata needed for history views and usage statistics.

Invariants:
    - format_id always points at a template owned by the same user_id
      (enforced by the orchestrator's ownership lookup before insert).
    - processing_time_ms >= 0 (CheckConstraint), measured from request
      acceptance to provider response.
    - Rows are only written after a successful formatting result; a failed
      request leaves no trace here.
    - Soft-deleted rows (is_active=False) stay in the table but are excluded
      from all API reads.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from whisperlog.database import Base
from whisperlog.models.user import utcnow


class ProcessedContent(Base):
    """Stored input/output pair for a processing request."""

    __tablename__ = "processed_contents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    format_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_formats.id", ondelete="CASCADE"), nullable=False
    )
    content_type: Mapped[str] = mapped_column(String(10), nullable=False, comment="text | audio")
    original_content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Submitted text, base64 audio, a redaction marker, or a file:// reference",
    )
    processed_content: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Processing metadata ───────────────────────────────────────────────
    submission_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_model: Mapped[str] = mapped_column(String(100), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    placeholder_leak: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True when the output still contained template placeholder tokens",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("processing_time_ms >= 0", name="ck_processed_contents_time_non_negative"),
        Index("idx_processed_contents_owner_active", "user_id", "is_active", "created_at"),
        Index("idx_processed_contents_format", "format_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProcessedContent(id={self.id}, type='{self.content_type}', "
            f"model='{self.ai_model}')>"
        )

"""
WhisperLog Backend — UserFormat (Template) Model
==================================================

What:  ORM model for the `user_formats` table — user-owned formatting templates.
Why:   A template is the markdown skeleton the AI must follow, e.g.

           # Meeting Notes - {date}
           **Attendees:** {attendees}
           ## Action Items
           - {action_item}

       The `{name}` tokens are placeholders. They describe the shape of the
       output only; they must never appear in a generated document.

Soft delete:
    Rows are never removed. `is_active=False` hides a template from every
    read path while keeping processed content that references it intact.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from whisperlog.database import Base
from whisperlog.models.user import utcnow


class UserFormat(Base):
    """A formatting template owned by one user."""

    __tablename__ = "user_formats"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    instruction: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Extra guidance passed to the AI alongside the template"
    )
    icon_name: Mapped[str] = mapped_column(String(50), nullable=False, default="document")
    format: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Markdown skeleton with {placeholder} tokens"
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

    # Every list query filters on (user_id, is_active) and sorts by created_at
    __table_args__ = (
        Index("idx_user_formats_owner_active", "user_id", "is_active", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<UserFormat(id={self.id}, title='{self.title}', active={self.is_active})>"

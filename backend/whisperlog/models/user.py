"""
WhisperLog Backend — User and OTP Models
==========================================

What:  ORM models for accounts (`users`) and one-time passwords (`otps`).
Why:   Every template and processed record is owned by a user; password
       resets are verified with short-lived, attempt-limited OTPs.

Table Design Rationale:
    - Emails are stored lower-cased so the unique index is case-insensitive
      in practice ("John@x.com" and "john@x.com" collide).
    - password_hash is nullable: accounts created by an external identity
      provider have no local password.
    - OTP codes are never stored in clear; otp_hash is a bcrypt hash.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from whisperlog.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A registered account."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, comment="Public display name"
    )
    email: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, comment="Lower-cased login email"
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="bcrypt hash; NULL for external-identity accounts"
    )
    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
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

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class Otp(Base):
    """
    A one-time password issued for a verification flow.

    Lifecycle:
        1. Created by forgot-password (is_used=False, attempts=0)
        2. Each wrong submission increments attempts
        3. Marked used on success, or once attempts reach the configured limit
        4. Expired or used rows are never matched again
    """

    __tablename__ = "otps"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    otp_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="email_verification | password_reset"
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_otps_email_type", "email", "type"),
    )

    def __repr__(self) -> str:
        return f"<Otp(email='{self.email}', type='{self.type}', used={self.is_used})>"

"""Create users, otps, user_formats and processed_contents

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

Rollback: downgrade() drops all four tables (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("username", sa.String(50), nullable=False, comment="Public display name"),
        sa.Column("email", sa.String(255), nullable=False, comment="Lower-cased login email"),
        sa.Column(
            "password_hash",
            sa.String(255),
            nullable=True,
            comment="bcrypt hash; NULL for external-identity accounts",
        ),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "otps",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("otp_hash", sa.String(255), nullable=False),
        sa.Column(
            "type",
            sa.String(32),
            nullable=False,
            comment="email_verification | password_reset",
        ),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_otps_email_type", "otps", ["email", "type"])

    op.create_table(
        "user_formats",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("instruction", sa.Text(), nullable=True),
        sa.Column("icon_name", sa.String(50), nullable=False, server_default=sa.text("'document'")),
        sa.Column("format", sa.Text(), nullable=False, comment="Markdown skeleton with {placeholder} tokens"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_user_formats_owner_active",
        "user_formats",
        ["user_id", "is_active", "created_at"],
    )

    op.create_table(
        "processed_contents",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("format_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content_type", sa.String(10), nullable=False, comment="text | audio"),
        sa.Column(
            "original_content",
            sa.Text(),
            nullable=False,
            comment="Submitted text, base64 audio, a redaction marker, or a file:// reference",
        ),
        sa.Column("processed_content", sa.Text(), nullable=False),
        sa.Column("submission_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("processing_time_ms", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("ai_model", sa.String(100), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column(
            "placeholder_leak",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
            comment="True when the output still contained template placeholder tokens",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("processing_time_ms >= 0", name="ck_processed_contents_time_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["format_id"], ["user_formats.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_processed_contents_owner_active",
        "processed_contents",
        ["user_id", "is_active", "created_at"],
    )
    op.create_index("idx_processed_contents_format", "processed_contents", ["format_id"])


def downgrade() -> None:
    op.drop_index("idx_processed_contents_format", table_name="processed_contents")
    op.drop_index("idx_processed_contents_owner_active", table_name="processed_contents")
    op.drop_table("processed_contents")
    op.drop_index("idx_user_formats_owner_active", table_name="user_formats")
    op.drop_table("user_formats")
    op.drop_index("idx_otps_email_type", table_name="otps")
    op.drop_table("otps")
    op.drop_table("users")

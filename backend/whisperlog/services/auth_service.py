"""
WhisperLog Backend — Authentication Service
=============================================

What:  Registration, login, profile, and OTP-based password reset.
Why:   Every template and processed record is owned by an account; the API
       identifies that account with a bearer token issued here.
How:   bcrypt hashes for passwords and OTP codes, python-jose access tokens,
       EmailService for the welcome mail and reset codes.

Password reset flow:
    POST /auth/forgot-password  → 6-digit OTP, hashed, expires after
                                  otp_expire_minutes; older unused codes for
                                  the same email are retired.
    POST /auth/reset-password   → newest live OTP compared; wrong codes
                                  count towards otp_max_attempts, after which
                                  the OTP is burned.

The forgot-password response never reveals whether an account exists.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from whisperlog.config import Settings, settings
from whisperlog.exceptions import ConflictError, UnauthorizedError, ValidationError
from whisperlog.models import Otp, User
from whisperlog.models.user import utcnow
from whisperlog.schemas.auth import AuthResponse
from whisperlog.schemas.common import MessageResponse, UserSummary
from whisperlog.security import create_access_token, hash_password, verify_password
from whisperlog.services.email_service import EmailService

logger = logging.getLogger(__name__)

OTP_TYPE_PASSWORD_RESET = "password_reset"
FORGOT_PASSWORD_MESSAGE = "If the email exists, you will receive a password reset OTP"


def generate_otp() -> str:
    """Uniformly random 6-digit code, never starting with 0."""
    return str(secrets.randbelow(900000) + 100000)


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        access_token=create_access_token(user),
        user=UserSummary(id=user.id, username=user.username, email=user.email),
    )


class AuthService:
    def __init__(self, config: Optional[Settings] = None, email_service: Optional[EmailService] = None):
        self.config = config or settings
        self.email = email_service or EmailService(self.config)

    async def register(self, db: AsyncSession, username: str, email: str, password: str) -> AuthResponse:
        """
        Create an account and sign it in.

        Raises:
            ConflictError: email (case-insensitive) or username already taken.
        """
        email = email.strip().lower()
        username = username.strip()

        existing = (
            await db.execute(
                select(User.email, User.username).where(
                    or_(User.email == email, User.username == username)
                )
            )
        ).first()
        if existing is not None:
            field = "email" if existing.email == email else "username"
            raise ConflictError(
                message=f"A user with this {field} already exists",
                context={"field": field},
            )

        user = User(username=username, email=email, password_hash=hash_password(password, self.config.bcrypt_rounds))
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # lost a race with a concurrent registration
            raise ConflictError(message="A user with this email or username already exists")

        logger.info("User %s registered", user.id)
        await self.email.send_welcome_email(user.email, user.username)
        return _auth_response(user)

    async def login(self, db: AsyncSession, email: str, password: str) -> AuthResponse:
        user = (
            await db.execute(
                select(User).where(User.email == email.strip().lower(), User.is_active.is_(True))
            )
        ).scalar_one_or_none()
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login attempt for %s", email)
            raise UnauthorizedError(message="Invalid credentials")
        logger.info("User %s logged in", user.id)
        return _auth_response(user)

    def profile(self, user: User) -> UserSummary:
        return UserSummary(id=user.id, username=user.username, email=user.email)

    async def forgot_password(self, db: AsyncSession, email: str) -> MessageResponse:
        """
        Issue a reset code for an existing active account.

        Raises:
            EmailDeliveryError: the code could not be sent.
        """
        email = email.strip().lower()
        user = (
            await db.execute(select(User).where(User.email == email, User.is_active.is_(True)))
        ).scalar_one_or_none()
        if user is None:
            logger.info("Password reset requested for unknown email")
            return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        await db.execute(
            update(Otp)
            .where(
                Otp.email == email,
                Otp.type == OTP_TYPE_PASSWORD_RESET,
                Otp.is_used.is_(False),
            )
            .values(is_used=True)
        )

        code = generate_otp()
        db.add(
            Otp(
                email=email,
                otp_hash=hash_password(code, self.config.bcrypt_rounds),
                type=OTP_TYPE_PASSWORD_RESET,
                expires_at=utcnow() + timedelta(minutes=self.config.otp_expire_minutes),
            )
        )
        await db.flush()

        await self.email.send_otp_email(email, code)
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    async def reset_password(
        self, db: AsyncSession, email: str, otp: str, new_password: str
    ) -> MessageResponse:
        """
        Verify a reset code and set a new password.

        Raises:
            ValidationError: no live code, or the code does not match.
        """
        email = email.strip().lower()
        record = (
            await db.execute(
                select(Otp)
                .where(
                    Otp.email == email,
                    Otp.type == OTP_TYPE_PASSWORD_RESET,
                    Otp.is_used.is_(False),
                    Otp.expires_at > utcnow(),
                )
                .order_by(Otp.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        if record is None:
            raise ValidationError(message="Invalid or expired OTP", field="otp")

        if not verify_password(otp, record.otp_hash):
            record.attempts += 1
            if record.attempts >= self.config.otp_max_attempts:
                record.is_used = True
                logger.warning("OTP for %s burned after %d wrong attempts", email, record.attempts)
            # the request fails, but the attempt count must survive the rollback
            await db.commit()
            raise ValidationError(message="Invalid OTP", field="otp")

        user = (
            await db.execute(select(User).where(User.email == email, User.is_active.is_(True)))
        ).scalar_one_or_none()
        if user is None:
            raise ValidationError(message="Invalid or expired OTP", field="otp")

        user.password_hash = hash_password(new_password, self.config.bcrypt_rounds)
        record.is_used = True
        await db.flush()
        logger.info("Password reset for user %s", user.id)
        return MessageResponse(message="Password reset successfully")

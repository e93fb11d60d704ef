"""
WhisperLog Backend — Service Container and FastAPI Dependencies
=================================================================

What:  Builds the service graph once per application and exposes it, plus
       the authenticated user, to route handlers.
Why:   Adapters and services are created by the app factory and stored on
       `app.state`, so tests can hand create_app() a container with fake
       adapters instead of patching module globals.
"""

import uuid
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from whisperlog.config import Settings, settings
from whisperlog.database import get_db_session
from whisperlog.exceptions import UnauthorizedError
from whisperlog.models import User
from whisperlog.security import decode_access_token
from whisperlog.services.audio_service import AudioStorageService
from whisperlog.services.auth_service import AuthService
from whisperlog.services.content_service import ContentService
from whisperlog.services.email_service import EmailService
from whisperlog.services.format_service import FormatService
from whisperlog.services.processing_service import ContentProcessingService
from whisperlog.services.providers.registry import ProviderRegistry, build_provider_registry


@dataclass
class Services:
    formats: FormatService
    contents: ContentService
    processing: ContentProcessingService
    auth: AuthService
    email: EmailService
    providers: ProviderRegistry
    audio: AudioStorageService


def build_services(
    config: Optional[Settings] = None,
    registry: Optional[ProviderRegistry] = None,
) -> Services:
    """Wire every service from settings; `registry` overrides the vendor adapters."""
    config = config or settings
    registry = registry or build_provider_registry(config)
    formats = FormatService()
    contents = ContentService()
    audio = AudioStorageService(
        storage_root=config.storage_root,
        mode=config.audio_storage_mode,
        max_size=config.max_audio_size,
    )
    email = EmailService(config)
    processing = ContentProcessingService(
        registry,
        formats,
        contents,
        audio,
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay,
        max_wait=config.retry_max_wait,
    )
    return Services(
        formats=formats,
        contents=contents,
        processing=processing,
        auth=AuthService(config, email),
        email=email,
        providers=registry,
        audio=audio,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)] = None,
) -> User:
    """
    Resolve the bearer token to an active user.

    Raises:
        UnauthorizedError: token missing, invalid, expired, or the account
        no longer exists or is inactive.
    """
    if credentials is None:
        raise UnauthorizedError()

    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise UnauthorizedError(message="Invalid or expired token")

    try:
        user_id = uuid.UUID(claims["sub"])
    except ValueError:
        raise UnauthorizedError(message="Invalid or expired token")

    user = (
        await db.execute(select(User).where(User.id == user_id, User.is_active.is_(True)))
    ).scalar_one_or_none()
    if user is None:
        raise UnauthorizedError(message="User not found or inactive")
    return user


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentUser = Annotated[User, Depends(get_current_user)]
AppServices = Annotated[Services, Depends(get_services)]

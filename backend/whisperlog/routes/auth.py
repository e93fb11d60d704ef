"""
WhisperLog Backend — Authentication Route Handlers
====================================================

What:  Account registration, login, profile and password reset under /auth.
How:   Thin handlers over AuthService; tokens are issued as bearer JWTs.
"""

from fastapi import APIRouter

from whisperlog.dependencies import AppServices, CurrentUser, DbSession
from whisperlog.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from whisperlog.schemas.common import ErrorResponse, MessageResponse, UserSummary

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=201,
    responses={409: {"description": "Email or username taken", "model": ErrorResponse}},
)
async def register(body: RegisterRequest, db: DbSession, services: AppServices) -> AuthResponse:
    return await services.auth.register(db, body.username, body.email, body.password)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
)
async def login(body: LoginRequest, db: DbSession, services: AppServices) -> AuthResponse:
    return await services.auth.login(db, body.email, body.password)


@router.get("/profile", response_model=UserSummary, summary="Identity of the bearer token's user")
async def profile(user: CurrentUser, services: AppServices) -> UserSummary:
    return services.auth.profile(user)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    responses={502: {"description": "Reset email could not be sent", "model": ErrorResponse}},
    summary="Email a password reset code",
    description="The response is the same whether or not the email belongs to an account.",
)
async def forgot_password(
    body: ForgotPasswordRequest, db: DbSession, services: AppServices
) -> MessageResponse:
    return await services.auth.forgot_password(db, body.email)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses={400: {"description": "Invalid or expired code", "model": ErrorResponse}},
)
async def reset_password(
    body: ResetPasswordRequest, db: DbSession, services: AppServices
) -> MessageResponse:
    return await services.auth.reset_password(db, body.email, body.otp, body.new_password)

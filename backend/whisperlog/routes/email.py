"""SMTP diagnostics for operators."""

from fastapi import APIRouter

from whisperlog.dependencies import AppServices, CurrentUser
from whisperlog.schemas.auth import EmailConnectionResponse

router = APIRouter(prefix="/email", tags=["Email"])


@router.get(
    "/test-connection",
    response_model=EmailConnectionResponse,
    summary="Check that the configured SMTP server accepts a login",
)
async def test_connection(user: CurrentUser, services: AppServices) -> EmailConnectionResponse:
    if not services.email.is_configured:
        return EmailConnectionResponse(
            configured=False,
            connected=False,
            message="Email is not configured. Set MAIL_HOST and MAIL_FROM.",
        )
    connected = await services.email.test_connection()
    return EmailConnectionResponse(
        configured=True,
        connected=connected,
        message="SMTP connection successful" if connected else "SMTP connection failed",
    )

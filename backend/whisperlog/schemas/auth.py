"""Request and response bodies for /auth and /email."""

from pydantic import BaseModel, EmailStr, Field

from whisperlog.schemas.common import CamelModel, UserSummary

# bcrypt only looks at the first 72 bytes of a password
PASSWORD_MAX_LENGTH = 72


class RegisterRequest(BaseModel):
    username: str = Field(
        min_length=3,
        max_length=50,
        pattern=r"^[A-Za-z0-9_.-]+$",
        description="Letters, digits, dot, dash and underscore",
    )
    email: EmailStr
    password: str = Field(min_length=6, max_length=PASSWORD_MAX_LENGTH)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class AuthResponse(BaseModel):
    """Token envelope returned by register and login."""

    access_token: str
    token_type: str = "bearer"
    user: UserSummary


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    email: EmailStr
    otp: str = Field(pattern=r"^\d{6}$", description="6-digit code from the reset email")
    new_password: str = Field(min_length=6, max_length=PASSWORD_MAX_LENGTH)


class EmailConnectionResponse(BaseModel):
    configured: bool
    connected: bool
    message: str

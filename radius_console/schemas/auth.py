"""Authentication request and response schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from radius_console.schemas.users import UserResponse


def _check_password_strength(value: str) -> str:
    if not any(c.isalpha() for c in value) or not any(c.isdigit() for c in value):
        raise ValueError("Password must contain letters and digits")
    return value


class LoginRequest(BaseModel):
    """Credentials for ``POST /api/auth/login``."""

    username: str = Field(..., min_length=1, max_length=256, examples=["admin"])
    password: str = Field(..., min_length=1, max_length=256)
    totp_code: Optional[str] = Field(
        None,
        description="6-digit code; required when two-factor is enabled",
        examples=["123456"],
    )


class LoginResponse(BaseModel):
    """Tokens, or a two-factor challenge when ``requires_totp`` is true."""

    requires_totp: bool = Field(default=False, description="Resend with totp_code to finish login")
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[datetime] = None
    user: Optional[UserResponse] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "requires_totp": False,
                "access_token": "eyJhbGciOiJIUzI1NiIs...",
                "refresh_token": "q1w2e3...",
                "token_type": "bearer",
                "expires_at": "2026-01-13T12:15:00Z",
            }
        }
    )


class RegisterRequest(BaseModel):
    """Self-registration of a console account (role ``User``)."""

    username: str = Field(..., min_length=3, max_length=256, pattern=r"^[A-Za-z0-9_.@-]+$")
    email: str = Field(..., max_length=256, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require letters and digits."""
        return _check_password_strength(v)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require letters and digits."""
        return _check_password_strength(v)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=256)


class ResetPasswordRequest(BaseModel):
    """Administrator password reset by email."""

    email: str = Field(..., max_length=256)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require letters and digits."""
        return _check_password_strength(v)


class CurrentUserResponse(UserResponse):
    """``GET /api/auth/me``"""

    permissions: List[str] = Field(default_factory=list)

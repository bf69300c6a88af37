"""Auth request and response models with validation."""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from inkwell.models.user import Role

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
PASSWORD_SPECIALS = "@$!%*?&#"
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&#])[A-Za-z\d@$!%*?&#]{8,}$"
)


def _check_password_strength(v: str) -> str:
    if not PASSWORD_PATTERN.match(v):
        raise ValueError(
            "Password must contain uppercase, lowercase, number, and special "
            f"character ({PASSWORD_SPECIALS})"
        )
    return v


class RegisterRequest(BaseModel):
    """Registration payload.

    Attributes:
        username: 3-20 chars, letters, numbers and underscores
        email: Valid email address (stored lowercased)
        password: At least 8 chars with upper, lower, digit and special char
    """

    username: str = Field(..., min_length=3, max_length=20)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)

    @field_validator("username")
    @classmethod
    def username_valid_chars(cls, v: str) -> str:
        """Ensure username contains only alphanumeric characters or underscores."""
        if not USERNAME_PATTERN.match(v):
            raise ValueError(
                "Username must contain only letters, numbers, and underscores"
            )
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class LoginRequest(BaseModel):
    """Login credentials.

    Attributes:
        identifier: Email address or username
        password: Account password
        remember_me: Issue a 30-day refresh token instead of 7 days
    """

    identifier: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)
    remember_me: bool = False

    @field_validator("identifier")
    @classmethod
    def identifier_not_blank(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Email or username is required")
        return stripped


class RefreshRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair.

    The token may also arrive in the refresh cookie instead of the body.
    """

    refresh_token: Optional[str] = None


class LogoutRequest(BaseModel):
    """Request to revoke the caller's current refresh token."""

    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Password reset using an emailed token."""

    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=72)
    remember_me: bool = False

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class UserSummary(BaseModel):
    """Compact user representation for API responses."""

    id: UUID
    username: str
    email: str
    role: Role
    is_email_verified: bool
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime


class LoginResponse(BaseModel):
    """Successful authentication response with token pair.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived opaque token for obtaining new access tokens
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
        user: Summary of the authenticated user
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")
    user: UserSummary


class TokenResponse(BaseModel):
    """Rotated token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class MessageResponse(BaseModel):
    success: bool = True
    message: str

"""User and refresh token models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Role(str, Enum):
    """Authorization role of a user."""

    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


class User(BaseModel):
    """A registered user of the platform, without credential fields."""

    id: UUID
    username: str
    email: str
    role: Role = Role.USER
    is_email_verified: bool = False
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserRecord(User):
    """Full user row as held by the credential store.

    Carries the password hash and the hashed email-verification and
    password-reset tokens. Never serialize this to a client; use
    ``to_public()``.
    """

    password_hash: str
    email_verification_token_hash: Optional[str] = None
    email_verification_expires_at: Optional[datetime] = None
    password_reset_token_hash: Optional[str] = None
    password_reset_expires_at: Optional[datetime] = None

    def to_public(self) -> User:
        """Strip credential and token fields."""
        return User(**self.model_dump(include=set(User.model_fields)))


class RefreshToken(BaseModel):
    """A server-tracked refresh token (stored hashed)."""

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    created_at: datetime
    created_by_ip: str
    user_agent: str
    revoked_at: Optional[datetime] = None
    revoked_by_ip: Optional[str] = None
    replaced_by_token_hash: Optional[str] = None
    is_rotated: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and not self.is_expired(now)


class AuthenticatedPrincipal(BaseModel):
    """Minimal identity attached to a request after access-token verification."""

    id: UUID
    role: Role
    username: str
    email: str

"""Token value objects passed between the auth services."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from inkwell.models.user import Role, User


class AccessTokenClaims(BaseModel):
    """Verified claims of a signed access token."""

    user_id: UUID
    email: str
    role: Role
    issued_at: int
    expires_at: int


class EphemeralToken(BaseModel):
    """A single-use token for email verification or password reset.

    ``plaintext`` is handed to the caller once for out-of-band delivery;
    only ``token_hash`` is persisted.
    """

    plaintext: str
    token_hash: str
    expires_at: datetime


class TokenPair(BaseModel):
    """Access token plus opaque refresh token."""

    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


class AuthResult(TokenPair):
    """Token pair together with the authenticated user."""

    user: User


"""Models package exports."""

from inkwell.models.token import AccessTokenClaims, AuthResult, EphemeralToken, TokenPair
from inkwell.models.user import (
    AuthenticatedPrincipal,
    RefreshToken,
    Role,
    User,
    UserRecord,
)

__all__ = [
    "AccessTokenClaims",
    "AuthResult",
    "AuthenticatedPrincipal",
    "EphemeralToken",
    "RefreshToken",
    "Role",
    "TokenPair",
    "User",
    "UserRecord",
]

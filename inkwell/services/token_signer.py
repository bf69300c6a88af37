"""Signed, short-lived access tokens (stateless JWT)."""

from datetime import timedelta
from typing import Optional
from uuid import UUID

import jwt
import structlog

from inkwell.models.token import AccessTokenClaims
from inkwell.models.user import Role
from inkwell.services.clock import Clock

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 15


class TokenSigner:
    """Issues and verifies HS256 access tokens.

    The signing secret is injected at construction and never changes for
    the lifetime of the signer. Expiry is checked against the injected
    clock rather than wall time.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
        clock: Optional[Clock] = None,
    ):
        if not secret or not secret.strip():
            raise RuntimeError("JWT secret must be set")
        self._secret = secret
        self.algorithm = algorithm
        self.ttl_minutes = ttl_minutes
        self.clock = clock or Clock()

    @property
    def ttl_seconds(self) -> int:
        return self.ttl_minutes * 60

    def issue(self, user_id: UUID, email: str, role: Role) -> str:
        """Create a signed JWT access token.

        Args:
            user_id: User UUID (placed in 'sub' claim)
            email: User's email address
            role: User's role

        Returns:
            Encoded JWT string
        """
        now = self.clock.now()
        issued_at = int(now.timestamp())
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": Role(role).value,
            "iat": issued_at,
            "exp": int((now + timedelta(minutes=self.ttl_minutes)).timestamp()),
        }
        token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        logger.debug(
            "access_token_created",
            user_id=str(user_id),
            expires_minutes=self.ttl_minutes,
        )
        return token

    def verify(self, token: str) -> Optional[AccessTokenClaims]:
        """Decode and validate an access token.

        Fails closed: a bad signature, expiry, or malformed payload all
        return None.

        Returns:
            AccessTokenClaims, or None if the token is not valid
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={
                    "require": ["sub", "iat", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
            claims = AccessTokenClaims(
                user_id=UUID(payload["sub"]),
                email=payload["email"],
                role=payload["role"],
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (jwt.InvalidTokenError, KeyError, ValueError, TypeError) as e:
            logger.info("access_token_invalid", reason=type(e).__name__)
            return None

        now_ts = self.clock.now().timestamp()
        if now_ts >= claims.expires_at:
            logger.info("access_token_expired", user_id=str(claims.user_id))
            return None

        return claims

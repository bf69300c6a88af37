"""One-time tokens for email verification and password reset."""

import hashlib
import secrets
from datetime import timedelta
from typing import Optional

from inkwell.models.token import EphemeralToken
from inkwell.services.clock import Clock

EPHEMERAL_TOKEN_EXPIRE_MINUTES = 10
EPHEMERAL_TOKEN_BYTES = 32


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest used to store and look up opaque tokens."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class EphemeralTokenIssuer:
    """Generates high-entropy single-use tokens.

    Email verification and password reset each use their own instance;
    the mechanism is identical. A plain hash is enough here because the
    tokens carry 256 bits of entropy and are consumed on first use.
    """

    def __init__(
        self,
        ttl_minutes: int = EPHEMERAL_TOKEN_EXPIRE_MINUTES,
        clock: Optional[Clock] = None,
    ):
        self.ttl_minutes = ttl_minutes
        self.clock = clock or Clock()

    def issue(self) -> EphemeralToken:
        plaintext = secrets.token_hex(EPHEMERAL_TOKEN_BYTES)
        return EphemeralToken(
            plaintext=plaintext,
            token_hash=hash_token(plaintext),
            expires_at=self.clock.now() + timedelta(minutes=self.ttl_minutes),
        )

    def match_hash(self, plaintext: str) -> str:
        """Hash a presented token for lookup."""
        return hash_token(plaintext)

"""bcrypt password hashing, offloaded to a worker thread."""

import asyncio

import bcrypt
import structlog

from inkwell.services.exceptions import PasswordHashingError

logger = structlog.get_logger(__name__)


class PasswordHasher:
    """Salted, adaptive one-way password hashing.

    bcrypt is CPU-bound, so both operations run in ``asyncio.to_thread``
    and do not stall the event loop.
    """

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def _hash_sync(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def _verify_sync(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                password_hash.encode("utf-8"),
            )
        except (ValueError, TypeError):
            return False

    async def hash(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string

        Raises:
            PasswordHashingError: If bcrypt fails
        """
        try:
            return await asyncio.to_thread(self._hash_sync, password)
        except Exception as e:
            logger.error("password_hash_failed", error_type=type(e).__name__)
            raise PasswordHashingError() from e

    async def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        A malformed hash is treated as a mismatch.

        Returns:
            True if the password matches, False otherwise
        """
        if not password_hash:
            return False
        return await asyncio.to_thread(self._verify_sync, password, password_hash)

"""Refresh token persistence with rotation and revocation metadata."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from inkwell.models.user import RefreshToken
from inkwell.services.ephemeral_tokens import hash_token

logger = structlog.get_logger(__name__)

TOKEN_COLUMNS = """
    id, user_id, token_hash, expires_at, created_at, created_by_ip, user_agent,
    revoked_at, revoked_by_ip, replaced_by_token_hash, is_rotated
"""


def _row_to_token(row) -> RefreshToken:
    return RefreshToken(
        id=row["id"],
        user_id=row["user_id"],
        token_hash=row["token_hash"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        created_by_ip=row["created_by_ip"],
        user_agent=row["user_agent"],
        revoked_at=row["revoked_at"],
        revoked_by_ip=row["revoked_by_ip"],
        replaced_by_token_hash=row["replaced_by_token_hash"],
        is_rotated=row["is_rotated"],
    )


def _affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg command status like 'UPDATE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class RefreshTokenStore:
    """asyncpg-backed refresh token store.

    Raw tokens never reach the database: every method hashes the token it
    is given and works on ``token_hash``. Revocation is terminal; updates
    only ever touch rows whose ``revoked_at`` is still NULL.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create(
        self,
        user_id: UUID,
        token: str,
        expires_at: datetime,
        created_by_ip: str,
        user_agent: str,
        now: datetime,
    ) -> RefreshToken:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO refresh_tokens (id, user_id, token_hash, expires_at, created_at,
                                            created_by_ip, user_agent, is_rotated)
                VALUES ($1, $2, $3, $4, $5, $6, $7, FALSE)
                RETURNING {TOKEN_COLUMNS}
                """,
                uuid4(),
                user_id,
                hash_token(token),
                expires_at,
                now,
                created_by_ip,
                user_agent,
            )

        logger.info(
            "refresh_token_created",
            user_id=str(user_id),
            token_id=str(row["id"]),
            expires_at=expires_at.isoformat(),
        )
        return _row_to_token(row)

    async def find(self, token: str) -> Optional[RefreshToken]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {TOKEN_COLUMNS} FROM refresh_tokens WHERE token_hash = $1",
                hash_token(token),
            )
        return _row_to_token(row) if row else None

    async def revoke(
        self, token: str, revoked_by_ip: str, now: datetime
    ) -> Optional[RefreshToken]:
        """Revoke a single token.

        Revoking an already-revoked token leaves it untouched and returns
        its current state. Returns None for an unknown token.
        """
        token_hash = hash_token(token)
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE refresh_tokens
                SET revoked_at = $2, revoked_by_ip = $3
                WHERE token_hash = $1 AND revoked_at IS NULL
                RETURNING {TOKEN_COLUMNS}
                """,
                token_hash,
                now,
                revoked_by_ip,
            )
            if row is None:
                row = await conn.fetchrow(
                    f"SELECT {TOKEN_COLUMNS} FROM refresh_tokens WHERE token_hash = $1",
                    token_hash,
                )
                return _row_to_token(row) if row else None

        logger.info("refresh_token_revoked", user_id=str(row["user_id"]), ip=revoked_by_ip)
        return _row_to_token(row)

    async def revoke_and_rotate(
        self, old_token: str, revoked_by_ip: str, new_token: str, now: datetime
    ) -> Optional[RefreshToken]:
        """Revoke ``old_token`` and link it to its successor.

        Conditional on the old token being active at ``now``: of two
        concurrent callers only one gets the row back; the other gets None.
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE refresh_tokens
                SET revoked_at = $2,
                    revoked_by_ip = $3,
                    replaced_by_token_hash = $4,
                    is_rotated = TRUE
                WHERE token_hash = $1
                  AND revoked_at IS NULL
                  AND expires_at > $2
                RETURNING {TOKEN_COLUMNS}
                """,
                hash_token(old_token),
                now,
                revoked_by_ip,
                hash_token(new_token),
            )

        if row is None:
            logger.warning("refresh_token_rotation_lost", ip=revoked_by_ip)
            return None

        logger.info("refresh_token_rotated", user_id=str(row["user_id"]), ip=revoked_by_ip)
        return _row_to_token(row)

    async def revoke_all_for_user(
        self, user_id: UUID, revoked_by_ip: str, now: datetime
    ) -> int:
        """Revoke every still-unrevoked token for a user.

        Returns:
            Number of tokens revoked
        """
        async with self._pool.acquire() as conn:
            status = await conn.execute(
                """
                UPDATE refresh_tokens
                SET revoked_at = $2, revoked_by_ip = $3
                WHERE user_id = $1 AND revoked_at IS NULL
                """,
                user_id,
                now,
                revoked_by_ip,
            )

        count = _affected_rows(status)
        logger.info(
            "all_refresh_tokens_revoked",
            user_id=str(user_id),
            count=count,
            ip=revoked_by_ip,
        )
        return count

"""Credential store: user rows, password hashes and ephemeral token hashes."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from inkwell.models.user import Role, UserRecord
from inkwell.services.exceptions import ConflictError

logger = structlog.get_logger(__name__)

USER_COLUMNS = """
    id, username, email, password_hash, role, is_email_verified, is_active,
    last_login_at, password_changed_at,
    email_verification_token_hash, email_verification_expires_at,
    password_reset_token_hash, password_reset_expires_at,
    created_at, updated_at
"""


def _row_to_record(row) -> UserRecord:
    return UserRecord(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=row["role"],
        is_email_verified=row["is_email_verified"],
        is_active=row["is_active"],
        last_login_at=row["last_login_at"],
        password_changed_at=row["password_changed_at"],
        email_verification_token_hash=row["email_verification_token_hash"],
        email_verification_expires_at=row["email_verification_expires_at"],
        password_reset_token_hash=row["password_reset_token_hash"],
        password_reset_expires_at=row["password_reset_expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserStore:
    """asyncpg-backed user persistence.

    Username lookups are case-insensitive; emails are stored lowercased.
    Token-consuming updates are conditional on the token hash still being
    present, so a token can be consumed at most once.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create(
        self,
        username: str,
        email: str,
        password_hash: str,
        now: datetime,
        role: Role = Role.USER,
    ) -> UserRecord:
        """Insert a new, unverified user.

        Raises:
            ConflictError: If the username or email is already taken
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (id, username, email, password_hash, role,
                                       is_email_verified, is_active, created_at, updated_at)
                    VALUES ($1, $2, LOWER($3), $4, $5, FALSE, TRUE, $6, $6)
                    RETURNING {USER_COLUMNS}
                    """,
                    uuid4(),
                    username,
                    email,
                    password_hash,
                    Role(role).value,
                    now,
                )
        except asyncpg.UniqueViolationError:
            raise ConflictError("User with this email or username already exists.")

        logger.info("user_created", user_id=str(row["id"]), username=username)
        return _row_to_record(row)

    async def exists(self, username: str, email: str) -> bool:
        async with self._pool.acquire() as conn:
            found = await conn.fetchval(
                """
                SELECT 1 FROM users
                WHERE LOWER(username) = LOWER($1) OR email = LOWER($2)
                LIMIT 1
                """,
                username,
                email,
            )
        return found is not None

    async def get_by_id(self, user_id: UUID) -> Optional[UserRecord]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )
        return _row_to_record(row) if row else None

    async def find_by_identifier(self, identifier: str) -> Optional[UserRecord]:
        """Find a user by email or username (case-insensitive on both)."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS} FROM users
                WHERE email = LOWER($1) OR LOWER(username) = LOWER($1)
                LIMIT 1
                """,
                identifier,
            )
        return _row_to_record(row) if row else None

    async def find_by_verification_token_hash(
        self, token_hash: str, now: datetime
    ) -> Optional[UserRecord]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS} FROM users
                WHERE email_verification_token_hash = $1
                  AND email_verification_expires_at > $2
                """,
                token_hash,
                now,
            )
        return _row_to_record(row) if row else None

    async def find_by_reset_token_hash(
        self, token_hash: str, now: datetime
    ) -> Optional[UserRecord]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS} FROM users
                WHERE password_reset_token_hash = $1
                  AND password_reset_expires_at > $2
                """,
                token_hash,
                now,
            )
        return _row_to_record(row) if row else None

    async def set_verification_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime, now: datetime
    ) -> Optional[UserRecord]:
        """Store a verification token hash, replacing any previous one."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET email_verification_token_hash = $2,
                    email_verification_expires_at = $3,
                    updated_at = $4
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                token_hash,
                expires_at,
                now,
            )
        return _row_to_record(row) if row else None

    async def set_reset_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime, now: datetime
    ) -> Optional[UserRecord]:
        """Store a password-reset token hash, replacing any previous one."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET password_reset_token_hash = $2,
                    password_reset_expires_at = $3,
                    updated_at = $4
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                token_hash,
                expires_at,
                now,
            )
        return _row_to_record(row) if row else None

    async def mark_email_verified(
        self, user_id: UUID, token_hash: str, now: datetime
    ) -> Optional[UserRecord]:
        """Flip is_email_verified and clear the verification token.

        Returns None if the token was already consumed.
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET is_email_verified = TRUE,
                    email_verification_token_hash = NULL,
                    email_verification_expires_at = NULL,
                    updated_at = $3
                WHERE id = $1
                  AND email_verification_token_hash = $2
                  AND is_email_verified = FALSE
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                token_hash,
                now,
            )
        return _row_to_record(row) if row else None

    async def update_password(
        self,
        user_id: UUID,
        password_hash: str,
        changed_at: datetime,
        reset_token_hash: str,
    ) -> Optional[UserRecord]:
        """Set a new password and consume the reset token in one update.

        Returns None if the reset token was already consumed.
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET password_hash = $2,
                    password_changed_at = $3,
                    password_reset_token_hash = NULL,
                    password_reset_expires_at = NULL,
                    updated_at = $3
                WHERE id = $1 AND password_reset_token_hash = $4
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                password_hash,
                changed_at,
                reset_token_hash,
            )
        return _row_to_record(row) if row else None

    async def update_last_login(self, user_id: UUID, at: datetime) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "UPDATE users SET last_login_at = $2 WHERE id = $1",
                user_id,
                at,
            )

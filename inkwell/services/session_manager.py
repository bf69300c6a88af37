"""Session lifecycle orchestration.

Composes the credential store, refresh token store, password hasher,
token signer and ephemeral token issuers into the register / login /
refresh / logout / reset / verify flows. Every failure surfaces as a
typed ``AuthError``; email delivery is detached and never fails a flow.
"""

import asyncio
import secrets
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from inkwell.config import Settings
from inkwell.models.token import AuthResult, TokenPair
from inkwell.models.user import AuthenticatedPrincipal, User, UserRecord
from inkwell.services.clock import Clock
from inkwell.services.ephemeral_tokens import EphemeralTokenIssuer
from inkwell.services.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from inkwell.services.notification_service import NotificationDispatcher
from inkwell.services.password_hasher import PasswordHasher
from inkwell.services.refresh_token_store import RefreshTokenStore
from inkwell.services.token_signer import TokenSigner
from inkwell.services.user_store import UserStore

logger = structlog.get_logger(__name__)

REFRESH_TOKEN_EXPIRE_DAYS = 7
REFRESH_TOKEN_REMEMBER_DAYS = 30
REFRESH_TOKEN_BYTES = 64


def generate_refresh_token() -> str:
    """Opaque, high-entropy refresh token. Returned to the client only."""
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


class SessionManager:
    """Authentication and session flows for the HTTP layer."""

    def __init__(
        self,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        hasher: PasswordHasher,
        signer: TokenSigner,
        verification_tokens: EphemeralTokenIssuer,
        reset_tokens: EphemeralTokenIssuer,
        notifier: NotificationDispatcher,
        clock: Optional[Clock] = None,
        refresh_token_days: int = REFRESH_TOKEN_EXPIRE_DAYS,
        remember_me_days: int = REFRESH_TOKEN_REMEMBER_DAYS,
        unify_login_errors: bool = False,
        revoke_sessions_on_password_reset: bool = True,
        revoke_all_on_refresh_reuse: bool = False,
    ):
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.hasher = hasher
        self.signer = signer
        self.verification_tokens = verification_tokens
        self.reset_tokens = reset_tokens
        self.notifier = notifier
        self.clock = clock or Clock()
        self.refresh_token_days = refresh_token_days
        self.remember_me_days = remember_me_days
        self.unify_login_errors = unify_login_errors
        self.revoke_sessions_on_password_reset = revoke_sessions_on_password_reset
        self.revoke_all_on_refresh_reuse = revoke_all_on_refresh_reuse

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.signer.ttl_seconds

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _issue_session(
        self,
        record: UserRecord,
        remember_me: bool,
        client_ip: str,
        user_agent: str,
        now: datetime,
    ) -> AuthResult:
        """Mint an access token and persist a fresh refresh token."""
        access_token = self.signer.issue(record.id, record.email, record.role)
        raw_refresh = generate_refresh_token()
        days = self.remember_me_days if remember_me else self.refresh_token_days
        expires_at = now + timedelta(days=days)

        await self.refresh_tokens.create(
            record.id, raw_refresh, expires_at, client_ip, user_agent, now
        )

        return AuthResult(
            user=record.to_public(),
            access_token=access_token,
            refresh_token=raw_refresh,
            refresh_expires_at=expires_at,
        )

    async def _send_verification(self, record: UserRecord, now: datetime) -> UserRecord:
        token = self.verification_tokens.issue()
        updated = await self.users.set_verification_token(
            record.id, token.token_hash, token.expires_at, now
        )
        record = updated or record
        self.notifier.dispatch(
            self.notifier.send_verification_email(record.to_public(), token.plaintext),
            "verification_email",
            user_id=str(record.id),
        )
        return record

    # ------------------------------------------------------------------
    # Registration and email verification
    # ------------------------------------------------------------------

    async def register(self, username: str, email: str, password: str) -> User:
        """Create an unverified user and send a verification email.

        Raises:
            ConflictError: If the username or email is already registered
        """
        email = email.strip().lower()
        if await self.users.exists(username, email):
            logger.info("registration_conflict", username=username)
            raise ConflictError("User with this email or username already exists.")

        password_hash = await self.hasher.hash(password)
        now = self.clock.now()
        record = await self.users.create(username, email, password_hash, now)
        record = await self._send_verification(record, now)

        logger.info("user_registered", user_id=str(record.id), username=username)
        return record.to_public()

    async def verify_email(self, token: str) -> User:
        """Consume an email verification token.

        Raises:
            NotFoundError: Unknown, expired or already-consumed token
            BadRequestError: Email already verified
        """
        now = self.clock.now()
        token_hash = self.verification_tokens.match_hash(token)
        record = await self.users.find_by_verification_token_hash(token_hash, now)

        if record is None:
            raise NotFoundError("Invalid or expired verification token")

        if record.is_email_verified:
            raise BadRequestError("Email already verified")

        updated = await asyncio.shield(
            self.users.mark_email_verified(record.id, token_hash, now)
        )
        if updated is None:
            raise NotFoundError("Invalid or expired verification token")

        user = updated.to_public()
        self.notifier.dispatch(
            self.notifier.send_welcome_email(user),
            "welcome_email",
            user_id=str(user.id),
        )
        logger.info("email_verified", user_id=str(user.id))
        return user

    async def resend_verification_email(self, user_id: UUID) -> User:
        """Issue a fresh verification token, invalidating the previous one.

        Raises:
            NotFoundError: Unknown user
            BadRequestError: Email already verified
        """
        record = await self.users.get_by_id(user_id)
        if record is None:
            raise NotFoundError("User does not exist")
        if record.is_email_verified:
            raise BadRequestError("Email already verified")

        record = await self._send_verification(record, self.clock.now())
        logger.info("verification_email_reissued", user_id=str(record.id))
        return record.to_public()

    # ------------------------------------------------------------------
    # Login, refresh, logout
    # ------------------------------------------------------------------

    async def login(
        self,
        identifier: str,
        password: str,
        remember_me: bool,
        client_ip: str,
        user_agent: str,
    ) -> AuthResult:
        """Authenticate with email-or-username and password.

        Raises:
            NotFoundError: No such user (UnauthorizedError when login
                errors are unified)
            UnauthorizedError: Unverified email, wrong password or
                disabled account
        """
        record = await self.users.find_by_identifier(identifier.strip())

        if record is None:
            logger.info("login_failed", reason="user_not_found", ip=client_ip)
            if self.unify_login_errors:
                raise UnauthorizedError("Invalid credentials")
            raise NotFoundError("User does not exist")

        if not self.unify_login_errors and not record.is_email_verified:
            logger.info("login_failed", reason="email_not_verified", user_id=str(record.id))
            raise UnauthorizedError("Email not verified. Please verify your email.")

        if not await self.hasher.verify(password, record.password_hash):
            logger.info(
                "login_failed",
                reason="invalid_password",
                user_id=str(record.id),
                ip=client_ip,
            )
            raise UnauthorizedError("Invalid credentials")

        if not record.is_email_verified:
            raise UnauthorizedError("Email not verified. Please verify your email.")

        if not record.is_active:
            logger.info("login_failed", reason="inactive", user_id=str(record.id))
            raise UnauthorizedError("User account is disabled")

        now = self.clock.now()
        await self.users.update_last_login(record.id, now)
        record = record.model_copy(update={"last_login_at": now})

        result = await self._issue_session(record, remember_me, client_ip, user_agent, now)
        logger.info(
            "user_logged_in",
            user_id=str(record.id),
            ip=client_ip,
            remember_me=remember_me,
        )
        return result

    async def refresh(self, old_token: str, client_ip: str, user_agent: str) -> TokenPair:
        """Rotate a refresh token and mint a new access token.

        The old token is revoked and linked to its successor. Replaying a
        token that has already been rotated fails.

        Raises:
            UnauthorizedError: Unknown, expired, revoked or rotated token,
                or the owning user is gone or disabled
        """
        now = self.clock.now()
        token = await self.refresh_tokens.find(old_token)

        if token is None:
            logger.warning("refresh_token_not_found", ip=client_ip)
            raise UnauthorizedError("Invalid refresh token")

        if not token.is_active(now):
            if token.is_rotated:
                logger.warning(
                    "refresh_token_reuse_detected",
                    user_id=str(token.user_id),
                    ip=client_ip,
                )
                if self.revoke_all_on_refresh_reuse:
                    await self.refresh_tokens.revoke_all_for_user(
                        token.user_id, client_ip, now
                    )
            raise UnauthorizedError("Invalid refresh token")

        record = await self.users.get_by_id(token.user_id)
        if record is None or not record.is_active:
            raise UnauthorizedError("User not found for this token")

        new_token = generate_refresh_token()
        expires_at = now + timedelta(days=self.refresh_token_days)

        async def _rotate():
            rotated = await self.refresh_tokens.revoke_and_rotate(
                old_token, client_ip, new_token, now
            )
            if rotated is None:
                return None
            await self.refresh_tokens.create(
                record.id, new_token, expires_at, client_ip, user_agent, now
            )
            return rotated

        if await asyncio.shield(_rotate()) is None:
            raise UnauthorizedError("Invalid refresh token")

        access_token = self.signer.issue(record.id, record.email, record.role)
        return TokenPair(
            access_token=access_token,
            refresh_token=new_token,
            refresh_expires_at=expires_at,
        )

    async def logout(
        self, refresh_token: str, client_ip: str, user_id: Optional[UUID] = None
    ) -> None:
        """Revoke one refresh token. Unknown or already-revoked tokens are a no-op.

        With ``user_id``, a token owned by another user is left alone.
        """
        if user_id is not None:
            owned = await self.refresh_tokens.find(refresh_token)
            if owned is None:
                return
            if owned.user_id != user_id:
                logger.warning("logout_token_not_owned", user_id=str(user_id), ip=client_ip)
                return
        token = await self.refresh_tokens.revoke(refresh_token, client_ip, self.clock.now())
        if token is not None:
            logger.info("user_logged_out", user_id=str(token.user_id), ip=client_ip)

    async def logout_all(self, user_id: UUID, client_ip: str) -> int:
        """Revoke every active refresh token of a user.

        Returns:
            Number of tokens revoked
        """
        count = await self.refresh_tokens.revoke_all_for_user(
            user_id, client_ip, self.clock.now()
        )
        logger.info("user_logged_out_everywhere", user_id=str(user_id), count=count)
        return count

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str) -> None:
        """Issue a password-reset token and email it to the user.

        Raises:
            NotFoundError: No user with that email
        """
        record = await self.users.find_by_identifier(email.strip().lower())
        if record is None:
            raise NotFoundError("User does not exist")

        now = self.clock.now()
        token = self.reset_tokens.issue()
        await self.users.set_reset_token(record.id, token.token_hash, token.expires_at, now)

        self.notifier.dispatch(
            self.notifier.send_password_reset_email(record.to_public(), token.plaintext),
            "password_reset_email",
            user_id=str(record.id),
        )
        logger.info("password_reset_requested", user_id=str(record.id))

    async def reset_password(
        self,
        token: str,
        new_password: str,
        client_ip: str,
        user_agent: str,
        remember_me: bool = False,
    ) -> AuthResult:
        """Set a new password with a reset token and sign the user in.

        Raises:
            NotFoundError: Unknown, expired or already-consumed token
            BadRequestError: New password equals the current one
        """
        now = self.clock.now()
        token_hash = self.reset_tokens.match_hash(token)
        record = await self.users.find_by_reset_token_hash(token_hash, now)

        if record is None:
            raise NotFoundError("Invalid or expired reset token")

        if await self.hasher.verify(new_password, record.password_hash):
            raise BadRequestError("New password cannot be the same as the old password")

        password_hash = await self.hasher.hash(new_password)

        async def _commit() -> Optional[UserRecord]:
            updated = await self.users.update_password(record.id, password_hash, now, token_hash)
            if updated is None:
                return None
            if self.revoke_sessions_on_password_reset:
                await self.refresh_tokens.revoke_all_for_user(record.id, client_ip, now)
            return updated

        updated = await asyncio.shield(_commit())
        if updated is None:
            raise NotFoundError("Invalid or expired reset token")

        result = await self._issue_session(updated, remember_me, client_ip, user_agent, now)

        self.notifier.dispatch(
            self.notifier.send_password_changed_email(result.user),
            "password_changed_email",
            user_id=str(updated.id),
        )
        logger.info("password_reset_completed", user_id=str(updated.id), ip=client_ip)
        return result

    # ------------------------------------------------------------------
    # Request authentication
    # ------------------------------------------------------------------

    async def authenticate(self, access_token: Optional[str]) -> AuthenticatedPrincipal:
        """Resolve an access token to the principal it was issued for.

        A token issued before the user's last password change is stale and
        rejected; this is how stateless tokens are revoked.

        Raises:
            UnauthorizedError: Missing, invalid, expired or stale token, or
                the user is gone or disabled
        """
        if not access_token:
            raise UnauthorizedError("Access token is required.")

        claims = self.signer.verify(access_token)
        if claims is None:
            raise UnauthorizedError("Invalid access token.")

        record = await self.users.get_by_id(claims.user_id)
        if record is None:
            raise UnauthorizedError("This user no longer exists.")

        if not record.is_active:
            raise UnauthorizedError("User account is disabled")

        if record.password_changed_at is not None:
            changed_at = int(record.password_changed_at.timestamp())
            if changed_at > claims.issued_at:
                logger.info("stale_access_token", user_id=str(record.id))
                raise UnauthorizedError("Password changed. Please log in again.")

        return AuthenticatedPrincipal(
            id=record.id,
            role=record.role,
            username=record.username,
            email=record.email,
        )

    async def authenticate_optional(
        self, access_token: Optional[str]
    ) -> Optional[AuthenticatedPrincipal]:
        """Like ``authenticate`` but returns None instead of raising."""
        if not access_token:
            return None
        try:
            return await self.authenticate(access_token)
        except UnauthorizedError:
            return None

    async def get_profile(self, user_id: UUID) -> User:
        record = await self.users.get_by_id(user_id)
        if record is None:
            raise NotFoundError("User not found")
        return record.to_public()


def build_session_manager(
    settings: Settings,
    pool: asyncpg.Pool,
    clock: Optional[Clock] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> SessionManager:
    """Wire a SessionManager from settings and a database pool."""
    clock = clock or Clock()
    return SessionManager(
        users=UserStore(pool),
        refresh_tokens=RefreshTokenStore(pool),
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        signer=TokenSigner(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            ttl_minutes=settings.access_token_expire_minutes,
            clock=clock,
        ),
        verification_tokens=EphemeralTokenIssuer(
            ttl_minutes=settings.ephemeral_token_expire_minutes, clock=clock
        ),
        reset_tokens=EphemeralTokenIssuer(
            ttl_minutes=settings.ephemeral_token_expire_minutes, clock=clock
        ),
        notifier=notifier or NotificationDispatcher(settings),
        clock=clock,
        refresh_token_days=settings.refresh_token_expire_days,
        remember_me_days=settings.refresh_token_remember_days,
        unify_login_errors=settings.unify_login_errors,
        revoke_sessions_on_password_reset=settings.revoke_sessions_on_password_reset,
        revoke_all_on_refresh_reuse=settings.revoke_all_on_refresh_reuse,
    )

"""Transactional account emails, sent as detached background tasks."""

import asyncio
from typing import Awaitable

import aiosmtplib
import structlog

from inkwell.config import Settings
from inkwell.models.user import User

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Builds and sends account emails over SMTP.

    ``dispatch`` runs a send in the background and returns immediately.
    A failed send is logged and never reaches the caller.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._pending_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Detached delivery
    # ------------------------------------------------------------------

    def dispatch(self, coro: Awaitable[None], event: str, **context) -> asyncio.Task:
        """Schedule a send without awaiting it."""

        async def _run() -> None:
            try:
                await coro
            except Exception as e:
                logger.error(
                    "notification_failed",
                    notification=event,
                    error=str(e),
                    **context,
                )

        task = asyncio.create_task(_run())
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        return task

    @property
    def pending_count(self) -> int:
        return len(self._pending_tasks)

    async def await_pending(self, timeout: float = 5.0) -> None:
        """Wait for in-flight sends. Called on application shutdown."""
        if not self._pending_tasks:
            return

        logger.info("draining_pending_notifications", count=len(self._pending_tasks))
        try:
            await asyncio.wait_for(
                asyncio.gather(*self._pending_tasks, return_exceptions=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "pending_notifications_timeout",
                remaining=len(self._pending_tasks),
                timeout=timeout,
            )

    # ------------------------------------------------------------------
    # Senders
    # ------------------------------------------------------------------

    async def _send(self, to_email: str, subject: str, body: str, kind: str) -> None:
        settings = self.settings

        if not settings.email_enabled:
            logger.info("email_delivery_disabled", to=to_email, kind=kind)
            return

        message = (
            f"From: {settings.email_from}\r\n"
            f"To: {to_email}\r\n"
            f"Subject: [{settings.app_name}] {subject}\r\n"
            f"Content-Type: text/plain; charset=utf-8\r\n"
            f"\r\n"
            f"{body}"
        )

        await aiosmtplib.send(
            message,
            sender=settings.email_from,
            recipients=[to_email],
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or None,
            password=settings.smtp_password or None,
            start_tls=settings.smtp_use_tls,
        )
        logger.info("email_sent", to=to_email, kind=kind)

    def _link(self, path: str, token: str) -> str:
        base = self.settings.frontend_base_url.rstrip("/")
        return f"{base}/{path}?token={token}"

    async def send_verification_email(self, user: User, token: str) -> None:
        body = (
            f"Hi {user.username},\n\n"
            f"Please confirm your email address by opening the link below:\n\n"
            f"{self._link('verify-email', token)}\n\n"
            f"This link expires in {self.settings.ephemeral_token_expire_minutes} minutes."
        )
        await self._send(user.email, "Verify your email", body, "verification")

    async def send_password_reset_email(self, user: User, token: str) -> None:
        body = (
            f"Hi {user.username},\n\n"
            f"We received a request to reset your password. Open the link below "
            f"to choose a new one:\n\n"
            f"{self._link('reset-password', token)}\n\n"
            f"This link expires in {self.settings.ephemeral_token_expire_minutes} minutes. "
            f"If you did not request a reset, you can ignore this email."
        )
        await self._send(user.email, "Reset your password", body, "password_reset")

    async def send_welcome_email(self, user: User) -> None:
        body = (
            f"Hi {user.username},\n\n"
            f"Your email is verified. Welcome to {self.settings.app_name}!"
        )
        await self._send(user.email, "Welcome", body, "welcome")

    async def send_password_changed_email(self, user: User) -> None:
        body = (
            f"Hi {user.username},\n\n"
            f"Your password was just changed. "
            f"If this wasn't you, reset your password immediately."
        )
        await self._send(user.email, "Your password was changed", body, "password_changed")

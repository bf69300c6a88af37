"""Authentication API endpoints."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request, Response, status

from inkwell.api.dependencies import (
    client_ip,
    get_current_principal,
    get_optional_principal,
    get_session_manager,
    require_roles,
    user_agent,
)
from inkwell.config import get_settings
from inkwell.models.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserSummary,
    VerifyEmailRequest,
)
from inkwell.models.token import AuthResult, TokenPair
from inkwell.models.user import AuthenticatedPrincipal, Role, User
from inkwell.services.exceptions import UnauthorizedError
from inkwell.services.session_manager import SessionManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _user_summary(user: User) -> UserSummary:
    """Convert a User model to a UserSummary response."""
    return UserSummary(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        is_email_verified=user.is_email_verified,
        is_active=user.is_active,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )


def _set_auth_cookies(
    response: Response, tokens: TokenPair, manager: SessionManager
) -> None:
    settings = get_settings()
    access_max_age = manager.access_token_ttl_seconds
    refresh_max_age = max(
        int((tokens.refresh_expires_at - manager.clock.now()).total_seconds()), 0
    )
    response.set_cookie(
        key=settings.access_cookie_name,
        value=tokens.access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=access_max_age,
    )
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=tokens.refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=refresh_max_age,
        path="/auth",
    )


def _clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(key=settings.access_cookie_name)
    response.delete_cookie(key=settings.refresh_cookie_name, path="/auth")


def _read_refresh_token(request: Request, body_token: Optional[str]) -> Optional[str]:
    if body_token:
        return body_token
    return request.cookies.get(get_settings().refresh_cookie_name)


def _login_response(
    result: AuthResult, response: Response, manager: SessionManager
) -> LoginResponse:
    _set_auth_cookies(response, result, manager)
    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        token_type="bearer",
        expires_in=manager.access_token_ttl_seconds,
        user=_user_summary(result.user),
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> UserSummary:
    """Register a new account and send a verification email.

    Raises:
        ConflictError (409): If the username or email is already taken
    """
    user = await manager.register(body.username, body.email, body.password)
    return _user_summary(user)


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
) -> LoginResponse:
    """Login with email or username and password.

    Raises:
        NotFoundError (404): Unknown user
        UnauthorizedError (401): Wrong password or unverified email
    """
    result = await manager.login(
        body.identifier,
        body.password,
        body.remember_me,
        client_ip(request),
        user_agent(request),
    )
    return _login_response(result, response, manager)


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    manager: SessionManager = Depends(get_session_manager),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair (rotation).

    Raises:
        UnauthorizedError (401): If the refresh token is invalid, expired,
            revoked or already rotated
    """
    raw = _read_refresh_token(request, body.refresh_token if body else None)
    if not raw:
        raise UnauthorizedError("Refresh token is required.")

    tokens = await manager.refresh(raw, client_ip(request), user_agent(request))
    _set_auth_cookies(response, tokens, manager)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type="bearer",
        expires_in=manager.access_token_ttl_seconds,
    )


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    await manager.forgot_password(body.email)
    return MessageResponse(message="Password reset email sent")


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
) -> LoginResponse:
    """Set a new password using an emailed reset token; signs the user in."""
    result = await manager.reset_password(
        body.token,
        body.password,
        client_ip(request),
        user_agent(request),
        remember_me=body.remember_me,
    )
    return _login_response(result, response, manager)


@router.post("/verify-email")
async def verify_email(
    body: VerifyEmailRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> UserSummary:
    user = await manager.verify_email(body.token)
    return _user_summary(user)


@router.post("/resend-verification")
async def resend_verification(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    await manager.resend_verification_email(principal.id)
    return MessageResponse(message="Verification email sent")


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    body: Optional[LogoutRequest] = None,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Revoke the current refresh token. Safe to repeat."""
    raw = _read_refresh_token(request, body.refresh_token if body else None)
    if raw:
        await manager.logout(raw, client_ip(request), principal.id)
    _clear_auth_cookies(response)
    return MessageResponse(message="Logged out")


@router.post("/logout-all")
async def logout_all(
    request: Request,
    response: Response,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Sign out on every device."""
    count = await manager.logout_all(principal.id, client_ip(request))
    _clear_auth_cookies(response)
    return MessageResponse(message=f"Logged out of {count} session(s)")


@router.post("/users/{user_id}/logout-all")
async def force_logout_user(
    user_id: UUID,
    request: Request,
    admin: AuthenticatedPrincipal = Depends(require_roles(Role.ADMIN)),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Admin-only: revoke every session of another user."""
    count = await manager.logout_all(user_id, client_ip(request))
    logger.info("sessions_revoked_by_admin", admin_id=str(admin.id), user_id=str(user_id))
    return MessageResponse(message=f"Revoked {count} session(s)")


@router.get("/profile")
async def profile(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    manager: SessionManager = Depends(get_session_manager),
) -> UserSummary:
    user = await manager.get_profile(principal.id)
    return _user_summary(user)


@router.get("/session")
async def session_status(
    principal: Optional[AuthenticatedPrincipal] = Depends(get_optional_principal),
) -> dict:
    """Report whether the caller is signed in. Never fails on a bad token."""
    if principal is None:
        return {"authenticated": False, "user": None}
    return {"authenticated": True, "user": principal.model_dump(mode="json")}

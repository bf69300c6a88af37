"""FastAPI dependencies for authentication and authorization."""

from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from inkwell.config import get_settings
from inkwell.models.user import AuthenticatedPrincipal, Role
from inkwell.services.exceptions import ForbiddenError, InternalError
from inkwell.services.session_manager import SessionManager

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_manager(request: Request) -> SessionManager:
    """Return the SessionManager built during application startup."""
    manager = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise InternalError("Authentication service unavailable")
    return manager


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "unknown")


def extract_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    """Bearer header first, then the access-token cookie."""
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(get_settings().access_cookie_name)


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    manager: SessionManager = Depends(get_session_manager),
) -> AuthenticatedPrincipal:
    """Authenticate the request and expose the principal.

    Raises:
        UnauthorizedError: If the token is missing, invalid, expired or stale
    """
    token = extract_access_token(request, credentials)
    principal = await manager.authenticate(token)
    request.state.principal = principal
    return principal


async def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    manager: SessionManager = Depends(get_session_manager),
) -> Optional[AuthenticatedPrincipal]:
    """Authenticate if a valid token is present; anonymous otherwise."""
    token = extract_access_token(request, credentials)
    principal = await manager.authenticate_optional(token)
    request.state.principal = principal
    return principal


def require_roles(*roles: Role) -> Callable:
    """Build a dependency that only admits principals with one of ``roles``."""
    allowed = {Role(r) for r in roles}

    async def _require(
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
    ) -> AuthenticatedPrincipal:
        if principal.role not in allowed:
            raise ForbiddenError()
        return principal

    return _require

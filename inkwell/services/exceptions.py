"""Typed errors raised by the authentication services.

Each error carries a stable machine-readable ``code`` and a human
``message``. The HTTP layer maps ``status_code`` onto the response.
"""


class AuthError(Exception):
    """Base class for authentication and authorization failures."""

    code = "AUTH_ERROR"
    status_code = 400
    default_message = "Authentication error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class BadRequestError(AuthError):
    """The request is well-formed but not allowed in the current state."""

    code = "BAD_REQUEST"
    status_code = 400
    default_message = "Bad request"


class UnauthorizedError(AuthError):
    """Bad credentials, unverified email, or an invalid/expired/revoked token."""

    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(AuthError):
    """Authenticated, but the principal's role is not permitted."""

    code = "FORBIDDEN"
    status_code = 403
    default_message = "You do not have permission to access this resource"


class NotFoundError(AuthError):
    """Unknown identifier or token."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class ConflictError(AuthError):
    """Duplicate username or email."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict"


class InternalError(AuthError):
    """Unexpected failure. The message is safe to return to clients."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal server error"


class PasswordHashingError(InternalError):
    """The password hasher failed to produce a hash."""

"""API package exports."""

from inkwell.api.auth import router
from inkwell.api.middleware import CorrelationIdMiddleware

__all__ = ["router", "CorrelationIdMiddleware"]

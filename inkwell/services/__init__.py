"""Services package exports."""

from inkwell.services.logging_service import configure_logging, get_logger
from inkwell.services.session_manager import SessionManager, build_session_manager

__all__ = [
    "SessionManager",
    "build_session_manager",
    "configure_logging",
    "get_logger",
]

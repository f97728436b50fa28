"""Observability module for solid_auth.

Structured logging through structlog, with JSON output for production and
colored console output for development.

Example:
    >>> from solid_auth.observability import get_logger
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info("solid_auth.negotiate.selected", authenticator="UMA", priority=100)
"""

from solid_auth.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    is_debug_mode,
    sanitize_for_logging,
)

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "is_debug_mode",
    "sanitize_for_logging",
]

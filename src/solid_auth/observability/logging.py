"""Structured logging configuration for solid_auth.

This module configures structlog for structured logging with support for
both development (console) and production (JSON) output formats.

Environment Variables:
    SOLID_AUTH_LOG_FORMAT: Set to "json" for JSON output, "console" for colored output
    SOLID_AUTH_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR)
    SOLID_AUTH_SERVICE_NAME: Service name to include in logs
    SOLID_AUTH_DEBUG: Set to "true" or "1" to log full values; otherwise credentials are redacted

Example:
    >>> from solid_auth.observability.logging import get_logger, configure_logging
    >>>
    >>> configure_logging(log_format="json", log_level="INFO")
    >>> logger = get_logger("solid_auth.transport.client")
    >>> logger.info("solid_auth.client.send", uri="https://pod.example/data")
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.typing import Processor

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "console"
DEFAULT_SERVICE_NAME = "solid-auth"

ENV_LOG_FORMAT = "SOLID_AUTH_LOG_FORMAT"
ENV_LOG_LEVEL = "SOLID_AUTH_LOG_LEVEL"
ENV_SERVICE_NAME = "SOLID_AUTH_SERVICE_NAME"
ENV_DEBUG = "SOLID_AUTH_DEBUG"

REDACTED_PLACEHOLDER = "***REDACTED***"

# Key substrings (case-insensitive) that mark credential material
_SENSITIVE_KEY_PATTERNS = frozenset(
    {"password", "token", "secret", "key", "authorization", "dpop", "ticket", "claim"}
)

_logging_configured = False


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    return any(pattern in lower for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with credential values redacted.

    Keys containing password, token, secret, key, authorization, dpop, ticket
    or claim (case-insensitive) have their values replaced with
    REDACTED_PLACEHOLDER. Nested dicts and lists of dicts are handled
    recursively. When SOLID_AUTH_DEBUG is set the data is returned unchanged.

    Example:
        >>> sanitize_for_logging({"ticket": "abc", "as_uri": "https://as.example"})
        {'ticket': '***REDACTED***', 'as_uri': 'https://as.example'}
    """
    if not data:
        return {}
    if is_debug_mode():
        return dict(data)
    result: dict[str, Any] = {}
    for k, v in data.items():
        if _is_sensitive_key(k):
            result[k] = REDACTED_PLACEHOLDER
        elif isinstance(v, dict):
            result[k] = sanitize_for_logging(v)
        elif isinstance(v, list):
            result[k] = [
                sanitize_for_logging(item) if isinstance(item, dict) else item for item in v
            ]
        else:
            result[k] = v
    return result


def is_debug_mode() -> bool:
    """Return True if SOLID_AUTH_DEBUG is set to a truthy value (e.g. true, 1)."""
    value = os.environ.get(ENV_DEBUG, "").strip().lower()
    return value in ("true", "1", "yes", "on")


def _get_log_level() -> str:
    return os.environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()


def _get_log_format() -> str:
    return os.environ.get(ENV_LOG_FORMAT, DEFAULT_LOG_FORMAT).lower()


def _get_service_name() -> str:
    return os.environ.get(ENV_SERVICE_NAME, DEFAULT_SERVICE_NAME)


def _get_shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    service_name: str | None = None,
    force: bool = False,
) -> None:
    """Configure structured logging for the library.

    Args:
        log_format: Output format - "json" or "console". Defaults to env var or "console"
        log_level: Minimum log level. Defaults to env var or "INFO"
        service_name: Service name for log context. Defaults to env var or "solid-auth"
        force: If True, reconfigure even if already configured
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    log_format = log_format or _get_log_format()
    log_level = log_level or _get_log_level()
    service_name = service_name or _get_service_name()

    shared_processors = _get_shared_processors()

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level))

    structlog.contextvars.bind_contextvars(service=service_name)

    _logging_configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given name.

    Configures logging with default settings on first use.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Bound structlog logger

    Example:
        >>> logger = get_logger(__name__)
        >>> logger = logger.bind(session_id="5f1c...")
        >>> logger.info("solid_auth.session.refreshed")  # session_id included
    """
    if not _logging_configured:
        configure_logging()

    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables that will be included in all subsequent logs.

    Example:
        >>> bind_context(session_id="5f1c...", principal="https://id.example/me")
        >>> logger.info("event")  # Will include session_id and principal
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()

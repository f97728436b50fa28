"""Solid client authentication error taxonomy.

This module defines the error hierarchy for the reactive authorization
layer. Every error carries its context as per-instance attributes so that
concurrent failures never observe each other's status or body.

Recoverable conditions (malformed header elements, failed negotiation) are
absorbed by the parsers and the orchestrator; the remaining errors are
raised to the caller and must be handled explicitly.
"""
from __future__ import annotations

from typing import Any


class SolidAuthError(Exception):
    """Base exception for all solid_auth errors.

    Attributes:
        code: Error code following the solid:<area>/<reason> pattern
        message: Human-readable error message
        details: Optional additional error context
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, message, details}`` dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class HeaderParseError(SolidAuthError):
    """Raised for a single malformed header element.

    Never escapes the public parsers: each element that fails is logged and
    skipped, and parsing resumes at the next comma-separated element.

    Attributes:
        header: Name of the header being parsed
        position: Offset in the header value where parsing failed
    """

    def __init__(
        self, header: str, reason: str, position: int, details: dict[str, Any] | None = None
    ) -> None:
        message = f"Malformed {header} element at offset {position}: {reason}"
        super().__init__(
            code="solid:headers/malformed",
            message=message,
            details={"header": header, "position": position, **(details or {})},
        )
        self.header = header
        self.reason = reason
        self.position = position


class AuthenticationError(SolidAuthError):
    """Raised when an authenticator cannot obtain a credential.

    The reactive client treats this as a failed negotiation and returns the
    original 401 response to its caller.
    """

    def __init__(
        self,
        message: str,
        code: str = "solid:auth/failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, details=details)


class OpenIdError(AuthenticationError):
    """Raised when OpenID authentication cannot produce an ID token credential."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="solid:auth/openid", details=details)


class UmaError(AuthenticationError):
    """Raised when a UMA ticket exchange fails.

    Attributes:
        status: HTTP status returned by the authorization server, if any
        body: Raw response body returned by the authorization server, if any
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str | None = None,
        *,
        code: str = "solid:auth/uma",
        details: dict[str, Any] | None = None,
    ) -> None:
        details_dict: dict[str, Any] = {}
        if status is not None:
            details_dict["status"] = status
        if details:
            details_dict.update(details)
        super().__init__(message, code=code, details=details_dict)
        self.status = status
        self.body = body


class RequestDeniedError(UmaError):
    """Raised when the authorization server answers ``request_denied``."""

    def __init__(self, status: int | None = None, body: str | None = None) -> None:
        super().__init__(
            "UMA authorization request was denied",
            status,
            body,
            code="solid:auth/uma_request_denied",
        )


class InvalidGrantError(UmaError):
    """Raised when the authorization server answers ``invalid_grant``."""

    def __init__(self, status: int | None = None, body: str | None = None) -> None:
        super().__init__(
            "Invalid UMA grant or ticket",
            status,
            body,
            code="solid:auth/uma_invalid_grant",
        )


class InvalidScopeError(UmaError):
    """Raised when the authorization server answers ``invalid_scope``."""

    def __init__(self, status: int | None = None, body: str | None = None) -> None:
        super().__init__(
            "Invalid UMA scope",
            status,
            body,
            code="solid:auth/uma_invalid_scope",
        )


class CredentialValidationError(SolidAuthError):
    """Raised when a long-lived credential is malformed, expired, or unverifiable.

    Fatal to session construction and to credential refresh; distinguishable
    from the "not yet authenticated" state, which is expressed as ``None``.

    Attributes:
        reason: Short description of the validation failure
    """

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        message = f"Invalid credential: {reason}"
        super().__init__(
            code="solid:auth/invalid_credential",
            message=message,
            details=details or {},
        )
        self.reason = reason


class ProofGenerationError(SolidAuthError):
    """Raised when a DPoP proof cannot be produced.

    Attributes:
        algorithm: The requested signing algorithm, if known
    """

    def __init__(
        self,
        algorithm: str | None,
        details: dict[str, Any] | None = None,
        *,
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"Unsupported DPoP algorithm: {algorithm}"
        super().__init__(
            code="solid:auth/proof",
            message=message,
            details={"algorithm": algorithm, **(details or {})},
        )
        self.algorithm = algorithm

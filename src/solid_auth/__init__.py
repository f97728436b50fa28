"""Reactive authorization for Solid clients.

Requests are sent anonymously until a server answers 401; the
``WWW-Authenticate`` challenges are then negotiated into a credential
(an OpenID ID token or a UMA access token, optionally DPoP-bound) and the
request is retried once.

Example:
    >>> from solid_auth import OpenIdSession, ReactiveAuthorizationClient, create_default_registry
    >>> session = await OpenIdSession.from_id_token(id_token)
    >>> async with ReactiveAuthorizationClient(session, create_default_registry()) as client:
    ...     response = await client.request("GET", "https://pod.example/private/")
"""

__version__ = "0.1.0"

from solid_auth.auth import (
    AnonymousSession,
    AuthenticatorRegistry,
    OpenIdSession,
    UmaSession,
    VerificationConfig,
    create_default_registry,
)
from solid_auth.errors import (
    AuthenticationError,
    CredentialValidationError,
    ProofGenerationError,
    SolidAuthError,
)
from solid_auth.headers import parse_link, parse_wac_allow, parse_www_authenticate
from solid_auth.models import Challenge, Credential, Link
from solid_auth.transport import AuthState, ReactiveAuthorizationClient

__all__ = [
    "AnonymousSession",
    "AuthState",
    "AuthenticationError",
    "AuthenticatorRegistry",
    "Challenge",
    "Credential",
    "CredentialValidationError",
    "Link",
    "OpenIdSession",
    "ProofGenerationError",
    "ReactiveAuthorizationClient",
    "SolidAuthError",
    "UmaSession",
    "VerificationConfig",
    "__version__",
    "create_default_registry",
    "parse_link",
    "parse_wac_allow",
    "parse_www_authenticate",
]

"""Authentication layer for the reactive Solid client.

This module provides the pieces that turn a 401 challenge into a credential:
- Sessions holding the long-lived ID token and a per-resource credential cache
- OpenID (Bearer/DPoP) and UMA authentication providers
- The authenticator registry that ranks and runs them
- DPoP proof generation

Public exports:
    Authenticator, AuthenticationProvider: Provider/authenticator interfaces
    AuthenticatorRegistry: Scheme -> provider table with negotiation
    create_default_registry: Registry with the OpenID and UMA providers
    Session, BaseSession, AnonymousSession: Session types
    OpenIdSession, VerificationConfig: ID-token sessions and their configuration
    UmaSession, UmaClient, ClaimGatheringHandler: UMA ticket negotiation
    ProofGenerator, generate_key_pair: DPoP proofs
    CredentialCache: Per-URI credential cache
"""

from solid_auth.auth.cache import CredentialCache
from solid_auth.auth.dpop import ProofGenerator, generate_key_pair
from solid_auth.auth.openid import (
    ID_TOKEN,
    OpenIdAuthenticationProvider,
    OpenIdAuthenticator,
    OpenIdSession,
    VerificationConfig,
)
from solid_auth.auth.provider import AuthenticationProvider, Authenticator
from solid_auth.auth.registry import AuthenticatorRegistry, create_default_registry
from solid_auth.auth.session import AnonymousSession, BaseSession, Session
from solid_auth.auth.uma import (
    ClaimGatheringHandler,
    ClaimToken,
    UmaAuthenticationProvider,
    UmaAuthenticator,
    UmaClient,
    UmaSession,
)

__all__ = [
    "AnonymousSession",
    "AuthenticationProvider",
    "Authenticator",
    "AuthenticatorRegistry",
    "BaseSession",
    "ClaimGatheringHandler",
    "ClaimToken",
    "CredentialCache",
    "ID_TOKEN",
    "OpenIdAuthenticationProvider",
    "OpenIdAuthenticator",
    "OpenIdSession",
    "ProofGenerator",
    "Session",
    "UmaAuthenticationProvider",
    "UmaAuthenticator",
    "UmaClient",
    "UmaSession",
    "VerificationConfig",
    "create_default_registry",
    "generate_key_pair",
]

"""OpenID Connect sessions and the OpenID authenticator.

An ``OpenIdSession`` holds a validated Solid-OIDC ID token as its
long-lived credential. The token is either supplied directly or obtained
(and later refreshed) with the client_credentials grant.

Validation applies the configured ``VerificationConfig``:

- exp, iss, sub and iat must be present; exp tolerates a grace period
- aud must contain ``expected_audience`` when one is configured
- the signature is verified against ``public_key_location`` when set
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import httpx
from joserfc import jws
from joserfc import jwt as jose_jwt
from joserfc.errors import JoseError

from solid_auth.auth.cache import CredentialCache
from solid_auth.auth.dpop import AsymmetricKey, ProofGenerator
from solid_auth.auth.jwks import Claims, JWKSValidator
from solid_auth.auth.oauth2 import DEFAULT_AUTH_METHOD, DEFAULT_SCOPE, ClientCredentials
from solid_auth.auth.oidc import OIDCDiscovery
from solid_auth.auth.provider import AuthenticationProvider, Authenticator
from solid_auth.auth.session import BaseSession, RefreshFunction, Session
from solid_auth.errors import CredentialValidationError, OpenIdError
from solid_auth.models.challenge import Challenge
from solid_auth.models.credential import DPOP_SCHEME, Credential
from solid_auth.observability import get_logger

logger = get_logger(__name__)

ID_TOKEN = "http://openid.net/specs/openid-connect-core-1_0.html#IDToken"
BEARER_SCHEME = "Bearer"

DEFAULT_EXP_GRACE_PERIOD_SECS = 60

ENV_EXPECTED_AUDIENCE = "SOLID_AUTH_EXPECTED_AUDIENCE"
ENV_PUBLIC_KEY_LOCATION = "SOLID_AUTH_PUBLIC_KEY_LOCATION"
ENV_EXP_GRACE_PERIOD_SECS = "SOLID_AUTH_EXP_GRACE_PERIOD_SECS"

_REQUIRED_CLAIMS = ("exp", "iss", "sub", "iat")


@dataclass
class VerificationConfig:
    """How ID tokens are verified when a session is built or refreshed.

    Attributes:
        expected_audience: When set, the ``aud`` claim must contain it.
        public_key_location: JWKS URL; when set, signatures are verified.
        exp_grace_period_secs: Clock skew tolerated on ``exp``.
        proof_key_pairs: DPoP key pairs by algorithm; an ES256 key is
            generated when empty.
    """

    expected_audience: Optional[str] = None
    public_key_location: Optional[str] = None
    exp_grace_period_secs: int = DEFAULT_EXP_GRACE_PERIOD_SECS
    proof_key_pairs: Mapping[str, AsymmetricKey] = field(default_factory=dict)

    @classmethod
    def from_env(cls, **overrides: Any) -> VerificationConfig:
        """Build a config from SOLID_AUTH_* environment variables.

        Keyword arguments take precedence over the environment.

        Raises:
            ValueError: If SOLID_AUTH_EXP_GRACE_PERIOD_SECS is not an integer.
        """
        values: dict[str, Any] = {}
        audience = os.environ.get(ENV_EXPECTED_AUDIENCE, "").strip()
        if audience:
            values["expected_audience"] = audience
        location = os.environ.get(ENV_PUBLIC_KEY_LOCATION, "").strip()
        if location:
            values["public_key_location"] = location
        grace = os.environ.get(ENV_EXP_GRACE_PERIOD_SECS, "").strip()
        if grace:
            values["exp_grace_period_secs"] = int(grace)
        values.update(overrides)
        return cls(**values)


def _decode_unverified(token: str) -> Claims:
    try:
        compact = jws.extract_compact(token.encode("ascii"))
        claims = json.loads(compact.payload)
    except (JoseError, ValueError, UnicodeError) as exc:
        raise CredentialValidationError("ID token is not a well-formed JWT") from exc
    if not isinstance(claims, dict):
        raise CredentialValidationError("ID token payload is not a JSON object")
    return claims


def _check_audience(claims: Claims, expected: str) -> None:
    aud = claims.get("aud")
    audiences = aud if isinstance(aud, list) else [aud]
    if expected not in audiences:
        raise CredentialValidationError(
            "ID token audience mismatch", details={"expected_audience": expected}
        )


async def validate_id_token(
    token: str,
    config: VerificationConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    validator: Optional[JWKSValidator] = None,
) -> Claims:
    """Validate a raw ID token and return its claims.

    Args:
        token: Compact-serialized ID token.
        config: Verification options.
        transport: Optional httpx transport for fetching the JWKS.
        validator: JWKS validator to reuse; its cached key set survives
            across calls. One is created per call when omitted.

    Returns:
        The token claims.

    Raises:
        CredentialValidationError: If the token is malformed, expired, missing
            required claims, has the wrong audience, or fails signature checks.
    """
    if config.public_key_location:
        if validator is None:
            validator = JWKSValidator(config.public_key_location, transport=transport)
        try:
            claims = await validator.validate_token(token)
        except JoseError as exc:
            raise CredentialValidationError(
                "ID token signature verification failed", details={"error": str(exc)}
            ) from exc
    else:
        claims = _decode_unverified(token)

    claims_registry = jose_jwt.JWTClaimsRegistry(
        leeway=config.exp_grace_period_secs,
        **{name: {"essential": True} for name in _REQUIRED_CLAIMS},
    )
    try:
        claims_registry.validate(claims)
    except JoseError as exc:
        raise CredentialValidationError(str(exc), details={"error": exc.error}) from exc

    if config.expected_audience:
        _check_audience(claims, config.expected_audience)
    return claims


def session_id_for(claims: Claims) -> str:
    """Derive a stable session id: sha256 of the WebID, else of ``iss|sub``."""
    webid = claims.get("webid")
    source = webid if isinstance(webid, str) and webid else f"{claims['iss']}|{claims['sub']}"
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


def principal_for(claims: Claims) -> Optional[str]:
    webid = claims.get("webid")
    if isinstance(webid, str) and webid:
        return webid
    sub = claims.get("sub")
    return sub if isinstance(sub, str) else None


def id_token_credential(
    token: str, claims: Claims, proof_generator: Optional[ProofGenerator] = None
) -> Credential:
    """Wrap a validated ID token into a Credential.

    A token bound to one of ``proof_generator``'s keys through the
    ``cnf.jkt`` confirmation claim becomes a DPoP credential.
    """
    scheme = BEARER_SCHEME
    thumbprint: Optional[str] = None
    cnf = claims.get("cnf")
    if isinstance(cnf, dict) and isinstance(cnf.get("jkt"), str) and proof_generator is not None:
        if proof_generator.lookup_algorithm(cnf["jkt"]) is not None:
            scheme = DPOP_SCHEME
            thumbprint = cnf["jkt"]
    return Credential(
        scheme=scheme,
        issuer=str(claims["iss"]),
        token=token,
        expiration=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
        principal=principal_for(claims),
        proof_thumbprint=thumbprint,
    )


class OpenIdSession(BaseSession):
    """Session authenticated by a Solid-OIDC ID token.

    Build instances with ``from_id_token`` or ``from_client_credentials``;
    both validate the token before the session exists.

    Example:
        >>> session = await OpenIdSession.from_client_credentials(
        ...     "https://idp.example", "my-app", "secret"
        ... )
        >>> session.principal
        'https://id.example/profile#me'
    """

    def __init__(
        self,
        token: str,
        claims: Claims,
        *,
        refresh: Optional[RefreshFunction] = None,
        proof_generator: Optional[ProofGenerator] = None,
        cache: Optional[CredentialCache] = None,
    ) -> None:
        proof_generator = proof_generator or ProofGenerator()
        super().__init__(
            session_id=session_id_for(claims),
            principal=principal_for(claims),
            schemes={BEARER_SCHEME, DPOP_SCHEME},
            credential_name=ID_TOKEN,
            credential=id_token_credential(token, claims, proof_generator),
            refresh=refresh,
            proof_generator=proof_generator,
            cache=cache,
        )

    @classmethod
    async def from_id_token(
        cls,
        token: str,
        config: Optional[VerificationConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> OpenIdSession:
        """Create a session from a raw ID token.

        Raises:
            CredentialValidationError: If the token does not validate.
        """
        config = config or VerificationConfig()
        claims = await validate_id_token(token, config, transport=transport)
        session = cls(token, claims, proof_generator=ProofGenerator(config.proof_key_pairs))
        logger.info(
            "solid_auth.openid.session_created",
            session_id=session.id,
            principal=session.principal,
            issuer=claims["iss"],
        )
        return session

    @classmethod
    async def from_client_credentials(
        cls,
        issuer: str,
        client_id: str,
        client_secret: str,
        *,
        scope: Optional[str] = DEFAULT_SCOPE,
        auth_method: str = DEFAULT_AUTH_METHOD,
        config: Optional[VerificationConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> OpenIdSession:
        """Create a session whose ID token is fetched with client_credentials.

        The same fetch is registered as the session's refresh function, so an
        expired ID token is replaced transparently (and single-flight).
        The JWKS is fetched through one validator for the life of the session.

        Raises:
            CredentialValidationError: If the provider returns no valid ID token.
            httpx.HTTPError: On network errors during discovery or token fetch.
        """
        config = config or VerificationConfig()
        discovery = OIDCDiscovery(issuer, transport=transport)
        provider = await discovery.discover()
        client = ClientCredentials(
            client_id,
            client_secret,
            provider.token_endpoint,
            scope=scope,
            auth_method=auth_method,
            transport=transport,
        )
        proof_generator = ProofGenerator(config.proof_key_pairs)
        validator = (
            JWKSValidator(config.public_key_location, transport=transport)
            if config.public_key_location
            else None
        )

        async def fetch() -> tuple[str, Claims]:
            token = await client.fetch_token()
            if not token.id_token:
                raise CredentialValidationError("token response did not include an id_token")
            claims = await validate_id_token(
                token.id_token, config, transport=transport, validator=validator
            )
            return token.id_token, claims

        async def refresh() -> Credential:
            id_token, claims = await fetch()
            return id_token_credential(id_token, claims, proof_generator)

        id_token, claims = await fetch()
        session = cls(id_token, claims, refresh=refresh, proof_generator=proof_generator)
        logger.info(
            "solid_auth.openid.session_created",
            session_id=session.id,
            principal=session.principal,
            issuer=claims["iss"],
            client_id=client_id,
        )
        return session


class OpenIdAuthenticator(Authenticator):
    """Presents the session's ID token in answer to a Bearer or DPoP challenge."""

    name = "OpenId"

    def __init__(self, challenge: Challenge, priority: int) -> None:
        self.challenge = challenge
        self.priority = priority

    async def authenticate(
        self,
        session: Session,
        request: httpx.Request,
        algorithms: frozenset[str],
    ) -> Optional[Credential]:
        credential = await session.get_credential(ID_TOKEN, str(request.url))
        if credential is None:
            raise OpenIdError("Unable to perform OpenID authentication: no valid ID token")
        return credential


class OpenIdAuthenticationProvider(AuthenticationProvider):
    """Provider answering Bearer and DPoP challenges with an ID token."""

    priority = 50

    def __init__(self, priority: int = 50) -> None:
        self.priority = priority

    def schemes(self) -> frozenset[str]:
        return frozenset({BEARER_SCHEME, DPOP_SCHEME})

    def get_authenticator(self, challenge: Challenge) -> Authenticator:
        return OpenIdAuthenticator(challenge, self.priority)

"""User-Managed Access (UMA 2.0) ticket negotiation.

A resource server answers an unauthorized request with
``WWW-Authenticate: UMA as_uri="...", ticket="..."``. The client then:

1. discovers the authorization server through
   ``{as_uri}/.well-known/uma2-configuration``;
2. exchanges the ticket at the token endpoint with the
   ``urn:ietf:params:oauth:grant-type:uma-ticket`` grant, presenting the
   session's ID token as a claim token when it has one;
3. follows ``need_info`` responses through the registered claim-gathering
   handlers, up to a bounded number of iterations.

``request_denied``, ``invalid_grant`` and ``invalid_scope`` map to typed
errors; anything else unexpected raises UmaError with status and body.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx
from pydantic import Field, ValidationError

from solid_auth.auth.cache import CredentialCache
from solid_auth.auth.dpop import ProofGenerator
from solid_auth.auth.openid import ID_TOKEN
from solid_auth.auth.provider import AuthenticationProvider, Authenticator
from solid_auth.auth.session import BaseSession, Session
from solid_auth.errors import (
    InvalidGrantError,
    InvalidScopeError,
    RequestDeniedError,
    UmaError,
)
from solid_auth.models.base import SolidWireModel
from solid_auth.models.challenge import Challenge
from solid_auth.models.credential import DPOP_SCHEME, Credential
from solid_auth.observability import get_logger, sanitize_for_logging
from solid_auth.utils.sanitization import sanitize_token, sanitize_url

logger = get_logger(__name__)

UMA_SCHEME = "UMA"
UMA_TICKET_GRANT = "urn:ietf:params:oauth:grant-type:uma-ticket"
UMA_WELL_KNOWN_PATH = "/.well-known/uma2-configuration"

AS_URI_PARAMETER = "as_uri"
TICKET_PARAMETER = "ticket"

NEED_INFO = "need_info"
REQUEST_DENIED = "request_denied"
INVALID_GRANT = "invalid_grant"
INVALID_SCOPE = "invalid_scope"

DEFAULT_MAX_ITERATIONS = 5
DEFAULT_TOKEN_LIFETIME_SECONDS = 300
METADATA_CACHE_TTL_SECONDS = 3600.0
DEFAULT_HTTP_TIMEOUT = 10.0

ProofFactory = Callable[[str, str], Optional[str]]


class UmaMetadata(SolidWireModel):
    """Authorization server metadata from the UMA well-known document."""

    issuer: Optional[str] = None
    token_endpoint: str = Field(..., description="Token endpoint URL")
    jwks_uri: Optional[str] = None
    grant_types_supported: list[str] = Field(default_factory=list)
    dpop_signing_alg_values_supported: list[str] = Field(default_factory=list)
    uma_profiles_supported: list[str] = Field(default_factory=list)


class TokenResponse(SolidWireModel):
    """Successful token endpoint response (RPT)."""

    access_token: str = Field(..., repr=False)
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = Field(default=None, repr=False)
    scope: Optional[str] = None
    pct: Optional[str] = Field(default=None, repr=False)
    upgraded: Optional[bool] = None


class RequiredClaims(SolidWireModel):
    """One entry of the ``required_claims`` list in a need_info response."""

    claim_token_format: list[str] = Field(default_factory=list)
    issuer: list[str] = Field(default_factory=list)
    claim_type: Optional[str] = None
    friendly_name: Optional[str] = None
    name: Optional[str] = None


class NeedInfo(SolidWireModel):
    """A need_info error response: more claims are required to issue a token."""

    ticket: str
    redirect_user: Optional[str] = None
    required_claims: list[RequiredClaims] = Field(default_factory=list)


@dataclass(frozen=True)
class ClaimToken:
    """A claim token pushed to the authorization server, with its format URI."""

    claim_token: str
    claim_token_type: str


@dataclass(frozen=True)
class TokenRequest:
    """Parameters of one uma-ticket grant request."""

    ticket: str
    pct: Optional[str] = None
    rpt: Optional[str] = None
    claim_token: Optional[ClaimToken] = None
    scopes: tuple[str, ...] = ()

    def to_form(self) -> dict[str, str]:
        form = {"grant_type": UMA_TICKET_GRANT, "ticket": self.ticket}
        if self.pct:
            form["pct"] = self.pct
        if self.rpt:
            form["rpt"] = self.rpt
        if self.claim_token is not None:
            form["claim_token"] = self.claim_token.claim_token
            form["claim_token_type"] = self.claim_token.claim_token_type
        if self.scopes:
            form["scope"] = " ".join(self.scopes)
        return form


ClaimMapper = Callable[[NeedInfo], Awaitable[Optional[ClaimToken]]]


class ClaimGatheringHandler(ABC):
    """Gathers a claim token in answer to a need_info requirement.

    Attributes:
        claim_token_format: Format URI of the tokens this handler produces.
        issuer: Issuer of those tokens, if fixed.
        claim_type: Claim type this handler satisfies.
    """

    claim_token_format: str = ID_TOKEN
    issuer: Optional[str] = None
    claim_type: Optional[str] = None

    def is_compatible_with(self, requirement: RequiredClaims) -> bool:
        if requirement.claim_token_format and (
            self.claim_token_format not in requirement.claim_token_format
        ):
            return False
        if requirement.issuer and self.issuer not in requirement.issuer:
            return False
        return requirement.claim_type is not None and requirement.claim_type == self.claim_type

    @abstractmethod
    async def gather(self) -> Optional[ClaimToken]: ...


class NeedInfoHandler:
    """Dispatches need_info requirements to the first compatible handler."""

    def __init__(self, handlers: Iterable[ClaimGatheringHandler] = ()) -> None:
        self._handlers: list[ClaimGatheringHandler] = list(handlers)

    def add_handler(self, handler: ClaimGatheringHandler) -> None:
        self._handlers.append(handler)

    async def get_token(self, need_info: NeedInfo) -> Optional[ClaimToken]:
        for requirement in need_info.required_claims:
            for handler in self._handlers:
                if handler.is_compatible_with(requirement):
                    return await handler.gather()
        return None


class _MetadataCacheEntry:
    def __init__(self, metadata: UmaMetadata, ttl: float) -> None:
        self.metadata = metadata
        self.expires_at = time.time() + ttl

    def is_expired(self) -> bool:
        return time.time() >= self.expires_at


def _error_code(response: httpx.Response) -> tuple[Optional[str], dict[str, Any]]:
    try:
        data = response.json()
    except ValueError:
        return None, {}
    if not isinstance(data, dict):
        return None, {}
    error = data.get("error")
    return (error if isinstance(error, str) else None), data


class UmaClient:
    """HTTP client for UMA discovery and the uma-ticket grant.

    Example:
        >>> client = UmaClient()
        >>> metadata = await client.metadata("https://as.example")
        >>> token = await client.token(
        ...     metadata.token_endpoint, TokenRequest(ticket="t"), NeedInfoHandler().get_token
        ... )
    """

    def __init__(
        self,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._max_iterations = max_iterations
        self._transport = transport
        self._timeout = timeout
        self._metadata_cache: dict[str, _MetadataCacheEntry] = {}
        self._lock = Lock()

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    def _client(self) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {"timeout": httpx.Timeout(self._timeout)}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def metadata(self, authorization_server: str) -> UmaMetadata:
        """Fetch (or return cached) metadata for ``authorization_server``.

        Raises:
            UmaError: On a non-200 response or an unusable metadata document.
            httpx.HTTPError: On network errors.
        """
        key = authorization_server.rstrip("/")
        with self._lock:
            entry = self._metadata_cache.get(key)
            if entry is not None and not entry.is_expired():
                return entry.metadata

        url = key + UMA_WELL_KNOWN_PATH
        async with self._client() as client:
            response = await client.get(url, headers={"Accept": "application/json"})

        if response.status_code != 200:
            raise UmaError(
                f"Unexpected response code during UMA discovery: {response.status_code}",
                response.status_code,
                response.text,
            )
        try:
            metadata = UmaMetadata.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UmaError(
                "Error while processing UMA metadata response", response.status_code, response.text
            ) from exc

        with self._lock:
            self._metadata_cache[key] = _MetadataCacheEntry(metadata, METADATA_CACHE_TTL_SECONDS)
        logger.info(
            "solid_auth.uma.discovered",
            authorization_server=sanitize_url(key),
            token_endpoint=sanitize_url(metadata.token_endpoint),
        )
        return metadata

    async def token(
        self,
        token_endpoint: str,
        request: TokenRequest,
        claim_mapper: ClaimMapper,
        *,
        proof_factory: Optional[ProofFactory] = None,
    ) -> TokenResponse:
        """Exchange a ticket for a token, following need_info responses.

        Args:
            token_endpoint: Token endpoint from the AS metadata.
            request: Initial grant parameters.
            claim_mapper: Called with each need_info response; returns the
                claim token for the next attempt (or None).
            proof_factory: Optional ``(method, uri) -> proof`` used to attach
                a fresh DPoP proof to every token request.

        Raises:
            RequestDeniedError: The AS answered request_denied.
            InvalidGrantError: The AS answered invalid_grant.
            InvalidScopeError: The AS answered invalid_scope.
            UmaError: Any other error, a need_info without a ticket, or more
                than ``max_iterations`` claim-gathering rounds.
            httpx.HTTPError: On network errors.
        """
        current = request
        async with self._client() as client:
            for iteration in range(1, self._max_iterations + 1):
                headers = {"Accept": "application/json"}
                if proof_factory is not None:
                    proof = proof_factory("POST", token_endpoint)
                    if proof:
                        headers["DPoP"] = proof
                response = await client.post(token_endpoint, data=current.to_form(), headers=headers)

                if response.status_code == 200:
                    try:
                        return TokenResponse.model_validate(response.json())
                    except (ValueError, ValidationError) as exc:
                        raise UmaError(
                            "Error while processing UMA token response",
                            response.status_code,
                            response.text,
                        ) from exc

                error, data = _error_code(response)
                logger.debug(
                    "solid_auth.uma.token_error",
                    token_endpoint=sanitize_url(token_endpoint),
                    status=response.status_code,
                    error=error,
                    iteration=iteration,
                    response=sanitize_for_logging(data),
                )
                if error == NEED_INFO:
                    if not data.get("ticket"):
                        raise UmaError(
                            "Missing ticket in need_info response",
                            response.status_code,
                            response.text,
                        )
                    try:
                        need_info = NeedInfo.model_validate(data)
                    except ValidationError as exc:
                        raise RequestDeniedError(response.status_code, response.text) from exc
                    claim_token = await claim_mapper(need_info)
                    logger.info(
                        "solid_auth.uma.need_info",
                        ticket=sanitize_token(need_info.ticket),
                        required_claims=len(need_info.required_claims),
                        gathered=claim_token is not None,
                    )
                    current = TokenRequest(
                        ticket=need_info.ticket,
                        claim_token=claim_token,
                        scopes=request.scopes,
                    )
                    continue
                if error == REQUEST_DENIED:
                    raise RequestDeniedError(response.status_code, response.text)
                if error == INVALID_GRANT:
                    raise InvalidGrantError(response.status_code, response.text)
                if error == INVALID_SCOPE:
                    raise InvalidScopeError(response.status_code, response.text)
                raise UmaError(
                    "Unexpected error response while performing token negotiation: "
                    f"{response.status_code}",
                    response.status_code,
                    response.text,
                )

        raise UmaError(
            f"Claim gathering stages exceeded configured maximum of {self._max_iterations}"
        )


def _normalize_token_type(token_type: str) -> str:
    lower = token_type.lower()
    if lower == "bearer":
        return "Bearer"
    if lower == DPOP_SCHEME.lower():
        return DPOP_SCHEME
    return token_type


class UmaAuthenticator(Authenticator):
    """Exchanges the ticket of one UMA challenge for an access token."""

    name = "UMA"

    def __init__(
        self,
        client: UmaClient,
        claim_handler: NeedInfoHandler,
        challenge: Challenge,
        priority: int,
    ) -> None:
        self._client = client
        self._claim_handler = claim_handler
        self.challenge = challenge
        self.priority = priority

    async def authenticate(
        self,
        session: Session,
        request: httpx.Request,
        algorithms: frozenset[str],
    ) -> Optional[Credential]:
        as_uri = self.challenge.parameters[AS_URI_PARAMETER]
        ticket = self.challenge.parameters[TICKET_PARAMETER]

        id_token = await session.get_credential(ID_TOKEN, str(request.url))
        claim_token = ClaimToken(id_token.token, ID_TOKEN) if id_token is not None else None
        principal = id_token.principal if id_token is not None else None

        metadata = await self._client.metadata(as_uri)

        candidates = [
            alg
            for alg in metadata.dpop_signing_alg_values_supported
            if not algorithms or alg in algorithms
        ]
        thumbprint = session.select_thumbprint(candidates) if candidates else None
        proof_factory: Optional[ProofFactory] = None
        if thumbprint is not None:

            def sign(method: str, uri: str) -> Optional[str]:
                return session.generate_proof(thumbprint, httpx.Request(method, uri))

            proof_factory = sign

        token = await self._client.token(
            metadata.token_endpoint,
            TokenRequest(ticket=ticket, claim_token=claim_token),
            self._claim_handler.get_token,
            proof_factory=proof_factory,
        )

        scheme = _normalize_token_type(token.token_type)
        bound: Optional[str] = None
        if scheme == DPOP_SCHEME:
            if thumbprint is None:
                raise UmaError(
                    "Authorization server issued a DPoP token without a negotiated proof key"
                )
            bound = thumbprint
        lifetime = token.expires_in if token.expires_in is not None else DEFAULT_TOKEN_LIFETIME_SECONDS
        logger.info(
            "solid_auth.uma.token_acquired",
            authorization_server=sanitize_url(as_uri),
            token_type=scheme,
            expires_in=lifetime,
        )
        return Credential(
            scheme=scheme,
            issuer=as_uri,
            token=token.access_token,
            expiration=datetime.now(timezone.utc) + timedelta(seconds=lifetime),
            principal=principal,
            proof_thumbprint=bound,
        )


class UmaAuthenticationProvider(AuthenticationProvider):
    """Provider answering UMA challenges with a ticket exchange.

    Example:
        >>> provider = UmaAuthenticationProvider(client=UmaClient(max_iterations=3))
        >>> authenticator = provider.get_authenticator(
        ...     Challenge(scheme="UMA", parameters={"as_uri": "https://as.example", "ticket": "t"})
        ... )
    """

    priority = 100

    def __init__(
        self,
        priority: int = 100,
        *,
        client: Optional[UmaClient] = None,
        claim_handlers: Iterable[ClaimGatheringHandler] = (),
    ) -> None:
        self.priority = priority
        self._client = client or UmaClient()
        self._claim_handlers = list(claim_handlers)

    def schemes(self) -> frozenset[str]:
        return frozenset({UMA_SCHEME})

    def get_authenticator(self, challenge: Challenge) -> Authenticator:
        """Build an authenticator for ``challenge``.

        Raises:
            UmaError: If the challenge is not UMA or lacks as_uri or ticket.
        """
        if (
            challenge.scheme.lower() != UMA_SCHEME.lower()
            or not challenge.get_parameter(AS_URI_PARAMETER)
            or not challenge.get_parameter(TICKET_PARAMETER)
        ):
            raise UmaError("Invalid challenge for UMA authentication")
        return UmaAuthenticator(
            self._client, NeedInfoHandler(self._claim_handlers), challenge, self.priority
        )


class UmaSession(BaseSession):
    """Composite session that adds UMA negotiation on top of other sessions.

    Long-lived credentials come from the first wrapped session that has one.

    Example:
        >>> session = UmaSession.of(openid_session)
        >>> sorted(session.supported_schemes())
        ['Bearer', 'DPoP', 'UMA']
    """

    def __init__(
        self,
        sessions: Iterable[Session] = (),
        *,
        proof_generator: Optional[ProofGenerator] = None,
        cache: Optional[CredentialCache] = None,
    ) -> None:
        inner = list(sessions)
        schemes: set[str] = {UMA_SCHEME}
        for session in inner:
            schemes.update(session.supported_schemes())
        principal = next((s.principal for s in inner if s.principal is not None), None)
        if proof_generator is None:
            proof_generator = next(
                (s.proof_generator for s in inner if isinstance(s, BaseSession)), None
            )
        super().__init__(
            principal=principal,
            schemes=schemes,
            proof_generator=proof_generator,
            cache=cache,
        )
        self._sessions = inner

    @classmethod
    def of(cls, *sessions: Session) -> UmaSession:
        return cls(sessions)

    async def get_credential(self, name: str, uri: str) -> Optional[Credential]:
        for session in self._sessions:
            credential = await session.get_credential(name, uri)
            if credential is not None:
                return credential
        return None

    def generate_proof(self, thumbprint: Optional[str], request: httpx.Request) -> Optional[str]:
        proof = super().generate_proof(thumbprint, request)
        if proof is not None:
            return proof
        for session in self._sessions:
            proof = session.generate_proof(thumbprint, request)
            if proof is not None:
                return proof
        return None

    def reset(self) -> None:
        super().reset()
        for session in self._sessions:
            session.reset()

"""Reactive authorization client.

Wraps an ``httpx.AsyncClient`` and authorizes requests only when the server
asks for it:

1. a request that already carries ``Authorization`` is sent untouched;
2. a credential cached for the request URI is used when present;
3. otherwise the request goes out anonymously, and a 401 answer is fed to
   the registry; a negotiated credential is applied and the request is
   resent exactly once.

Authentication failures never raise: the caller sees the original 401.
Transport errors (connection failures, timeouts, cancellation) propagate.

Example:
    >>> session = await OpenIdSession.from_id_token(id_token)
    >>> async with ReactiveAuthorizationClient(session, create_default_registry()) as client:
    ...     response = await client.request("GET", "https://pod.example/private/")
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import httpx

from solid_auth.auth.registry import AuthenticatorRegistry
from solid_auth.auth.session import Session
from solid_auth.errors import ProofGenerationError
from solid_auth.models.credential import Credential
from solid_auth.observability import get_logger
from solid_auth.utils.sanitization import sanitize_url

logger = get_logger(__name__)

AUTHORIZATION_HEADER = "Authorization"
DPOP_HEADER = "DPoP"
WWW_AUTHENTICATE_HEADER = "WWW-Authenticate"
UNAUTHORIZED = 401

DEFAULT_TIMEOUT = 30.0


class AuthState(str, Enum):
    """Steps a request goes through in the reactive client."""

    PASSTHROUGH = "passthrough"
    CACHED = "cached"
    UNAUTHENTICATED_SEND = "unauthenticated_send"
    NEGOTIATE = "negotiate"
    RETRY = "retry"
    DONE = "done"


class ReactiveAuthorizationClient:
    """HTTP client that negotiates credentials in response to 401 challenges.

    Attributes:
        session: Session supplying cached credentials, tokens and proofs.
        registry: Registry used to answer ``WWW-Authenticate`` challenges.
    """

    def __init__(
        self,
        session: Session,
        registry: AuthenticatorRegistry,
        *,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            session: Session the requests are authorized for.
            registry: Authenticator registry used on 401 responses.
            client: Existing httpx client; it is never closed by this object.
            transport: Transport for the owned client (ignored with ``client``).
            timeout: Timeout in seconds for the owned client.
        """
        self.session = session
        self.registry = registry
        if client is not None:
            self._client = client
            self._owns_client = False
        else:
            kwargs: dict[str, Any] = {"timeout": httpx.Timeout(timeout)}
            if transport is not None:
                kwargs["transport"] = transport
            self._client = httpx.AsyncClient(**kwargs)
            self._owns_client = True

    async def __aenter__(self) -> ReactiveAuthorizationClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if this object created it."""
        if self._owns_client:
            await self._client.aclose()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Build a request with the underlying client and ``send`` it."""
        return await self.send(self._client.build_request(method, url, **kwargs))

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send ``request``, negotiating authorization on a 401 answer.

        Returns:
            The final response. When negotiation fails this is the original
            401 response; when the single retry is also rejected it is the
            second 401.

        Raises:
            httpx.TransportError: On network errors or timeouts.
            ProofGenerationError: If a DPoP proof cannot be signed.
        """
        uri = sanitize_url(str(request.url))

        if AUTHORIZATION_HEADER in request.headers:
            self._transition(AuthState.PASSTHROUGH, request, uri)
            return await self._client.send(request)

        cached = self.session.from_cache(request)
        if cached is not None:
            self._transition(AuthState.CACHED, request, uri, scheme=cached.scheme)
            upgraded = await self._upgrade_request(request, cached)
            return await self._client.send(upgraded)

        self._transition(AuthState.UNAUTHENTICATED_SEND, request, uri)
        response = await self._client.send(request)
        if response.status_code != UNAUTHORIZED:
            self._transition(AuthState.DONE, request, uri, status=response.status_code)
            return response

        self._transition(AuthState.NEGOTIATE, request, uri)
        credential = await self._negotiate(request, response, uri)
        if credential is None:
            self._transition(AuthState.DONE, request, uri, status=response.status_code)
            return response

        self._transition(AuthState.RETRY, request, uri, scheme=credential.scheme)
        upgraded = await self._upgrade_request(request, credential)
        retried = await self._client.send(upgraded)
        self._transition(AuthState.DONE, request, uri, status=retried.status_code)
        return retried

    async def _negotiate(
        self, request: httpx.Request, response: httpx.Response, uri: str
    ) -> Optional[Credential]:
        challenges = response.headers.get_list(WWW_AUTHENTICATE_HEADER)
        try:
            return await self.registry.negotiate(self.session, request, challenges)
        except Exception as exc:
            logger.warning(
                "solid_auth.client.negotiation_failed",
                uri=uri,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

    async def _upgrade_request(
        self, request: httpx.Request, credential: Credential
    ) -> httpx.Request:
        """Copy ``request`` and apply ``credential`` (plus a DPoP proof if bound).

        Raises:
            ProofGenerationError: If a DPoP credential has no matching proof key.
        """
        headers = request.headers.copy()
        headers[AUTHORIZATION_HEADER] = credential.authorization_header()
        if credential.is_dpop:
            proof = self.session.generate_proof(credential.proof_thumbprint, request)
            if proof is None:
                raise ProofGenerationError(
                    None,
                    details={"uri": sanitize_url(str(request.url))},
                    message="No proof key matches the DPoP credential",
                )
            headers[DPOP_HEADER] = proof
        content = await request.aread()
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=content,
            extensions=dict(request.extensions),
        )

    @staticmethod
    def _transition(state: AuthState, request: httpx.Request, uri: str, **extra: Any) -> None:
        logger.debug(
            "solid_auth.client.state",
            state=state.value,
            method=request.method,
            uri=uri,
            **extra,
        )

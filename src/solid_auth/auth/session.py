"""Client-side authentication sessions.

A session owns the state that outlives a single request:

- one long-lived credential slot (e.g. an OpenID ID token) with a
  single-flight refresh,
- a per-resource cache of negotiated credentials,
- a DPoP proof generator,
- the set of challenge schemes it can answer.

``BaseSession`` implements all of it; concrete sessions only decide how the
long-lived credential is obtained.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from solid_auth.auth.cache import CredentialCache
from solid_auth.auth.dpop import ProofGenerator
from solid_auth.auth.provider import Authenticator
from solid_auth.models.credential import Credential
from solid_auth.observability import get_logger
from solid_auth.utils.sanitization import sanitize_url

logger = get_logger(__name__)

RefreshFunction = Callable[[], Awaitable[Optional[Credential]]]


class Session(ABC):
    """Authentication state shared by every request of one client identity."""

    @property
    @abstractmethod
    def id(self) -> str: ...

    @property
    @abstractmethod
    def principal(self) -> Optional[str]: ...

    @abstractmethod
    def supported_schemes(self) -> frozenset[str]: ...

    @abstractmethod
    async def get_credential(self, name: str, uri: str) -> Optional[Credential]: ...

    @abstractmethod
    def from_cache(self, request: httpx.Request) -> Optional[Credential]: ...

    @abstractmethod
    async def authenticate(
        self,
        authenticator: Authenticator,
        request: httpx.Request,
        algorithms: frozenset[str],
    ) -> Optional[Credential]: ...

    @abstractmethod
    def proof_algorithms(self) -> frozenset[str]: ...

    @abstractmethod
    def select_thumbprint(self, algorithms: Iterable[str]) -> Optional[str]: ...

    @abstractmethod
    def generate_proof(self, thumbprint: Optional[str], request: httpx.Request) -> Optional[str]: ...

    @abstractmethod
    def reset(self) -> None: ...


class BaseSession(Session):
    """Session with a refreshable credential slot, a per-URI cache and DPoP proofs.

    The long-lived credential is refreshed single-flight: concurrent callers
    that find it expired queue on one ``asyncio.Lock``; the first runs the
    refresh function and the rest observe its outcome without running it
    again. A refresh that raises raises the same error in every waiter.

    Example:
        >>> session = BaseSession(
        ...     credential_name="id_token",
        ...     refresh=fetch_id_token,
        ...     schemes={"Bearer"},
        ... )
        >>> credential = await session.get_credential("id_token", "https://pod.example/")
    """

    def __init__(
        self,
        *,
        session_id: Optional[str] = None,
        principal: Optional[str] = None,
        schemes: Iterable[str] = (),
        credential_name: Optional[str] = None,
        credential: Optional[Credential] = None,
        refresh: Optional[RefreshFunction] = None,
        proof_generator: Optional[ProofGenerator] = None,
        cache: Optional[CredentialCache] = None,
    ) -> None:
        """Initialize the session.

        Args:
            session_id: Stable identifier; a random UUID when omitted.
            principal: WebID or subject URI the session speaks for.
            schemes: Challenge schemes this session can answer.
            credential_name: Name under which the long-lived credential is served.
            credential: Initial long-lived credential.
            refresh: Async callable producing a new long-lived credential.
            proof_generator: DPoP proof generator; an ES256 one when omitted.
            cache: Per-URI credential cache; a default-sized one when omitted.
        """
        self._id = session_id or str(uuid.uuid4())
        self._principal = principal
        self._schemes = frozenset(schemes)
        self._credential_name = credential_name
        self._credential = credential
        self._refresh = refresh
        self._refresh_lock = asyncio.Lock()
        self._refresh_count = 0
        self._refresh_error: Optional[Exception] = None
        self._proof = proof_generator or ProofGenerator()
        self._cache = cache or CredentialCache()

    @property
    def id(self) -> str:
        return self._id

    @property
    def principal(self) -> Optional[str]:
        return self._principal

    @property
    def credential_name(self) -> Optional[str]:
        return self._credential_name

    @property
    def proof_generator(self) -> ProofGenerator:
        return self._proof

    def supported_schemes(self) -> frozenset[str]:
        return self._schemes

    async def get_credential(self, name: str, uri: str) -> Optional[Credential]:
        """Return the named long-lived credential, refreshing it if expired.

        Args:
            name: Credential name; only the session's own name is served.
            uri: Resource the credential is wanted for (used for logging).

        Returns:
            An unexpired credential, or None if none can be obtained.

        Raises:
            CredentialValidationError: If the refresh produced an invalid credential.
        """
        if self._credential_name is None or name != self._credential_name:
            return None

        current = self._credential
        if current is not None and not current.is_expired():
            return current

        observed = self._refresh_count
        async with self._refresh_lock:
            current = self._credential
            if current is not None and not current.is_expired():
                return current
            if self._refresh_count != observed:
                # a refresh completed while this caller waited
                if self._refresh_error is not None:
                    raise self._refresh_error
                return None
            if self._refresh is None:
                return None
            try:
                refreshed = await self._refresh()
            except Exception as exc:
                self._refresh_error = exc
                raise
            else:
                self._refresh_error = None
            finally:
                self._refresh_count += 1
            if refreshed is None or refreshed.is_expired():
                logger.warning(
                    "solid_auth.session.refresh_empty",
                    session_id=self._id,
                    credential=name,
                )
                return None
            self._credential = refreshed
            logger.info(
                "solid_auth.session.refreshed",
                session_id=self._id,
                credential=name,
                uri=sanitize_url(uri),
                expires_in=int(refreshed.seconds_remaining()),
            )
            return refreshed

    def from_cache(self, request: httpx.Request) -> Optional[Credential]:
        return self._cache.get(str(request.url))

    async def authenticate(
        self,
        authenticator: Authenticator,
        request: httpx.Request,
        algorithms: frozenset[str],
    ) -> Optional[Credential]:
        """Run ``authenticator`` and cache its credential for the request URI."""
        credential = await authenticator.authenticate(self, request, algorithms)
        if credential is not None:
            self._cache.set(str(request.url), credential)
            logger.debug(
                "solid_auth.session.credential_cached",
                session_id=self._id,
                authenticator=authenticator.name,
                scheme=credential.scheme,
                uri=sanitize_url(str(request.url)),
            )
        return credential

    def proof_algorithms(self) -> frozenset[str]:
        return self._proof.algorithms()

    def select_thumbprint(self, algorithms: Iterable[str]) -> Optional[str]:
        """Return the thumbprint of the first proof key matching ``algorithms``."""
        alg = self._proof.select_algorithm(algorithms)
        if alg is None:
            return None
        return self._proof.lookup_thumbprint(alg)

    def generate_proof(self, thumbprint: Optional[str], request: httpx.Request) -> Optional[str]:
        """Sign a DPoP proof for ``request`` with the key identified by ``thumbprint``.

        Returns:
            The proof, or None when the thumbprint matches no configured key.

        Raises:
            ProofGenerationError: If signing fails.
        """
        if thumbprint is None:
            return None
        alg = self._proof.lookup_algorithm(thumbprint)
        if alg is None:
            return None
        return self._proof.generate_proof(alg, str(request.url), request.method)

    def reset(self) -> None:
        """Drop the long-lived credential and every cached per-URI credential."""
        self._credential = None
        self._cache.clear_all()
        logger.info("solid_auth.session.reset", session_id=self._id)


class AnonymousSession(BaseSession):
    """Session without an identity.

    It holds no long-lived credential but can still take part in UMA ticket
    negotiation, which does not require one.
    """

    def __init__(
        self,
        *,
        proof_generator: Optional[ProofGenerator] = None,
        cache: Optional[CredentialCache] = None,
    ) -> None:
        super().__init__(schemes={"UMA"}, proof_generator=proof_generator, cache=cache)

"""Authenticator registry and challenge negotiation.

The registry maps challenge schemes (case-insensitively) to the provider
that answers them. It is built once from an explicit list of providers and
is read-only afterwards, so it can be shared by concurrent requests without
locking.

Negotiation turns the ``WWW-Authenticate`` values of a 401 response into
at most one credential: every supported challenge yields an authenticator,
the authenticators are ranked by descending priority (ties keep challenge
order), and only the highest-ranked one is run.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Optional, Sequence

import httpx

from solid_auth.auth.openid import OpenIdAuthenticationProvider
from solid_auth.auth.provider import AuthenticationProvider, Authenticator
from solid_auth.auth.session import Session
from solid_auth.auth.uma import (
    UMA_SCHEME,
    ClaimGatheringHandler,
    UmaAuthenticationProvider,
    UmaClient,
)
from solid_auth.errors import AuthenticationError
from solid_auth.headers import parse_www_authenticate
from solid_auth.headers._scanner import HeaderValues
from solid_auth.models.challenge import Challenge
from solid_auth.models.credential import Credential
from solid_auth.observability import get_logger
from solid_auth.utils.sanitization import sanitize_url

logger = get_logger(__name__)

ALGORITHMS_PARAMETER = "algs"

# Schemes that would send reusable secrets to the server
PROHIBITED_SCHEMES = frozenset({"basic", "digest"})


def session_supports_scheme(session: Session, scheme: str) -> bool:
    """Return True if ``session`` can answer a ``scheme`` challenge.

    UMA is always supported: ticket negotiation needs no prior identity.
    """
    lower = scheme.lower()
    if lower == UMA_SCHEME.lower():
        return True
    return any(supported.lower() == lower for supported in session.supported_schemes())


def collect_algorithms(challenges: Iterable[Challenge]) -> frozenset[str]:
    """Gather the whitespace-separated ``algs`` values of all challenges."""
    algorithms: set[str] = set()
    for challenge in challenges:
        value = challenge.get_parameter(ALGORITHMS_PARAMETER)
        if value:
            algorithms.update(value.split())
    return frozenset(algorithms)


class AuthenticatorRegistry:
    """Case-insensitive table of authentication providers keyed by scheme.

    Example:
        >>> registry = AuthenticatorRegistry([OpenIdAuthenticationProvider(), UmaAuthenticationProvider()])
        >>> credential = await registry.negotiate(session, request, response.headers.get_list("www-authenticate"))
    """

    def __init__(self, providers: Iterable[AuthenticationProvider] = ()) -> None:
        table: dict[str, AuthenticationProvider] = {}
        for provider in providers:
            for scheme in provider.schemes():
                key = scheme.lower()
                if key in PROHIBITED_SCHEMES:
                    logger.debug("solid_auth.registry.scheme_prohibited", scheme=scheme)
                    continue
                if key in table:
                    logger.debug(
                        "solid_auth.registry.scheme_replaced",
                        scheme=scheme,
                        provider=type(provider).__name__,
                    )
                table[key] = provider
        self._providers = MappingProxyType(table)

    def schemes(self) -> frozenset[str]:
        """Return the registered schemes, lower-cased."""
        return frozenset(self._providers)

    def get_provider(self, scheme: str) -> Optional[AuthenticationProvider]:
        return self._providers.get(scheme.lower())

    def authenticators(
        self, session: Session, challenges: Sequence[Challenge]
    ) -> list[Authenticator]:
        """Build and rank authenticators for the challenges ``session`` can answer.

        Returns:
            Authenticators sorted by descending priority; ties keep challenge order.
        """
        candidates: list[Authenticator] = []
        for challenge in challenges:
            provider = self.get_provider(challenge.scheme)
            if provider is None or not session_supports_scheme(session, challenge.scheme):
                continue
            try:
                candidates.append(provider.get_authenticator(challenge))
            except AuthenticationError as exc:
                logger.debug(
                    "solid_auth.registry.challenge_rejected",
                    scheme=challenge.scheme,
                    error=exc.message,
                )
        # sorted() is stable
        return sorted(candidates, key=lambda authenticator: authenticator.priority, reverse=True)

    async def negotiate(
        self,
        session: Session,
        request: httpx.Request,
        challenges: Optional[HeaderValues],
    ) -> Optional[Credential]:
        """Negotiate a credential for ``request`` from ``WWW-Authenticate`` values.

        Args:
            session: Session the credential is obtained for; it caches the result.
            request: The request that was answered with 401.
            challenges: Raw ``WWW-Authenticate`` header values.

        Returns:
            The negotiated credential, or None when no registered authenticator
            matches any challenge or the authenticator produced nothing.

        Raises:
            AuthenticationError: If the selected authenticator fails.
            httpx.HTTPError: On transport errors talking to an authorization server.
        """
        parsed = parse_www_authenticate(challenges)
        algorithms = collect_algorithms(parsed)
        ranked = self.authenticators(session, parsed)
        if not ranked:
            logger.debug(
                "solid_auth.negotiate.no_authenticator",
                uri=sanitize_url(str(request.url)),
                schemes=[challenge.scheme for challenge in parsed],
            )
            return None

        selected = ranked[0]
        logger.info(
            "solid_auth.negotiate.selected",
            uri=sanitize_url(str(request.url)),
            authenticator=selected.name,
            priority=selected.priority,
            candidates=len(ranked),
        )
        return await session.authenticate(selected, request, algorithms)


def create_default_registry(
    *,
    uma_client: Optional[UmaClient] = None,
    claim_handlers: Iterable[ClaimGatheringHandler] = (),
) -> AuthenticatorRegistry:
    """Build a registry with the OpenID (priority 50) and UMA (priority 100) providers."""
    return AuthenticatorRegistry(
        [
            OpenIdAuthenticationProvider(),
            UmaAuthenticationProvider(client=uma_client, claim_handlers=claim_handlers),
        ]
    )

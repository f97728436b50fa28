"""OpenID Connect discovery for Solid-OIDC providers.

Resolves an issuer to its token endpoint and JWKS location through
``{issuer}/.well-known/openid-configuration``.
"""

from __future__ import annotations

import time
from threading import Lock
from typing import Any, Optional

import httpx
from authlib.oidc.discovery import get_well_known_url
from pydantic import Field

from solid_auth.models.base import SolidWireModel
from solid_auth.observability import get_logger

logger = get_logger(__name__)

DISCOVERY_CACHE_TTL_SECONDS = 3600.0


class _DiscoveryCacheEntry:
    def __init__(self, config: "OIDCConfig", ttl: float) -> None:
        self.config = config
        self.expires_at = time.time() + ttl

    def is_expired(self) -> bool:
        return time.time() >= self.expires_at


class OIDCConfig(SolidWireModel):
    """Subset of OpenID Provider Metadata used by the client.

    Attributes:
        issuer: Provider issuer identifier.
        token_endpoint: OAuth2 token endpoint URL.
        jwks_uri: JWKS endpoint URL for ID-token signature verification.
        dpop_signing_alg_values_supported: DPoP algorithms the provider accepts.
        token_endpoint_auth_methods_supported: Client authentication methods.
    """

    issuer: str = Field(..., description="Provider issuer identifier")
    token_endpoint: str = Field(..., description="OAuth2 token endpoint URL")
    jwks_uri: str = Field(..., description="JWKS endpoint URL")
    dpop_signing_alg_values_supported: list[str] = Field(default_factory=list)
    token_endpoint_auth_methods_supported: list[str] = Field(default_factory=list)


class OIDCDiscovery:
    """OpenID Connect discovery client with a one-hour cache.

    Example:
        >>> discovery = OIDCDiscovery("https://idp.example")
        >>> config = await discovery.discover()
        >>> config.token_endpoint
        'https://idp.example/token'
    """

    def __init__(
        self,
        issuer_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._issuer_url = issuer_url.rstrip("/")
        self._transport = transport
        self._cache_entry: Optional[_DiscoveryCacheEntry] = None
        self._lock = Lock()

    async def discover(self) -> OIDCConfig:
        """Fetch and parse the provider configuration, using the cache when fresh.

        Raises:
            httpx.HTTPError: On network or protocol errors.
            ValueError: If issuer, token_endpoint or jwks_uri is missing.
        """
        with self._lock:
            if self._cache_entry is not None and not self._cache_entry.is_expired():
                return self._cache_entry.config

        config = await self._fetch_discovery()

        with self._lock:
            self._cache_entry = _DiscoveryCacheEntry(config, DISCOVERY_CACHE_TTL_SECONDS)
        return config

    async def _fetch_discovery(self) -> OIDCConfig:
        url = get_well_known_url(self._issuer_url, external=True)

        kwargs: dict[str, Any] = {"timeout": httpx.Timeout(10.0)}
        if self._transport is not None:
            kwargs["transport"] = self._transport

        async with httpx.AsyncClient(**kwargs) as client:
            resp = await client.get(url, headers={"Accept": "application/json"})
            resp.raise_for_status()
            data = resp.json()

        for required in ("issuer", "token_endpoint", "jwks_uri"):
            value = data.get(required)
            if not value or not isinstance(value, str):
                raise ValueError(f"Discovery response missing required '{required}'")

        config = OIDCConfig.model_validate(data)
        logger.info("solid_auth.oidc.discovered", issuer=config.issuer)
        return config

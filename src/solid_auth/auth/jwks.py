"""JWKS-based ID token signature verification.

Fetches the provider's JSON Web Key Set and verifies token signatures with
joserfc. Keys are cached for 24 hours; an unknown key id triggers a single
refetch to follow key rotation.
"""

from __future__ import annotations

import time
from threading import Lock
from typing import Any, Optional

import httpx
from joserfc import jwk
from joserfc import jwt as jose_jwt
from joserfc.errors import JoseError

from solid_auth.observability import get_logger

logger = get_logger(__name__)

JWKS_CACHE_TTL_SECONDS = 86400.0

# Signature algorithms accepted for ID tokens
ID_TOKEN_ALGORITHMS = [
    "RS256",
    "RS384",
    "RS512",
    "PS256",
    "PS384",
    "PS512",
    "ES256",
    "ES384",
    "ES512",
    "EdDSA",
]

Claims = dict[str, Any]


class _JWKSCacheEntry:
    def __init__(self, key_set: jwk.KeySet, ttl: float) -> None:
        self.key_set = key_set
        self.expires_at = time.time() + ttl

    def is_expired(self) -> bool:
        return time.time() >= self.expires_at


async def fetch_keys(
    jwks_uri: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> jwk.KeySet:
    """Fetch a JWKS document and return it as a joserfc KeySet.

    Raises:
        httpx.HTTPError: On network or protocol errors.
    """
    kwargs: dict[str, Any] = {"timeout": httpx.Timeout(10.0)}
    if transport is not None:
        kwargs["transport"] = transport

    async with httpx.AsyncClient(**kwargs) as client:
        resp = await client.get(jwks_uri)
        resp.raise_for_status()
        data = resp.json()

    key_set = jwk.KeySet.import_key_set(data)
    logger.info("solid_auth.jwks.fetched", uri=jwks_uri, key_count=len(key_set.keys))
    return key_set


def verify_signature(token: str, key_set: jwk.KeySet) -> Claims:
    """Verify the JWT signature and return its claims.

    Claim values (exp, iss, aud...) are not checked here.

    Raises:
        JoseError: If the signature is invalid or the token is malformed.
    """
    token_obj = jose_jwt.decode(token, key_set, algorithms=ID_TOKEN_ALGORITHMS)
    return dict(token_obj.claims)


class JWKSValidator:
    """JWKS fetcher and signature verifier with key rotation support.

    Example:
        >>> validator = JWKSValidator("https://idp.example/jwks")
        >>> claims = await validator.validate_token(id_token)
    """

    def __init__(
        self,
        jwks_uri: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._jwks_uri = jwks_uri
        self._transport = transport
        self._keys_cache: Optional[_JWKSCacheEntry] = None
        self._lock = Lock()

    @property
    def jwks_uri(self) -> str:
        return self._jwks_uri

    async def fetch_keys(self) -> jwk.KeySet:
        """Return the cached KeySet, fetching it when missing or stale."""
        with self._lock:
            if self._keys_cache is not None and not self._keys_cache.is_expired():
                return self._keys_cache.key_set

        key_set = await fetch_keys(self._jwks_uri, transport=self._transport)

        with self._lock:
            self._keys_cache = _JWKSCacheEntry(key_set, JWKS_CACHE_TTL_SECONDS)
        return key_set

    def _invalidate_keys_cache(self) -> None:
        with self._lock:
            self._keys_cache = None

    async def validate_token(self, token: str) -> Claims:
        """Verify ``token`` with cached keys, refetching once on failure.

        Raises:
            JoseError: If verification fails after the refetch.
            httpx.HTTPError: On network errors during fetch.
        """
        key_set = await self.fetch_keys()
        try:
            return verify_signature(token, key_set)
        except JoseError:
            self._invalidate_keys_cache()
            key_set = await self.fetch_keys()
            return verify_signature(token, key_set)

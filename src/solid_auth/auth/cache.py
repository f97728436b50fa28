"""Per-resource credential cache for solid_auth sessions.

Negotiated credentials are cached per request URI so that later requests
to the same resource skip the 401 round trip. Keys are normalized by
dropping the fragment, which does not affect authorization scope.

The cache uses an OrderedDict with LRU eviction once max_size is reached.
An entry lives until its credential expires or the default TTL elapses,
whichever comes first.
"""

import time
from collections import OrderedDict
from threading import Lock
from typing import Optional
from urllib.parse import urldefrag

from solid_auth.models.credential import Credential

# Upper bound on how long an entry may live, in seconds
DEFAULT_TTL = 3600.0

DEFAULT_MAX_SIZE = 1000


def normalize_cache_key(uri: str) -> str:
    """Strip the fragment from ``uri``.

    Example:
        >>> normalize_cache_key("https://pod.example/doc#me")
        'https://pod.example/doc'
    """
    return urldefrag(uri)[0]


class CacheEntry:
    """Cache entry holding a credential and its monotonic deadline."""

    def __init__(self, credential: Credential, ttl: float) -> None:
        self.credential = credential
        self.expires_at = time.monotonic() + ttl

    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at or self.credential.is_expired()


class CredentialCache:
    """Thread-safe in-memory LRU cache of credentials keyed by resource URI.

    Reads and writes to distinct keys do not interfere; concurrent writes to
    the same key are resolved by the last writer.

    Example:
        >>> cache = CredentialCache(max_size=100)
        >>> cache.set("https://pod.example/doc#frag", credential)
        >>> cache.get("https://pod.example/doc") is credential
        True
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = Lock()
        self._default_ttl = default_ttl
        self._max_size = max_size

    def get(self, uri: str) -> Optional[Credential]:
        key = normalize_cache_key(uri)
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._cache[key]
                return None
            self._cache.move_to_end(key)
            return entry.credential

    def set(self, uri: str, credential: Credential, ttl: Optional[float] = None) -> None:
        """Store ``credential`` for ``uri``; expired credentials are not stored."""
        if credential.is_expired():
            return
        if ttl is None:
            ttl = self._default_ttl
        ttl = min(ttl, credential.seconds_remaining())
        key = normalize_cache_key(uri)
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            elif self._max_size > 0:
                while len(self._cache) >= self._max_size:
                    self._cache.popitem(last=False)
            self._cache[key] = CacheEntry(credential, ttl)

    def clear_all(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._cache)

    @property
    def max_size(self) -> int:
        return self._max_size

    def cleanup_expired(self) -> int:
        """Remove all expired entries from the cache.

        Returns:
            Number of expired entries removed
        """
        with self._lock:
            expired = [key for key, entry in self._cache.items() if entry.is_expired()]
            for key in expired:
                del self._cache[key]
            return len(expired)

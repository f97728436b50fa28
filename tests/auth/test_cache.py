"""Tests for the per-URI credential cache."""

import time

from solid_auth.auth.cache import CredentialCache, normalize_cache_key
from tests.factories import make_credential


def test_normalize_cache_key_strips_fragment() -> None:
    assert normalize_cache_key("https://pod.example/doc#me") == "https://pod.example/doc"
    assert normalize_cache_key("https://pod.example/doc?q=1") == "https://pod.example/doc?q=1"


class TestCredentialCache:
    """Tests for CredentialCache."""

    def test_set_and_get(self) -> None:
        cache = CredentialCache()
        credential = make_credential()

        cache.set("https://pod.example/doc", credential)

        assert cache.get("https://pod.example/doc") is credential
        assert cache.get("https://pod.example/other") is None

    def test_fragment_does_not_affect_lookup(self) -> None:
        cache = CredentialCache()
        credential = make_credential()

        cache.set("https://pod.example/doc#a", credential)

        assert cache.get("https://pod.example/doc#b") is credential

    def test_expired_credentials_are_not_stored(self) -> None:
        cache = CredentialCache()

        cache.set("https://pod.example/doc", make_credential(expires_in=-5))

        assert cache.size() == 0

    def test_entry_expires_with_its_credential(self) -> None:
        cache = CredentialCache()

        cache.set("https://pod.example/doc", make_credential(expires_in=0.05))
        time.sleep(0.1)

        assert cache.get("https://pod.example/doc") is None
        assert cache.size() == 0

    def test_entry_respects_default_ttl(self) -> None:
        cache = CredentialCache(default_ttl=0.05)

        cache.set("https://pod.example/doc", make_credential(expires_in=3600))
        time.sleep(0.1)

        assert cache.get("https://pod.example/doc") is None

    def test_last_writer_wins(self) -> None:
        cache = CredentialCache()
        second = make_credential(token="second")

        cache.set("https://pod.example/doc", make_credential(token="first"))
        cache.set("https://pod.example/doc", second)

        assert cache.get("https://pod.example/doc") is second
        assert cache.size() == 1

    def test_lru_eviction(self) -> None:
        cache = CredentialCache(max_size=2)
        cache.set("https://pod.example/a", make_credential())
        cache.set("https://pod.example/b", make_credential())

        cache.get("https://pod.example/a")
        cache.set("https://pod.example/c", make_credential())

        assert cache.get("https://pod.example/a") is not None
        assert cache.get("https://pod.example/b") is None
        assert cache.get("https://pod.example/c") is not None
        assert cache.max_size == 2

    def test_clear_all(self) -> None:
        cache = CredentialCache()
        cache.set("https://pod.example/a", make_credential())
        cache.set("https://pod.example/b#frag", make_credential())

        cache.clear_all()
        assert cache.size() == 0

    def test_cleanup_expired(self) -> None:
        cache = CredentialCache()
        cache.set("https://pod.example/short", make_credential(expires_in=0.05))
        cache.set("https://pod.example/long", make_credential(expires_in=3600))
        time.sleep(0.1)

        assert cache.cleanup_expired() == 1
        assert cache.size() == 1

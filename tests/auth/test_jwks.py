"""Unit tests for JWKS fetching and ID-token signature verification."""

from typing import Any

import httpx
import pytest
from joserfc import jwk
from joserfc.errors import JoseError

from solid_auth.auth.jwks import JWKSValidator, fetch_keys, verify_signature

JWKS_URI = "https://idp.example/jwks"


async def test_fetch_keys_returns_key_set(jwks_document: dict[str, Any]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == JWKS_URI
        return httpx.Response(200, json=jwks_document)

    key_set = await fetch_keys(JWKS_URI, transport=httpx.MockTransport(handler))

    assert len(key_set.keys) == 1


def test_verify_signature(jwks_document: dict[str, Any], make_id_token) -> None:
    key_set = jwk.KeySet.import_key_set(jwks_document)

    claims = verify_signature(make_id_token(sub="alice"), key_set)

    assert claims["sub"] == "alice"


def test_verify_signature_rejects_foreign_key(jwks_document: dict[str, Any], make_id_token) -> None:
    key_set = jwk.KeySet.import_key_set(jwks_document)
    other = jwk.ECKey.generate_key("P-256", parameters={"kid": "test-key-1"})

    with pytest.raises(JoseError):
        verify_signature(make_id_token(key=other), key_set)


class TestJWKSValidator:
    """Tests for JWKSValidator caching and key rotation."""

    async def test_keys_are_cached(self, jwks_document: dict[str, Any], make_id_token) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=jwks_document)

        validator = JWKSValidator(JWKS_URI, transport=httpx.MockTransport(handler))

        await validator.validate_token(make_id_token())
        await validator.validate_token(make_id_token())

        assert calls == 1
        assert validator.jwks_uri == JWKS_URI

    async def test_refetches_once_after_rotation(
        self, jwks_document: dict[str, Any], make_id_token
    ) -> None:
        """A signature failure invalidates the cache and retries with fresh keys."""
        stale = {"keys": [jwk.ECKey.generate_key("P-256").as_dict(private=False)]}
        documents = [stale, jwks_document]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=documents.pop(0))

        validator = JWKSValidator(JWKS_URI, transport=httpx.MockTransport(handler))

        claims = await validator.validate_token(make_id_token(sub="rotated"))

        assert claims["sub"] == "rotated"
        assert documents == []

    async def test_raises_when_still_invalid_after_refetch(self, make_id_token) -> None:
        stale = {"keys": [jwk.ECKey.generate_key("P-256").as_dict(private=False)]}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=stale)

        validator = JWKSValidator(JWKS_URI, transport=httpx.MockTransport(handler))

        with pytest.raises(JoseError):
            await validator.validate_token(make_id_token())

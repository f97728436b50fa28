"""Shared pytest fixtures for solid_auth tests.

Provides signing keys, a JWKS document and an ID-token factory so that
individual test modules do not have to repeat JOSE boilerplate.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

import pytest
from joserfc import jwk
from joserfc import jwt as jose_jwt

from solid_auth.auth.dpop import ProofGenerator
from tests.factories import AUDIENCE, ISSUER, SIGNING_KEY_ID, WEBID

IdTokenFactory = Callable[..., str]


@pytest.fixture(scope="session")
def signing_key() -> jwk.ECKey:
    """EC P-256 key used by the fake identity provider to sign ID tokens."""
    return jwk.ECKey.generate_key("P-256", parameters={"kid": SIGNING_KEY_ID})


@pytest.fixture
def jwks_document(signing_key: jwk.ECKey) -> dict[str, Any]:
    """Public JWKS document exposing ``signing_key``."""
    return {"keys": [signing_key.as_dict(private=False)]}


@pytest.fixture
def make_id_token(signing_key: jwk.ECKey) -> IdTokenFactory:
    """Factory for signed ID tokens; keyword arguments override claims.

    Passing a claim with value None removes it from the token.
    """

    def _make(key: Optional[jwk.ECKey] = None, **overrides: Any) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "user-123",
            "aud": [AUDIENCE],
            "webid": WEBID,
            "iat": now,
            "exp": now + 3600,
        }
        claims.update(overrides)
        claims = {name: value for name, value in claims.items() if value is not None}
        header = {"alg": "ES256", "typ": "JWT", "kid": SIGNING_KEY_ID}
        return jose_jwt.encode(header, claims, key or signing_key, algorithms=["ES256"])

    return _make


@pytest.fixture
def proof_generator() -> ProofGenerator:
    return ProofGenerator()


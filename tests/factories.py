"""Shared test data factories for solid_auth tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from solid_auth.models.credential import Credential

ISSUER = "https://idp.example"
WEBID = "https://id.example/profile#me"
AUDIENCE = "solid"
SIGNING_KEY_ID = "test-key-1"


def make_credential(
    scheme: str = "Bearer",
    token: str = "token-value",
    expires_in: float = 3600,
    **kwargs: Any,
) -> Credential:
    """Build a Credential expiring ``expires_in`` seconds from now.

    Args:
        scheme: Authorization scheme.
        token: Raw token value.
        expires_in: Seconds until expiration; negative for an expired credential.
        **kwargs: Extra Credential fields (issuer, principal, proof_thumbprint).
    """
    return Credential(
        scheme=scheme,
        issuer=kwargs.pop("issuer", ISSUER),
        token=token,
        expiration=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **kwargs,
    )

"""Credential value object shared by sessions, authenticators and the client."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field, field_validator

from solid_auth.models.base import SolidBaseModel

DPOP_SCHEME = "DPoP"


class Credential(SolidBaseModel):
    """An immutable authentication credential.

    Created by an Authenticator or by ID-token parsing and read by the
    reactive client to build the ``Authorization`` header. A credential
    becomes stale once ``expiration`` is no longer strictly in the future;
    no grace period is applied at this layer.

    Attributes:
        scheme: Authorization scheme, e.g. "Bearer" or "DPoP".
        issuer: URI of the issuing authority.
        token: The raw token value.
        expiration: Timezone-aware instant after which the token is invalid.
        principal: Optional WebID or subject URI the token speaks for.
        proof_thumbprint: Optional JWK thumbprint of the key the token is bound to.
    """

    scheme: str = Field(..., min_length=1, description="Authorization scheme")
    issuer: str = Field(..., description="URI of the issuing authority")
    token: str = Field(..., repr=False, description="Raw token value")
    expiration: datetime = Field(..., description="Instant after which the token is invalid")
    principal: Optional[str] = Field(default=None, description="WebID or subject URI")
    proof_thumbprint: Optional[str] = Field(
        default=None, description="RFC 7638 thumbprint of the bound proof key"
    )

    @field_validator("expiration")
    @classmethod
    def _require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Return True unless the expiration is strictly after ``now``.

        Args:
            now: Instant to compare against; defaults to the current UTC time.
        """
        current = now or datetime.now(timezone.utc)
        return not self.expiration > current

    def seconds_remaining(self, now: Optional[datetime] = None) -> float:
        """Seconds until expiration (negative once expired)."""
        current = now or datetime.now(timezone.utc)
        return (self.expiration - current).total_seconds()

    @property
    def is_dpop(self) -> bool:
        return self.scheme.lower() == DPOP_SCHEME.lower()

    def authorization_header(self) -> str:
        """Render the ``Authorization`` header value, ``"<scheme> <token>"``."""
        return f"{self.scheme} {self.token}"

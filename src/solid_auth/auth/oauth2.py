"""OAuth2 client_credentials flow for Solid-OIDC clients.

A client registered with a Solid-OIDC provider obtains its ID token with
the client_credentials grant; the provider answers with an ``id_token``
alongside the access token. The wire format is owned by Authlib's
AsyncOAuth2Client.
"""

import time
from typing import Any, Optional

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client
from pydantic import Field

from solid_auth.models.base import SolidBaseModel
from solid_auth.observability import get_logger
from solid_auth.utils.sanitization import sanitize_url

logger = get_logger(__name__)

DEFAULT_SCOPE = "openid webid"
DEFAULT_AUTH_METHOD = "client_secret_basic"
SUPPORTED_AUTH_METHODS = frozenset({"client_secret_basic", "client_secret_post"})
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
DEFAULT_HTTP_TIMEOUT = 10.0


class Token(SolidBaseModel):
    """Token endpoint response for the client_credentials grant.

    Attributes:
        access_token: The opaque or JWT access token.
        id_token: The OpenID ID token, when the provider returned one.
        expires_at: Unix timestamp when the access token expires.
        token_type: Token type, "Bearer" or "DPoP".
    """

    access_token: str = Field(..., repr=False, description="Access token")
    id_token: Optional[str] = Field(default=None, repr=False, description="OpenID ID token")
    expires_at: int = Field(..., description="Unix timestamp when the token expires")
    token_type: str = Field(default="Bearer", description="Token type for Authorization header")


def _parse_token_response(raw_token: dict[str, Any]) -> Token:
    """Convert Authlib's raw token dict into a Token model."""
    if "expires_at" in raw_token:
        expires_at = int(raw_token["expires_at"])
    elif "expires_in" in raw_token:
        expires_at = int(time.time()) + int(raw_token["expires_in"])
    else:
        expires_at = int(time.time()) + DEFAULT_TOKEN_LIFETIME_SECONDS

    return Token(
        access_token=raw_token["access_token"],
        id_token=raw_token.get("id_token"),
        expires_at=expires_at,
        token_type=raw_token.get("token_type", "Bearer"),
    )


class ClientCredentials:
    """Fetches tokens with the client_credentials grant.

    Example:
        >>> client = ClientCredentials(
        ...     client_id="my-app",
        ...     client_secret="secret",
        ...     token_url="https://idp.example/token",
        ... )
        >>> token = await client.fetch_token()
        >>> token.id_token
        'eyJhbGciOi...'
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        *,
        scope: Optional[str] = DEFAULT_SCOPE,
        auth_method: str = DEFAULT_AUTH_METHOD,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            client_id: OAuth2 client ID from the provider.
            client_secret: OAuth2 client secret from the provider.
            token_url: URL of the token endpoint.
            scope: Space-separated scopes to request.
            auth_method: "client_secret_basic" or "client_secret_post".
            transport: Optional httpx transport for testing (e.g. MockTransport).

        Raises:
            ValueError: If ``auth_method`` is not supported.
        """
        if auth_method not in SUPPORTED_AUTH_METHODS:
            raise ValueError(f"Unsupported token endpoint auth method: {auth_method}")
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._scope = scope
        self._auth_method = auth_method
        self._transport = transport

    @property
    def token_url(self) -> str:
        return self._token_url

    async def fetch_token(self) -> Token:
        """Obtain a new token from the token endpoint.

        Raises:
            authlib.integrations.base_client.errors.OAuthError: The provider
                returned an OAuth2 error response.
            httpx.HTTPError: Network or transport error.
        """
        kwargs: dict[str, Any] = {"timeout": httpx.Timeout(DEFAULT_HTTP_TIMEOUT)}
        if self._transport is not None:
            kwargs["transport"] = self._transport

        async with AsyncOAuth2Client(
            client_id=self._client_id,
            client_secret=self._client_secret,
            scope=self._scope,
            token_endpoint_auth_method=self._auth_method,
            **kwargs,
        ) as client:
            raw_token: dict[str, Any] = await client.fetch_token(
                url=self._token_url,
                grant_type="client_credentials",
            )

        token = _parse_token_response(raw_token)
        logger.info(
            "solid_auth.oauth2.token_acquired",
            token_endpoint=sanitize_url(self._token_url),
            token_type=token.token_type,
            has_id_token=token.id_token is not None,
            expires_in=token.expires_at - int(time.time()),
        )
        return token

"""Tests for the reactive authorization client.

The resource server and authorization server are simulated with
httpx.MockTransport handlers that record every request they receive.
"""

import json
from typing import Callable, Optional

import httpx
import pytest
from joserfc import jws

from solid_auth.auth.cache import CredentialCache
from solid_auth.auth.openid import ID_TOKEN
from solid_auth.auth.registry import create_default_registry
from solid_auth.auth.session import AnonymousSession, BaseSession
from solid_auth.auth.uma import UmaClient
from solid_auth.errors import ProofGenerationError
from solid_auth.models.credential import DPOP_SCHEME
from solid_auth.transport import AuthState, ReactiveAuthorizationClient
from tests.factories import make_credential

RESOURCE = "https://pod.example/private/doc"
AS_URI = "https://as.example"

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingServer:
    """Wraps a handler and keeps every request it answers."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def for_host(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]


def protected(challenge: str, accepted: Optional[str] = None) -> Handler:
    """Resource answering 401 with ``challenge`` unless ``accepted`` is presented."""

    def handler(request: httpx.Request) -> httpx.Response:
        authorization = request.headers.get("Authorization")
        if authorization is not None and (accepted is None or authorization == accepted):
            return httpx.Response(200, text="secret")
        return httpx.Response(401, headers={"WWW-Authenticate": challenge})

    return handler


def id_token_session(**kwargs) -> BaseSession:
    return BaseSession(
        schemes={"Bearer", "DPoP"},
        credential_name=ID_TOKEN,
        credential=make_credential(token="id-token"),
        **kwargs,
    )


def make_client(session, handler: Handler) -> tuple[ReactiveAuthorizationClient, RecordingServer]:
    server = RecordingServer(handler)
    transport = httpx.MockTransport(server)
    registry = create_default_registry(uma_client=UmaClient(transport=transport))
    return ReactiveAuthorizationClient(session, registry, transport=transport), server


class TestStateMachine:
    """Tests for the request state transitions."""

    async def test_non_401_is_returned_without_negotiation(self) -> None:
        client, server = make_client(id_token_session(), lambda r: httpx.Response(200, text="public"))

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 200
        assert len(server.requests) == 1
        assert "Authorization" not in server.requests[0].headers

    @pytest.mark.parametrize("status", [403, 404, 500])
    async def test_other_errors_are_not_retried(self, status: int) -> None:
        client, server = make_client(id_token_session(), lambda r: httpx.Response(status))

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == status
        assert len(server.requests) == 1

    async def test_explicit_authorization_passes_through(self) -> None:
        client, server = make_client(id_token_session(), protected("Bearer", accepted="Bearer nope"))

        async with client:
            response = await client.request(
                "GET", RESOURCE, headers={"Authorization": "Bearer caller"}
            )

        assert response.status_code == 401
        assert len(server.requests) == 1
        assert server.requests[0].headers["Authorization"] == "Bearer caller"

    async def test_401_negotiates_and_retries_once(self) -> None:
        session = id_token_session()
        client, server = make_client(session, protected('Bearer realm="pod"'))

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 200
        assert response.text == "secret"
        assert len(server.requests) == 2
        assert "Authorization" not in server.requests[0].headers
        assert server.requests[1].headers["Authorization"] == "Bearer id-token"
        assert session.from_cache(server.requests[1]) is not None

    async def test_second_401_is_returned_as_is(self) -> None:
        client, server = make_client(
            id_token_session(), protected('Bearer error="invalid_token"', accepted="never")
        )

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 401
        assert len(server.requests) == 2

    async def test_cached_credential_skips_the_anonymous_attempt(self) -> None:
        client, server = make_client(id_token_session(), protected("Bearer"))

        async with client:
            await client.request("GET", RESOURCE)
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 200
        assert len(server.requests) == 3
        assert server.requests[2].headers["Authorization"] == "Bearer id-token"

    async def test_cache_is_per_uri(self) -> None:
        client, server = make_client(id_token_session(), protected("Bearer"))

        async with client:
            await client.request("GET", RESOURCE)
            await client.request("GET", "https://pod.example/private/other")

        assert len(server.requests) == 4
        assert "Authorization" not in server.requests[2].headers

    async def test_states_are_logged(self) -> None:
        client, _ = make_client(id_token_session(), protected("Bearer"))
        states: list[str] = []
        original = ReactiveAuthorizationClient._transition

        def record(state, request, uri, **extra) -> None:
            states.append(state)
            original(state, request, uri, **extra)

        client._transition = record  # type: ignore[method-assign]
        async with client:
            await client.request("GET", RESOURCE)

        assert states == [
            AuthState.UNAUTHENTICATED_SEND,
            AuthState.NEGOTIATE,
            AuthState.RETRY,
            AuthState.DONE,
        ]


class TestNegotiationFailures:
    """Authentication failures surface as the original 401."""

    async def test_unsupported_challenge(self) -> None:
        client, server = make_client(id_token_session(), protected('Basic realm="pod"'))

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="pod"'
        assert len(server.requests) == 1

    async def test_missing_challenge_header(self) -> None:
        client, server = make_client(id_token_session(), lambda r: httpx.Response(401))

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 401
        assert len(server.requests) == 1

    async def test_authenticator_error_returns_original_401(self) -> None:
        session = BaseSession(schemes={"Bearer"}, credential_name=ID_TOKEN)
        client, server = make_client(session, protected("Bearer"))

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 401
        assert len(server.requests) == 1

    async def test_authorization_server_failure_returns_original_401(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "as.example":
                return httpx.Response(500, text="down")
            return protected(f'UMA as_uri="{AS_URI}", ticket="t1"')(request)

        client, server = make_client(AnonymousSession(), handler)

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 401
        assert len(server.for_host("pod.example")) == 1

    async def test_transport_errors_propagate(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(id_token_session(), handler)

        async with client:
            with pytest.raises(httpx.ConnectError):
                await client.request("GET", RESOURCE)


class TestUpgradedRequest:
    """Tests for the copy of the request sent on retry."""

    async def test_body_and_headers_are_copied(self) -> None:
        client, server = make_client(id_token_session(), protected("Bearer"))

        async with client:
            response = await client.request(
                "PUT",
                RESOURCE,
                content=b"<> a <#Thing> .",
                headers={"Content-Type": "text/turtle", "X-Trace": "abc"},
            )

        assert response.status_code == 200
        first, retry = server.requests
        assert retry.method == "PUT"
        assert retry.content == first.content == b"<> a <#Thing> ."
        assert retry.headers["Content-Type"] == "text/turtle"
        assert retry.headers["X-Trace"] == "abc"
        assert "Authorization" not in first.headers

    async def test_dpop_credential_adds_proof(self) -> None:
        session = BaseSession(schemes={"DPoP"})
        thumbprint = session.select_thumbprint(["ES256"])
        credential = make_credential(scheme=DPOP_SCHEME, token="bound", proof_thumbprint=thumbprint)
        session = BaseSession(
            schemes={"DPoP"},
            credential_name=ID_TOKEN,
            credential=credential,
            proof_generator=session.proof_generator,
        )
        client, server = make_client(session, protected('DPoP algs="ES256"'))

        async with client:
            response = await client.request("POST", RESOURCE, content=b"x")

        assert response.status_code == 200
        retry = server.requests[1]
        assert retry.headers["Authorization"] == "DPoP bound"
        claims = json.loads(jws.extract_compact(retry.headers["DPoP"].encode()).payload)
        assert claims["htm"] == "POST"
        assert claims["htu"] == RESOURCE

    async def test_dpop_credential_without_proof_key_is_never_sent(self) -> None:
        credential = make_credential(
            scheme=DPOP_SCHEME, token="bound", proof_thumbprint="unknown-thumbprint"
        )
        session = BaseSession(schemes={"DPoP"}, credential_name=ID_TOKEN, credential=credential)
        client, server = make_client(session, protected('DPoP algs="ES256"'))

        async with client:
            with pytest.raises(ProofGenerationError, match="No proof key"):
                await client.request("GET", RESOURCE)

        assert len(server.requests) == 1
        assert "Authorization" not in server.requests[0].headers

    async def test_cached_dpop_credential_without_proof_key_is_never_sent(self) -> None:
        cache = CredentialCache()
        cache.set(
            RESOURCE,
            make_credential(scheme=DPOP_SCHEME, token="bound", proof_thumbprint="unknown-thumbprint"),
        )
        client, server = make_client(BaseSession(schemes={"DPoP"}, cache=cache), protected("DPoP"))

        async with client:
            with pytest.raises(ProofGenerationError):
                await client.request("GET", RESOURCE)

        assert server.requests == []

    async def test_bearer_credential_has_no_proof(self) -> None:
        client, server = make_client(id_token_session(), protected("Bearer"))

        async with client:
            await client.request("GET", RESOURCE)

        assert "DPoP" not in server.requests[1].headers


class TestUmaFlow:
    async def test_ticket_exchange_end_to_end(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/.well-known/uma2-configuration":
                return httpx.Response(200, json={"token_endpoint": f"{AS_URI}/token"})
            if request.url.path == "/token":
                return httpx.Response(
                    200, json={"access_token": "rpt", "token_type": "Bearer", "expires_in": 60}
                )
            return protected(f'UMA as_uri="{AS_URI}", ticket="t1"', accepted="Bearer rpt")(request)

        client, server = make_client(id_token_session(), handler)

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 200
        token_request = next(r for r in server.requests if r.url.path == "/token")
        assert b"claim_token=id-token" in token_request.content
        assert server.for_host("pod.example")[1].headers["Authorization"] == "Bearer rpt"

    async def test_dpop_token_without_proof_key_returns_original_401(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/.well-known/uma2-configuration":
                return httpx.Response(200, json={"token_endpoint": f"{AS_URI}/token"})
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "rpt", "token_type": "DPoP"})
            return protected(f'UMA as_uri="{AS_URI}", ticket="t1"')(request)

        client, server = make_client(AnonymousSession(), handler)

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 401
        assert len(server.for_host("pod.example")) == 1
        assert all("DPoP" not in r.headers for r in server.for_host("pod.example"))


class TestClientLifecycle:
    async def test_owned_client_is_closed(self) -> None:
        client, _ = make_client(AnonymousSession(), lambda r: httpx.Response(200))

        async with client:
            pass

        assert client._client.is_closed

    async def test_injected_client_is_left_open(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(204))
        http_client = httpx.AsyncClient(transport=transport)
        client = ReactiveAuthorizationClient(
            AnonymousSession(), create_default_registry(), client=http_client
        )

        async with client:
            response = await client.request("GET", RESOURCE)

        assert response.status_code == 204
        assert not http_client.is_closed
        await http_client.aclose()

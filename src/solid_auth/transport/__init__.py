"""HTTP transport with reactive authorization.

Public exports:
    ReactiveAuthorizationClient: httpx wrapper that answers 401 challenges
    AuthState: Steps of the request state machine
"""

from solid_auth.transport.client import AuthState, ReactiveAuthorizationClient

__all__ = ["AuthState", "ReactiveAuthorizationClient"]

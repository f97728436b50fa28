"""Authenticator and provider contracts.

An ``AuthenticationProvider`` is registered once per scheme family and
builds a short-lived ``Authenticator`` for each challenge it is offered.
The authenticator then turns that challenge into a ``Credential`` for a
given session and request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import httpx

from solid_auth.models.challenge import Challenge
from solid_auth.models.credential import Credential

if TYPE_CHECKING:
    from solid_auth.auth.session import Session


class Authenticator(ABC):
    """Answers one challenge for one request.

    Attributes:
        name: Human-readable mechanism name, used in logs.
        priority: Higher values are tried first during negotiation.
    """

    name: str = "Authenticator"
    priority: int = 0

    @abstractmethod
    async def authenticate(
        self,
        session: Session,
        request: httpx.Request,
        algorithms: frozenset[str],
    ) -> Optional[Credential]: ...


class AuthenticationProvider(ABC):
    """Factory of authenticators for a family of challenge schemes."""

    priority: int = 0

    @abstractmethod
    def schemes(self) -> frozenset[str]: ...

    @abstractmethod
    def get_authenticator(self, challenge: Challenge) -> Authenticator: ...

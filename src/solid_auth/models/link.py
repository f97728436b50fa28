"""Typed link value object (RFC 8288)."""

from typing import Any, Optional

from pydantic import Field

from solid_auth.models.base import Parameters, SolidBaseModel


class Link(SolidBaseModel):
    """A single link from a ``Link`` header.

    The target is kept exactly as sent by the server; relative references
    are not resolved.
    """

    uri: str = Field(..., min_length=1, description="Link target URI-reference")
    parameters: Parameters = Field(default_factory=dict, description="Link parameters")

    @property
    def rel(self) -> Optional[str]:
        return self.parameters.get("rel")

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Link):
            return NotImplemented
        return self.uri == other.uri and self.parameters == other.parameters

    def __hash__(self) -> int:
        return hash(self.uri)

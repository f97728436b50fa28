"""Authentication challenge value object (RFC 7235)."""

from typing import Any, Optional

from pydantic import Field

from solid_auth.models.base import Parameters, SolidBaseModel


class Challenge(SolidBaseModel):
    """One authentication scheme offered by a ``WWW-Authenticate`` header.

    Equality is case-insensitive on ``scheme`` and exact on ``parameters``.
    Parameters keep the order in which they first appeared and cannot be
    modified after construction.

    Example:
        >>> Challenge(scheme="uma", parameters={"ticket": "t"}) == Challenge(
        ...     scheme="UMA", parameters={"ticket": "t"}
        ... )
        True
    """

    scheme: str = Field(..., min_length=1, description="Authentication scheme name")
    parameters: Parameters = Field(
        default_factory=dict, description="Auth-params in order of first occurrence"
    )

    def get_parameter(self, name: str) -> Optional[str]:
        return self.parameters.get(name)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Challenge):
            return NotImplemented
        return self.scheme.lower() == other.scheme.lower() and self.parameters == other.parameters

    def __hash__(self) -> int:
        return hash(self.scheme.lower())

    def __str__(self) -> str:
        if not self.parameters:
            return self.scheme
        params = ", ".join(f'{k}="{v}"' for k, v in self.parameters.items())
        return f"{self.scheme} {params}"

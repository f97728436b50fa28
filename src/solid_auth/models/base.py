"""Base Pydantic model configuration for solid_auth models.

All value objects inherit from SolidBaseModel:
- Immutability (frozen=True) so credentials can be shared between tasks
- Strict validation (extra="forbid") to catch typos and invalid fields
- Flexible field naming (populate_by_name=True) for wire-format aliases
- Header parameters (Parameters) exposed as read-only mappings
"""

from types import MappingProxyType
from typing import Annotated, Mapping

from pydantic import AfterValidator, BaseModel, ConfigDict, PlainSerializer


class SolidBaseModel(BaseModel):
    """Base model for all solid_auth value objects.

    Example:
        >>> class Example(SolidBaseModel):
        ...     name: str
        >>> obj = Example(name="test")
        >>> obj.name = "other"  # Raises ValidationError (frozen)
        Traceback (most recent call last):
        ...
        pydantic_core._pydantic_core.ValidationError: ...
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        validate_default=True,
    )


class SolidWireModel(SolidBaseModel):
    """Base for documents received from remote servers.

    Authorization servers routinely add members beyond the ones a client
    reads, so unknown fields are ignored instead of rejected.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        validate_default=True,
    )


def _freeze_parameters(value: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(value))


# Read-only, insertion-ordered str -> str mapping for header parameters
Parameters = Annotated[
    Mapping[str, str],
    AfterValidator(_freeze_parameters),
    PlainSerializer(dict, return_type=dict[str, str]),
]

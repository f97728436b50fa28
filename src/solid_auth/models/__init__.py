"""Value objects for solid_auth.

Public exports:
    SolidBaseModel: Frozen pydantic base for local value objects
    SolidWireModel: Frozen pydantic base for documents from remote servers
    Challenge: One WWW-Authenticate challenge
    Link: One Link header entry
    Credential: Immutable authentication credential
"""

from solid_auth.models.base import SolidBaseModel, SolidWireModel
from solid_auth.models.challenge import Challenge
from solid_auth.models.credential import DPOP_SCHEME, Credential
from solid_auth.models.link import Link

__all__ = [
    "Challenge",
    "Credential",
    "DPOP_SCHEME",
    "Link",
    "SolidBaseModel",
    "SolidWireModel",
]

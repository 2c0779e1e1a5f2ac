"""
Identity variants.

Identity = HumanIdentity(id) | SystemIdentity. The counselor persona is stored
under a well-known id; parse_identity turns that id into SYSTEM_IDENTITY at the
boundary so the rest of the engine never compares against the raw string.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .config import DEFAULT_SYSTEM_IDENTITY_ID


@dataclass(frozen=True, order=True)
class HumanIdentity:
    """A permanent, authenticated user."""
    id: str

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("identity id cannot be empty")

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class SystemIdentity:
    """The scripted AI counselor. Never matched, never reconciled."""
    id: str = DEFAULT_SYSTEM_IDENTITY_ID

    def __str__(self) -> str:
        return self.id


Identity = Union[HumanIdentity, SystemIdentity]

SYSTEM_IDENTITY = SystemIdentity()


def parse_identity(raw_id: str, system_identity_id: str = DEFAULT_SYSTEM_IDENTITY_ID) -> Identity:
    """Map a stored identity string onto its variant."""
    if raw_id is None or not str(raw_id).strip():
        raise ValueError("identity id cannot be empty")

    raw_id = str(raw_id).strip()
    if raw_id == system_identity_id:
        if system_identity_id == SYSTEM_IDENTITY.id:
            return SYSTEM_IDENTITY
        return SystemIdentity(system_identity_id)
    return HumanIdentity(raw_id)


def is_system(identity: Optional[Identity]) -> bool:
    return isinstance(identity, SystemIdentity)


def identity_key(identity: Identity) -> str:
    """Storage/ordering key for an identity."""
    return identity.id

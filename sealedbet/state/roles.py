"""
Role table: one owner, any number of providers.

Roles are a tag per actor rather than parallel boolean maps, so "exactly one
owner" is checked once, at construction, and every derived table goes through
the same check.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Dict, Mapping, Optional, Tuple

from .canonical import is_canonical_address


Actor = str  # 20-byte address as lowercase 0x-hex


@unique
class Role(Enum):
    OWNER = "owner"
    PROVIDER = "provider"


@dataclass(frozen=True)
class RoleTable:
    """Immutable actor -> Role mapping. Actors without an entry hold no role."""

    assignments: Mapping[Actor, Role] = field(default_factory=dict)

    def __post_init__(self) -> None:
        owners = [a for a, r in self.assignments.items() if r is Role.OWNER]
        if len(owners) != 1:
            raise ValueError(f"role table must have exactly one owner, found {len(owners)}")
        for actor, role in self.assignments.items():
            if not is_canonical_address(actor):
                raise ValueError(f"role table actor is not canonical: {actor!r}")
            if not isinstance(role, Role):
                raise TypeError(f"role for {actor} must be a Role, got {type(role).__name__}")

    @classmethod
    def genesis(cls, owner: Actor) -> "RoleTable":
        """Initial table: the owner (who is implicitly also a provider)."""
        return cls(assignments={owner: Role.OWNER})

    @property
    def owner(self) -> Actor:
        for actor, role in self.assignments.items():
            if role is Role.OWNER:
                return actor
        raise AssertionError("unreachable: owner checked in __post_init__")

    def role_of(self, actor: Actor) -> Optional[Role]:
        return self.assignments.get(actor)

    def is_owner(self, actor: Actor) -> bool:
        return self.assignments.get(actor) is Role.OWNER

    def is_provider(self, actor: Actor) -> bool:
        return self.assignments.get(actor) in (Role.OWNER, Role.PROVIDER)

    def providers(self) -> Tuple[Actor, ...]:
        """All actors with provider rights (owner included), sorted."""
        return tuple(sorted(a for a in self.assignments if self.is_provider(a)))

    def with_provider(self, actor: Actor) -> "RoleTable":
        if self.assignments.get(actor) is not None:
            return self
        out: Dict[Actor, Role] = dict(self.assignments)
        out[actor] = Role.PROVIDER
        return RoleTable(assignments=out)

    def without_provider(self, actor: Actor) -> "RoleTable":
        if self.assignments.get(actor) is Role.OWNER:
            raise ValueError("the owner's provider role cannot be removed")
        out = {a: r for a, r in self.assignments.items() if a != actor}
        return RoleTable(assignments=out)

    def with_owner(self, new_owner: Actor) -> "RoleTable":
        """Move the OWNER tag; the previous owner keeps provider rights."""
        out: Dict[Actor, Role] = dict(self.assignments)
        out[self.owner] = Role.PROVIDER
        out[new_owner] = Role.OWNER
        return RoleTable(assignments=out)

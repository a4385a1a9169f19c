"""
Per-actor cooldown stamps for rate-limited action classes.

An actor with no stamp for a class has never acted and is always allowed.
Otherwise an action at `now` is allowed iff `now >= last + cooldown_seconds`
(exactly `cooldown_seconds` elapsed is allowed).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Dict, Mapping, Optional, Tuple

from .roles import Actor


@unique
class ActionClass(Enum):
    SUBMISSION = "submission"
    DECRYPTION_REQUEST = "decryption_request"


_Key = Tuple[Actor, ActionClass]


@dataclass(frozen=True)
class CooldownTable:
    """Immutable mapping: (actor, action class) -> last accepted timestamp."""

    last: Mapping[_Key, int] = field(default_factory=dict)

    def last_time(self, actor: Actor, action_class: ActionClass) -> Optional[int]:
        return self.last.get((actor, action_class))

    def ready_at(self, actor: Actor, action_class: ActionClass, cooldown_seconds: int) -> int:
        """Earliest timestamp at which the actor may act again (0 if never acted)."""
        t = self.last.get((actor, action_class))
        if t is None:
            return 0
        return t + cooldown_seconds

    def is_active(self, actor: Actor, action_class: ActionClass, now: int, cooldown_seconds: int) -> bool:
        t = self.last.get((actor, action_class))
        if t is None:
            return False
        return now < t + cooldown_seconds

    def stamped(self, actor: Actor, action_class: ActionClass, now: int) -> "CooldownTable":
        if not isinstance(now, int) or isinstance(now, bool) or now < 0:
            raise ValueError(f"now must be a non-negative int: {now!r}")
        out: Dict[_Key, int] = dict(self.last)
        out[(actor, action_class)] = now
        return CooldownTable(last=out)

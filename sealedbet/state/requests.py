"""
Decryption request registry entries.

A `DecryptionContext` is created exactly once per evaluation request, keyed by
the oracle-assigned request id, and mutated exactly once: `processed` flips
False -> True when a callback for it finalizes. It is never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique

from .roles import Actor


@unique
class RequestStatus(Enum):
    NONE = "none"
    REQUESTED = "requested"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class DecryptionContext:
    request_id: int
    batch_id: int
    commitment: str  # 0x-prefixed sha256 over (ordered handles, instance id)
    handle_count: int
    processed: bool = False
    requested_by: Actor = ""
    requested_at: int = 0

    def __post_init__(self) -> None:
        if self.request_id <= 0:
            raise ValueError(f"request_id must be positive: {self.request_id}")
        if self.handle_count <= 0:
            raise ValueError(f"handle_count must be positive: {self.handle_count}")

    @property
    def status(self) -> RequestStatus:
        return RequestStatus.FINALIZED if self.processed else RequestStatus.REQUESTED

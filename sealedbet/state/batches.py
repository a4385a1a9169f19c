"""
Batch records (one evaluation round each).

Lifecycle: OPEN -> CLOSED -> FINALIZED. Batch identifiers come from a
monotonically increasing counter starting at 1 and are never reused; batches
are never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Optional


@unique
class BatchStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"
    FINALIZED = "finalized"


# Allowed status order; a batch may only move forward.
BATCH_STATUS_RANK: dict[BatchStatus, int] = {
    BatchStatus.OPEN: 0,
    BatchStatus.CLOSED: 1,
    BatchStatus.FINALIZED: 2,
}


@dataclass(frozen=True)
class Batch:
    batch_id: int
    status: BatchStatus = BatchStatus.OPEN
    total_staked: int = 0
    submission_count: int = 0
    opened_at: int = 0
    closed_at: Optional[int] = None

    # Set once, by the request whose callback finalized this batch.
    finalized_by: Optional[int] = None
    actual_score: Optional[int] = None
    winner_count: Optional[int] = None

    def __post_init__(self) -> None:
        if self.batch_id <= 0:
            raise ValueError(f"batch_id must be positive: {self.batch_id}")
        if self.total_staked < 0 or self.submission_count < 0:
            raise ValueError("batch aggregates must be non-negative")

    @property
    def is_open(self) -> bool:
        return self.status is BatchStatus.OPEN

    @property
    def is_closed(self) -> bool:
        """True once closed, including after finalization."""
        return self.status is not BatchStatus.OPEN

    @property
    def is_finalized(self) -> bool:
        return self.status is BatchStatus.FINALIZED

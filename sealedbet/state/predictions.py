"""
Confidential predictions, one per (batch, actor).

The predicted score is only ever held as an opaque ciphertext handle.
Predictions are immutable once stored: there is no update or cancel path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .roles import Actor


PredictionKey = Tuple[int, Actor]  # (batch_id, actor)


@dataclass(frozen=True)
class Prediction:
    batch_id: int
    actor: Actor
    handle: str  # 32-byte ciphertext handle, 0x-hex
    amount: int
    submitted_at: int = 0

    @property
    def key(self) -> PredictionKey:
        return (self.batch_id, self.actor)

"""Winner determination.

Given the decrypted actual score of a batch, count how many predictions
qualify as winners. Policies only read predictions; they never mutate the
store. Predictions are still ciphertext handles at this point, so the distance
between a prediction and the actual score comes from the encryption
collaborator (`distance(handle, actual_score) -> int`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Sequence

from ..state.predictions import Prediction

DistanceFn = Callable[[str, int], int]


class WinnerPolicy(ABC):
    """Interface for counting winners of a finalized batch."""

    @abstractmethod
    def count_winners(self, predictions: Sequence[Prediction], actual_score: int) -> int:
        raise NotImplementedError


class ToleranceWinnerPolicy(WinnerPolicy):
    """A prediction wins iff |predicted - actual| <= tolerance (0 = exact match)."""

    def __init__(self, distance: DistanceFn, *, tolerance: int = 0) -> None:
        if not isinstance(tolerance, int) or isinstance(tolerance, bool) or tolerance < 0:
            raise ValueError("tolerance must be a non-negative int")
        self._distance = distance
        self._tolerance = tolerance

    @property
    def tolerance(self) -> int:
        return self._tolerance

    def count_winners(self, predictions: Sequence[Prediction], actual_score: int) -> int:
        return sum(
            1 for p in predictions if self._distance(p.handle, actual_score) <= self._tolerance
        )

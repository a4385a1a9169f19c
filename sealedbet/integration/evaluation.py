"""
Evaluation collaborator: produces the result ciphertext(s) of a batch.

The result must stay the same for a batch until that batch is finalized; the
decryption commitment is how the protocol detects when it does not.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Sequence, Tuple

from ..core.errors import EvaluationUnavailable
from .fhe import Ciphertext

logger = logging.getLogger("sealedbet.integration.evaluation")


class EvaluationSource(ABC):
    @abstractmethod
    def result_ciphertexts(self, batch_id: int) -> Tuple[Ciphertext, ...]:
        """Ordered result ciphertexts for `batch_id`; the score comes first.

        Raises EvaluationUnavailable if no result exists yet.
        """
        raise NotImplementedError


class RecordedEvaluationSource(EvaluationSource):
    """Holds result ciphertexts posted by the scoring pipeline, per batch."""

    def __init__(self) -> None:
        self._results: Dict[int, Tuple[Ciphertext, ...]] = {}
        self._lock = threading.Lock()

    def record(self, batch_id: int, ciphertexts: Sequence[Ciphertext]) -> None:
        if not isinstance(batch_id, int) or isinstance(batch_id, bool) or batch_id <= 0:
            raise ValueError("batch_id must be a positive int")
        cts = tuple(ciphertexts)
        if not cts:
            raise ValueError("ciphertexts must be non-empty")
        with self._lock:
            if batch_id in self._results:
                logger.warning(f"evaluation result for batch {batch_id} replaced")
            self._results[batch_id] = cts

    def result_ciphertexts(self, batch_id: int) -> Tuple[Ciphertext, ...]:
        with self._lock:
            cts = self._results.get(batch_id)
        if cts is None:
            raise EvaluationUnavailable(f"no evaluation result for batch {batch_id}")
        return cts

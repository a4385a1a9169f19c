"""
Decryption oracle collaborator (outbound side).

The oracle accepts an ordered handle sequence and answers with a request id.
Decryption happens off the critical path; the result comes back later through
`MarketService.on_oracle_callback`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence


class DecryptionOracle(ABC):
    @abstractmethod
    def request_decryption(self, handles: Sequence[str]) -> int:
        """Queue decryption of `handles` and return the oracle-assigned request id."""
        raise NotImplementedError

"""
Encryption collaborator.

The market never looks inside a ciphertext. It needs three things from the
encryption layer: produce a ciphertext, tell whether a ciphertext is
initialized, and turn it into a canonical 32-byte handle.

`LocalFheBackend` is a deterministic, NON-cryptographic stand-in that keeps
plaintexts in a table keyed by handle. It exists for tests and for the local
relayer; it provides no confidentiality.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Sequence

from ..state.canonical import (
    HANDLE_BYTES,
    canonical_handle,
    domain_sep_bytes,
    encode_bytes,
    encode_uvarint,
    sha256_hex,
)

UNINITIALIZED_HANDLE = "0x" + "00" * HANDLE_BYTES


@dataclass(frozen=True)
class Ciphertext:
    """Opaque reference to an encrypted value."""

    handle: str
    initialized: bool = True


class CiphertextBackend(ABC):
    """Interface the market needs from the encryption scheme."""

    @abstractmethod
    def encrypt(self, value: int) -> Ciphertext:
        raise NotImplementedError

    @abstractmethod
    def is_initialized(self, ct: Ciphertext) -> bool:
        raise NotImplementedError

    @abstractmethod
    def to_handle(self, ct: Ciphertext) -> str:
        raise NotImplementedError


class LocalFheBackend(CiphertextBackend):
    """In-process plaintext table. Handles are sha256(namespace || counter)."""

    def __init__(self, *, namespace: str = "local") -> None:
        if not isinstance(namespace, str) or not namespace:
            raise ValueError("namespace must be a non-empty str")
        self._namespace = namespace.encode("utf-8")
        self._counter = 0
        self._plaintexts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def encrypt(self, value: int) -> Ciphertext:
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValueError(f"value must be a non-negative int, got {value!r}")
        with self._lock:
            self._counter += 1
            handle = sha256_hex(
                domain_sep_bytes("local_fhe_handle")
                + encode_bytes(self._namespace)
                + encode_uvarint(self._counter)
            )
            self._plaintexts[handle] = value
        return Ciphertext(handle=handle)

    def uninitialized(self) -> Ciphertext:
        return Ciphertext(handle=UNINITIALIZED_HANDLE, initialized=False)

    def is_initialized(self, ct: Ciphertext) -> bool:
        return bool(ct.initialized) and ct.handle in self._plaintexts

    def to_handle(self, ct: Ciphertext) -> str:
        return canonical_handle(ct.handle)

    def decrypt(self, handles: Sequence[str]) -> List[int]:
        out: List[int] = []
        for h in handles:
            key = canonical_handle(h)
            if key not in self._plaintexts:
                raise ValueError(f"unknown ciphertext handle: {key}")
            out.append(self._plaintexts[key])
        return out

    def distance(self, handle: str, value: int) -> int:
        """|plaintext(handle) - value|; what a homomorphic comparison would compute."""
        (plain,) = self.decrypt([handle])
        return abs(plain - value)

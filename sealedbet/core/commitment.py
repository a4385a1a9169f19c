"""
Decryption request commitments.

A commitment binds a decryption request to the exact ordered ciphertext handle
sequence that was sent to the oracle and to the identity of the deployed
instance that sent it:

    sha256( domain_sep("decryption_commitment", v1)
            || uvarint(len(handles)) || handle_0 || ... || handle_n-1
            || uvarint(len(instance_id)) || instance_id_utf8 )

Handles are fixed 32-byte values, so only their count is length-prefixed.
Reordering handles or changing the instance identity changes the digest.
"""

from __future__ import annotations

from typing import Sequence

from ..state.canonical import (
    HANDLE_BYTES,
    domain_sep_bytes,
    encode_bytes,
    encode_uvarint,
    hex_to_bytes_fixed,
    sha256_hex,
)

COMMITMENT_VERSION = 1


def compute_commitment(handles: Sequence[str], instance_id: str) -> str:
    """Return the 0x-prefixed commitment digest for `handles` issued by `instance_id`."""
    if isinstance(handles, (str, bytes)):
        raise TypeError("handles must be a sequence of hex strings")
    if not handles:
        raise ValueError("handles must be non-empty")
    if not isinstance(instance_id, str) or not instance_id:
        raise ValueError("instance_id must be a non-empty str")

    out = bytearray(domain_sep_bytes("decryption_commitment", version=COMMITMENT_VERSION))
    out += encode_uvarint(len(handles))
    for i, h in enumerate(handles):
        out += hex_to_bytes_fixed(h, nbytes=HANDLE_BYTES, name=f"handles[{i}]")
    out += encode_bytes(instance_id.encode("utf-8"))
    return sha256_hex(bytes(out))


def is_commitment(value: object) -> bool:
    """True iff `value` looks like a digest produced by `compute_commitment`."""
    if not isinstance(value, str) or len(value) != 66 or not value.startswith("0x"):
        return False
    body = value[2:]
    return all(c in "0123456789abcdef" for c in body)

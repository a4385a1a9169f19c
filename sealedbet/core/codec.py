"""Cleartext payload codec for oracle callbacks.

The oracle returns one 32-byte big-endian word per committed ciphertext handle
(ABI-style). The actual score is the first word and is a `euint32`, so it must
fit in `SCORE_BITS` bits.
"""

from __future__ import annotations

from typing import Sequence, Tuple

from .errors import DecodeError

WORD_BYTES: int = 32
SCORE_BITS: int = 32
MAX_SCORE: int = (1 << SCORE_BITS) - 1


def encode_cleartexts(values: Sequence[int]) -> bytes:
    """Encode plaintext words the way the oracle delivers them."""
    out = bytearray()
    for v in values:
        if not isinstance(v, int) or isinstance(v, bool) or v < 0:
            raise ValueError(f"cleartext word must be a non-negative int, got {v!r}")
        if v.bit_length() > WORD_BYTES * 8:
            raise ValueError(f"cleartext word does not fit in {WORD_BYTES} bytes: {v}")
        out += v.to_bytes(WORD_BYTES, "big")
    return bytes(out)


def decode_cleartexts(data: bytes, *, expected_words: int) -> Tuple[int, ...]:
    """Split a payload into words. Raises DecodeError on any length mismatch."""
    if not isinstance(data, (bytes, bytearray)):
        raise DecodeError("cleartexts must be bytes")
    if expected_words <= 0:
        raise DecodeError("expected_words must be positive")
    if len(data) != expected_words * WORD_BYTES:
        raise DecodeError(
            f"cleartexts must be {expected_words * WORD_BYTES} bytes, got {len(data)}"
        )
    raw = bytes(data)
    return tuple(
        int.from_bytes(raw[i : i + WORD_BYTES], "big")
        for i in range(0, len(raw), WORD_BYTES)
    )


def decode_score(data: bytes, *, expected_words: int) -> int:
    """Decode the actual score (first word). Raises DecodeError if it exceeds SCORE_BITS."""
    words = decode_cleartexts(data, expected_words=expected_words)
    score = words[0]
    if score > MAX_SCORE:
        raise DecodeError(f"score does not fit in {SCORE_BITS} bits: {score}")
    return score

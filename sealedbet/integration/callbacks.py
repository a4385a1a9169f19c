"""
Oracle callback envelope parsing.

Transport-agnostic: HTTP handlers, queue consumers, and in-process relayers
all hand the same JSON object to `parse_callback_envelope` and then to
`MarketService.on_oracle_callback`. Malformed envelopes raise ValueError here,
before anything reaches the engine.

Envelope:
    {"request_id": <int or decimal string>, "cleartexts": "0x..", "proof": {...}}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict

from ..state.canonical import hex_to_bytes_allow_0x

MAX_REQUEST_ID_DIGITS = 78  # len(str(2**256 - 1))
DEFAULT_MAX_CLEARTEXT_BYTES = 64 * 32


def _require_str(value: Any, *, name: str, non_empty: bool = True, max_len: int = 4096) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    if non_empty and not value:
        raise ValueError(f"{name} must be non-empty")
    if max_len > 0 and len(value) > max_len:
        raise ValueError(f"{name} too large")
    return value


def _require_request_id(value: Any) -> int:
    # uint256 ids often travel as decimal strings.
    if isinstance(value, str):
        s = _require_str(value, name="request_id", max_len=MAX_REQUEST_ID_DIGITS)
        if not s.isdigit():
            raise ValueError("request_id must be a decimal string")
        value = int(s)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError("request_id must be an int")
    if value <= 0:
        raise ValueError("request_id must be positive")
    return int(value)


def _require_dict_str_keys(value: Any, *, name: str) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{name} must be an object")
    for k in value.keys():
        if not isinstance(k, str):
            raise ValueError(f"{name} keys must be strings")
    return dict(value)


@dataclass(frozen=True)
class CallbackEnvelope:
    request_id: int
    cleartexts: bytes
    proof: Dict[str, Any] = field(default_factory=dict)


def parse_callback_envelope(
    obj: Any, *, max_cleartext_bytes: int = DEFAULT_MAX_CLEARTEXT_BYTES
) -> CallbackEnvelope:
    env = _require_dict_str_keys(obj, name="callback")
    unknown = set(env) - {"request_id", "cleartexts", "proof"}
    if unknown:
        raise ValueError(f"unknown callback fields: {sorted(unknown)}")
    request_id = _require_request_id(env.get("request_id"))
    cleartexts_hex = _require_str(
        env.get("cleartexts"), name="cleartexts", max_len=2 + 2 * max_cleartext_bytes
    )
    cleartexts = hex_to_bytes_allow_0x(cleartexts_hex, name="cleartexts", max_nbytes=max_cleartext_bytes)
    proof = _require_dict_str_keys(env.get("proof"), name="proof")
    return CallbackEnvelope(request_id=request_id, cleartexts=cleartexts, proof=proof)


def callback_envelope_to_dict(env: CallbackEnvelope) -> Dict[str, Any]:
    return {
        "request_id": env.request_id,
        "cleartexts": "0x" + env.cleartexts.hex(),
        "proof": dict(env.proof),
    }

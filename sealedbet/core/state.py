"""State construction, serialization, and the ledger state root.

`initial_state(owner)` returns the state of a freshly deployed instance.

Round-trip property (tested): `state_from_dict(state_to_dict(s)) == s` for all
valid states. The dict form is JSON-compatible (no tuples as keys, no bytes),
which is what checkpoints are written as.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from ..state.batches import Batch, BatchStatus
from ..state.canonical import canonical_address, canonical_json_bytes, domain_sep_bytes, sha256_hex
from ..state.cooldowns import ActionClass, CooldownTable
from ..state.predictions import Prediction
from ..state.requests import DecryptionContext
from ..state.roles import Role, RoleTable
from .types import DEFAULT_COOLDOWN_SECONDS, MarketState

STATE_SCHEMA_VERSION = 1
STATE_ROOT_VERSION = 1


def initial_state(owner: str, *, cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS) -> MarketState:
    """Fresh ledger: `owner` holds the OWNER role (and thereby provider rights)."""
    if not isinstance(cooldown_seconds, int) or isinstance(cooldown_seconds, bool) or cooldown_seconds <= 0:
        raise ValueError(f"cooldown_seconds must be a positive int: {cooldown_seconds!r}")
    return MarketState(
        roles=RoleTable.genesis(canonical_address(owner, name="owner")),
        cooldown_seconds=cooldown_seconds,
    )


def _batch_to_dict(b: Batch) -> Dict[str, Any]:
    return {
        "batch_id": b.batch_id,
        "status": b.status.value,
        "total_staked": b.total_staked,
        "submission_count": b.submission_count,
        "opened_at": b.opened_at,
        "closed_at": b.closed_at,
        "finalized_by": b.finalized_by,
        "actual_score": b.actual_score,
        "winner_count": b.winner_count,
    }


def _prediction_to_dict(p: Prediction) -> Dict[str, Any]:
    return {
        "batch_id": p.batch_id,
        "actor": p.actor,
        "handle": p.handle,
        "amount": p.amount,
        "submitted_at": p.submitted_at,
    }


def _request_to_dict(c: DecryptionContext) -> Dict[str, Any]:
    return {
        "request_id": c.request_id,
        "batch_id": c.batch_id,
        "commitment": c.commitment,
        "handle_count": c.handle_count,
        "processed": c.processed,
        "requested_by": c.requested_by,
        "requested_at": c.requested_at,
    }


def state_to_dict(state: MarketState) -> Dict[str, Any]:
    """Serialize a MarketState to plain JSON-compatible data with sorted entries."""
    cooldowns: List[Dict[str, Any]] = [
        {"actor": actor, "action_class": cls.value, "last": t}
        for (actor, cls), t in sorted(state.cooldowns.last.items(), key=lambda kv: (kv[0][0], kv[0][1].value))
    ]
    return {
        "schema_version": STATE_SCHEMA_VERSION,
        "roles": {a: r.value for a, r in sorted(state.roles.assignments.items())},
        "paused": state.paused,
        "cooldown_seconds": state.cooldown_seconds,
        "next_batch_id": state.next_batch_id,
        "batches": [_batch_to_dict(state.batches[b]) for b in sorted(state.batches)],
        "predictions": [_prediction_to_dict(state.predictions[k]) for k in sorted(state.predictions)],
        "requests": [_request_to_dict(state.requests[r]) for r in sorted(state.requests)],
        "cooldowns": cooldowns,
    }


def state_from_dict(d: Mapping[str, Any]) -> MarketState:
    """Deserialize a dict produced by `state_to_dict`. Raises KeyError/ValueError on bad input."""
    version = d["schema_version"]
    if version != STATE_SCHEMA_VERSION:
        raise ValueError(f"unsupported state schema_version: {version!r}")

    roles = RoleTable(assignments={a: Role(r) for a, r in d["roles"].items()})
    batches = {}
    for raw in d["batches"]:
        b = Batch(
            batch_id=int(raw["batch_id"]),
            status=BatchStatus(raw["status"]),
            total_staked=int(raw["total_staked"]),
            submission_count=int(raw["submission_count"]),
            opened_at=int(raw["opened_at"]),
            closed_at=raw["closed_at"],
            finalized_by=raw["finalized_by"],
            actual_score=raw["actual_score"],
            winner_count=raw["winner_count"],
        )
        batches[b.batch_id] = b
    predictions = {}
    for raw in d["predictions"]:
        p = Prediction(
            batch_id=int(raw["batch_id"]),
            actor=raw["actor"],
            handle=raw["handle"],
            amount=int(raw["amount"]),
            submitted_at=int(raw["submitted_at"]),
        )
        predictions[p.key] = p
    requests = {}
    for raw in d["requests"]:
        c = DecryptionContext(
            request_id=int(raw["request_id"]),
            batch_id=int(raw["batch_id"]),
            commitment=raw["commitment"],
            handle_count=int(raw["handle_count"]),
            processed=bool(raw["processed"]),
            requested_by=raw["requested_by"],
            requested_at=int(raw["requested_at"]),
        )
        requests[c.request_id] = c
    cooldowns = CooldownTable(
        last={(raw["actor"], ActionClass(raw["action_class"])): int(raw["last"]) for raw in d["cooldowns"]}
    )
    return MarketState(
        roles=roles,
        paused=bool(d["paused"]),
        cooldown_seconds=int(d["cooldown_seconds"]),
        next_batch_id=int(d["next_batch_id"]),
        batches=batches,
        predictions=predictions,
        requests=requests,
        cooldowns=cooldowns,
    )


def compute_state_root(state: MarketState) -> str:
    """
    Deterministic hash of the whole ledger.

    Equal logical states hash equal regardless of table insertion order.
    Returns a 0x-prefixed sha256 digest.
    """
    payload = domain_sep_bytes("state_root", version=STATE_ROOT_VERSION) + canonical_json_bytes(
        state_to_dict(state)
    )
    return sha256_hex(payload)

# [TESTER] v1

from __future__ import annotations

import json

import pytest

from sealedbet.core import (
    Action,
    ActionParams,
    compute_commitment,
    compute_state_root,
    initial_state,
    state_from_dict,
    state_to_dict,
    step_or_raise,
)
from sealedbet.core.codec import encode_cleartexts

OWNER = "0x" + "11" * 20
PROVIDER = "0x" + "22" * 20
ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20
RESULT = "0x" + "5c" * 32


def _busy_state():
    s = initial_state(OWNER)
    for p in [
        ActionParams(action=Action.ADD_PROVIDER, actor=OWNER, target=PROVIDER),
        ActionParams(action=Action.OPEN_BATCH, actor=PROVIDER, now=1),
        ActionParams(action=Action.OPEN_BATCH, actor=PROVIDER, now=2),
        ActionParams(action=Action.SUBMIT_PREDICTION, actor=BOB, now=3, batch_id=1, handle="0x" + "0b" * 32,
                     handle_initialized=True, amount=4, attached_value=4),
        ActionParams(action=Action.SUBMIT_PREDICTION, actor=ALICE, now=3, batch_id=1, handle="0x" + "0a" * 32,
                     handle_initialized=True, amount=6, attached_value=6),
        ActionParams(action=Action.CLOSE_BATCH, actor=PROVIDER, now=4, batch_id=1),
        ActionParams(action=Action.REQUEST_EVALUATION, actor=PROVIDER, now=5, batch_id=1, request_id=3,
                     commitment=compute_commitment([RESULT], "i"), handle_count=1),
        ActionParams(action=Action.ORACLE_CALLBACK, now=6, request_id=3, commitment=compute_commitment([RESULT], "i"),
                     cleartexts=encode_cleartexts([42]), proof_ok=True, winner_count=0),
        ActionParams(action=Action.SET_PAUSED, actor=OWNER, now=7, paused=True),
    ]:
        s = step_or_raise(s, p).state
    return s


def test_dict_roundtrip_preserves_state() -> None:
    s = _busy_state()
    d = state_to_dict(s)
    restored = state_from_dict(json.loads(json.dumps(d)))
    assert restored == s
    assert compute_state_root(restored) == compute_state_root(s)


def test_state_root_changes_with_state() -> None:
    s = initial_state(OWNER)
    s2 = step_or_raise(s, ActionParams(action=Action.OPEN_BATCH, actor=OWNER)).state
    assert compute_state_root(s) != compute_state_root(s2)


def test_state_root_independent_of_insertion_order() -> None:
    s = _busy_state()
    shuffled = type(s)(
        roles=s.roles,
        paused=s.paused,
        cooldown_seconds=s.cooldown_seconds,
        next_batch_id=s.next_batch_id,
        batches=dict(reversed(list(s.batches.items()))),
        predictions=dict(reversed(list(s.predictions.items()))),
        requests=dict(s.requests),
        cooldowns=s.cooldowns,
    )
    assert compute_state_root(shuffled) == compute_state_root(s)


def test_unknown_schema_version_rejected() -> None:
    d = state_to_dict(initial_state(OWNER))
    d["schema_version"] = 99
    with pytest.raises(ValueError):
        state_from_dict(d)


def test_initial_state_validates_inputs() -> None:
    assert initial_state(OWNER.upper().replace("0X", "0x")).roles.owner == OWNER
    with pytest.raises(ValueError):
        initial_state("0x1234")
    with pytest.raises(ValueError):
        initial_state(OWNER, cooldown_seconds=0)

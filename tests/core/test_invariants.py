"""Tests for sealedbet/core/invariants.py."""

from __future__ import annotations

from dataclasses import replace

from sealedbet.core import Action, ActionParams, initial_state, step
from sealedbet.core.invariants import (
    INVARIANT_REGISTRY,
    TRANSITION_REGISTRY,
    check_all,
    check_transition,
)
from sealedbet.state import Batch, BatchStatus, DecryptionContext, Prediction

OWNER = "0x" + "11" * 20
ALICE = "0x" + "aa" * 20


def _state_with_prediction():
    s = step(initial_state(OWNER), ActionParams(action=Action.OPEN_BATCH, actor=OWNER)).state
    return step(
        s,
        ActionParams(
            action=Action.SUBMIT_PREDICTION,
            actor=ALICE,
            batch_id=1,
            handle="0x" + "01" * 32,
            handle_initialized=True,
            amount=3,
            attached_value=3,
        ),
    ).state


def test_initial_state_passes_all() -> None:
    assert check_all(initial_state(OWNER)) == []


def test_registries_are_populated() -> None:
    assert len(INVARIANT_REGISTRY) >= 8
    assert len(TRANSITION_REGISTRY) >= 3


def test_aggregate_drift_detected() -> None:
    s = _state_with_prediction()
    bad = replace(s, batches={1: replace(s.batches[1], total_staked=4)})
    assert "inv_batch_aggregates_match" in check_all(bad)


def test_request_on_open_batch_detected() -> None:
    s = _state_with_prediction()
    ctx = DecryptionContext(request_id=1, batch_id=1, commitment="0x" + "00" * 32, handle_count=1)
    bad = replace(s, requests={1: ctx})
    assert "inv_requests_target_closed_batches" in check_all(bad)


def test_finalized_without_request_detected() -> None:
    s = _state_with_prediction()
    b = replace(s.batches[1], status=BatchStatus.FINALIZED, finalized_by=9, actual_score=1)
    bad = replace(s, batches={1: b})
    assert "inv_finalized_batch_has_processed_request" in check_all(bad)


def test_unallocated_batch_id_detected() -> None:
    s = initial_state(OWNER)
    bad = replace(s, batches={5: Batch(batch_id=5)})
    assert "inv_batch_ids_allocated" in check_all(bad)


def test_processed_reset_detected() -> None:
    ctx = DecryptionContext(request_id=1, batch_id=1, commitment="0x" + "00" * 32, handle_count=1)
    pre = replace(initial_state(OWNER), requests={1: replace(ctx, processed=True)})
    post = replace(pre, requests={1: ctx})
    assert "tinv_processed_monotonic" in check_transition(pre, post)


def test_prediction_mutation_detected() -> None:
    pre = _state_with_prediction()
    p = pre.predictions[(1, ALICE)]
    post = replace(pre, predictions={(1, ALICE): Prediction(**{**p.__dict__, "handle": "0x" + "02" * 32})})
    assert "tinv_predictions_immutable" in check_transition(pre, post)


def test_batch_status_regression_detected() -> None:
    pre = step(_state_with_prediction(), ActionParams(action=Action.CLOSE_BATCH, actor=OWNER, batch_id=1)).state
    post = replace(pre, batches={1: replace(pre.batches[1], status=BatchStatus.OPEN)})
    assert "tinv_batches_retained_and_forward" in check_transition(pre, post)

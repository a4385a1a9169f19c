"""State transition functions for the market engine.

One pure function per action. Each returns a new `MarketState` with the
action's updates applied; updates evaluate against the PRE-state and are
implemented via `dataclasses.replace()` plus fresh dicts for the tables.
"""

from __future__ import annotations

from dataclasses import replace

from ..state.batches import Batch, BatchStatus
from ..state.cooldowns import ActionClass
from ..state.predictions import Prediction
from ..state.requests import DecryptionContext
from .codec import decode_score
from .types import ActionParams, MarketState


def apply_add_provider(state: MarketState, params: ActionParams) -> MarketState:
    return replace(state, roles=state.roles.with_provider(params.target))


def apply_remove_provider(state: MarketState, params: ActionParams) -> MarketState:
    return replace(state, roles=state.roles.without_provider(params.target))


def apply_transfer_ownership(state: MarketState, params: ActionParams) -> MarketState:
    return replace(state, roles=state.roles.with_owner(params.target))


def apply_set_paused(state: MarketState, params: ActionParams) -> MarketState:
    return replace(state, paused=params.paused)


def apply_set_cooldown(state: MarketState, params: ActionParams) -> MarketState:
    return replace(state, cooldown_seconds=params.cooldown_seconds)


def apply_open_batch(state: MarketState, params: ActionParams) -> MarketState:
    batch_id = state.next_batch_id
    batches = dict(state.batches)
    batches[batch_id] = Batch(batch_id=batch_id, opened_at=params.now)
    return replace(state, next_batch_id=batch_id + 1, batches=batches)


def apply_close_batch(state: MarketState, params: ActionParams) -> MarketState:
    batches = dict(state.batches)
    batches[params.batch_id] = replace(
        batches[params.batch_id], status=BatchStatus.CLOSED, closed_at=params.now,
    )
    return replace(state, batches=batches)


def apply_submit_prediction(state: MarketState, params: ActionParams) -> MarketState:
    prediction = Prediction(
        batch_id=params.batch_id,
        actor=params.actor,
        handle=params.handle,
        amount=params.amount,
        submitted_at=params.now,
    )
    predictions = dict(state.predictions)
    predictions[prediction.key] = prediction

    batch = state.batches[params.batch_id]
    batches = dict(state.batches)
    batches[params.batch_id] = replace(
        batch,
        total_staked=batch.total_staked + params.amount,
        submission_count=batch.submission_count + 1,
    )
    return replace(
        state,
        predictions=predictions,
        batches=batches,
        cooldowns=state.cooldowns.stamped(params.actor, ActionClass.SUBMISSION, params.now),
    )


def apply_request_evaluation(state: MarketState, params: ActionParams) -> MarketState:
    assert params.request_id is not None and params.commitment is not None
    requests = dict(state.requests)
    requests[params.request_id] = DecryptionContext(
        request_id=params.request_id,
        batch_id=params.batch_id,
        commitment=params.commitment,
        handle_count=params.handle_count,
        processed=False,
        requested_by=params.actor,
        requested_at=params.now,
    )
    return replace(
        state,
        requests=requests,
        cooldowns=state.cooldowns.stamped(params.actor, ActionClass.DECRYPTION_REQUEST, params.now),
    )


def apply_oracle_callback(state: MarketState, params: ActionParams) -> MarketState:
    assert params.request_id is not None
    ctx = state.requests[params.request_id]
    score = decode_score(params.cleartexts, expected_words=ctx.handle_count)

    requests = dict(state.requests)
    requests[ctx.request_id] = replace(ctx, processed=True)

    batches = dict(state.batches)
    batches[ctx.batch_id] = replace(
        batches[ctx.batch_id],
        status=BatchStatus.FINALIZED,
        finalized_by=ctx.request_id,
        actual_score=score,
        winner_count=params.winner_count,
    )
    return replace(state, requests=requests, batches=batches)

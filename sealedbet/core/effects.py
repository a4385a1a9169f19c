"""Effect functions for the market engine.

One pure function per action. Each builds the audit record from the
POST-state, so aggregates (total staked, submission count, score) reflect the
transition that just happened.
"""

from __future__ import annotations

from ..state.roles import Role
from .types import ActionParams, Effect, Event, MarketState


def effect_add_provider(state: MarketState, params: ActionParams) -> Effect:
    return Effect(
        event=Event.ROLE_CHANGED, at=params.now, actor=params.actor,
        target=params.target, role=Role.PROVIDER.value, granted=True,
    )


def effect_remove_provider(state: MarketState, params: ActionParams) -> Effect:
    return Effect(
        event=Event.ROLE_CHANGED, at=params.now, actor=params.actor,
        target=params.target, role=Role.PROVIDER.value, granted=False,
    )


def effect_transfer_ownership(state: MarketState, params: ActionParams) -> Effect:
    return Effect(
        event=Event.OWNERSHIP_TRANSFERRED, at=params.now, actor=params.actor,
        target=state.roles.owner, role=Role.OWNER.value, granted=True,
    )


def effect_set_paused(state: MarketState, params: ActionParams) -> Effect:
    return Effect(event=Event.PAUSE_TOGGLED, at=params.now, actor=params.actor, paused=state.paused)


def effect_set_cooldown(state: MarketState, params: ActionParams) -> Effect:
    return Effect(
        event=Event.COOLDOWN_CHANGED, at=params.now, actor=params.actor,
        cooldown_seconds=state.cooldown_seconds,
    )


def effect_open_batch(state: MarketState, params: ActionParams) -> Effect:
    return Effect(
        event=Event.BATCH_OPENED, at=params.now, actor=params.actor,
        batch_id=state.next_batch_id - 1,
    )


def effect_close_batch(state: MarketState, params: ActionParams) -> Effect:
    batch = state.batches[params.batch_id]
    return Effect(
        event=Event.BATCH_CLOSED, at=params.now, actor=params.actor,
        batch_id=batch.batch_id, total_staked=batch.total_staked,
        submission_count=batch.submission_count,
    )


def effect_submit_prediction(state: MarketState, params: ActionParams) -> Effect:
    batch = state.batches[params.batch_id]
    return Effect(
        event=Event.PREDICTION_SUBMITTED, at=params.now, actor=params.actor,
        batch_id=batch.batch_id, handle=params.handle, amount=params.amount,
        total_staked=batch.total_staked, submission_count=batch.submission_count,
    )


def effect_request_evaluation(state: MarketState, params: ActionParams) -> Effect:
    return Effect(
        event=Event.DECRYPTION_REQUESTED, at=params.now, actor=params.actor,
        batch_id=params.batch_id, request_id=params.request_id,
        commitment=params.commitment,
    )


def effect_oracle_callback(state: MarketState, params: ActionParams) -> Effect:
    assert params.request_id is not None
    ctx = state.requests[params.request_id]
    batch = state.batches[ctx.batch_id]
    return Effect(
        event=Event.DECRYPTION_FINALIZED, at=params.now,
        batch_id=batch.batch_id, request_id=ctx.request_id,
        commitment=ctx.commitment, actual_score=batch.actual_score,
        total_staked=batch.total_staked, submission_count=batch.submission_count,
        winner_count=batch.winner_count,
    )

"""Guard functions for the market engine.

One pure function per action. Each returns None iff the action is allowed in
the given PRE-state with the given parameters, otherwise the rejection code of
the first failing precondition. Preconditions are checked in a fixed order
(authorization, pause gate, cooldown, lifecycle, values), so the same inputs
always produce the same error.
"""

from __future__ import annotations

from typing import Optional

from ..state.canonical import is_canonical_address, is_canonical_handle
from ..state.cooldowns import ActionClass
from .codec import decode_score
from .errors import (
    BatchAlreadyClosed,
    BatchAlreadyFinalized,
    BatchClosed,
    BatchNotClosed,
    CooldownActive,
    DecodeError,
    DuplicatePrediction,
    InvalidAmount,
    InvalidCooldown,
    InvalidProof,
    InvalidRoleChange,
    Paused,
    ReplayDetected,
    RequestIdCollision,
    StateMismatch,
    Unauthorized,
    UninitializedCiphertext,
    UnknownBatch,
    UnknownRequest,
    ValueMismatch,
)
from .types import ActionParams, MarketState

Rejection = Optional[str]


def _require_owner(state: MarketState, params: ActionParams) -> Rejection:
    if not state.roles.is_owner(params.actor):
        return Unauthorized.code
    return None


def _require_provider(state: MarketState, params: ActionParams) -> Rejection:
    if not state.roles.is_provider(params.actor):
        return Unauthorized.code
    return None


def _require_not_paused(state: MarketState) -> Rejection:
    return Paused.code if state.paused else None


def _require_cooldown_elapsed(
    state: MarketState, params: ActionParams, action_class: ActionClass,
) -> Rejection:
    if state.cooldowns.is_active(params.actor, action_class, params.now, state.cooldown_seconds):
        return CooldownActive.code
    return None


# -- Administration ----------------------------------------------------------

def guard_add_provider(state: MarketState, params: ActionParams) -> Rejection:
    r = _require_owner(state, params)
    if r is not None:
        return r
    if not is_canonical_address(params.target):
        return InvalidRoleChange.code
    return None


def guard_remove_provider(state: MarketState, params: ActionParams) -> Rejection:
    r = _require_owner(state, params)
    if r is not None:
        return r
    if not is_canonical_address(params.target) or state.roles.is_owner(params.target):
        return InvalidRoleChange.code
    return None


def guard_transfer_ownership(state: MarketState, params: ActionParams) -> Rejection:
    r = _require_owner(state, params)
    if r is not None:
        return r
    if not is_canonical_address(params.target) or params.target == params.actor:
        return InvalidRoleChange.code
    return None


def guard_set_paused(state: MarketState, params: ActionParams) -> Rejection:
    return _require_owner(state, params)


def guard_set_cooldown(state: MarketState, params: ActionParams) -> Rejection:
    r = _require_owner(state, params)
    if r is not None:
        return r
    if params.cooldown_seconds <= 0:
        return InvalidCooldown.code
    return None


# -- Batch ledger ------------------------------------------------------------

def guard_open_batch(state: MarketState, params: ActionParams) -> Rejection:
    r = _require_provider(state, params)
    if r is not None:
        return r
    return _require_not_paused(state)


def guard_close_batch(state: MarketState, params: ActionParams) -> Rejection:
    r = _require_provider(state, params)
    if r is not None:
        return r
    r = _require_not_paused(state)
    if r is not None:
        return r
    batch = state.batch(params.batch_id)
    if batch is None:
        return UnknownBatch.code
    if not batch.is_open:
        return BatchAlreadyClosed.code
    return None


# -- Prediction store --------------------------------------------------------

def guard_submit_prediction(state: MarketState, params: ActionParams) -> Rejection:
    r = _require_not_paused(state)
    if r is not None:
        return r
    r = _require_cooldown_elapsed(state, params, ActionClass.SUBMISSION)
    if r is not None:
        return r
    batch = state.batch(params.batch_id)
    if batch is None or not batch.is_open:
        return BatchClosed.code
    if params.attached_value != params.amount:
        return ValueMismatch.code
    if params.amount <= 0:
        return InvalidAmount.code
    prior = state.prediction(params.batch_id, params.actor)
    if prior is not None and prior.amount != 0:
        return DuplicatePrediction.code
    if not params.handle_initialized or not is_canonical_handle(params.handle):
        return UninitializedCiphertext.code
    return None


# -- Decryption protocol -----------------------------------------------------

def guard_request_evaluation(state: MarketState, params: ActionParams) -> Rejection:
    """NONE -> REQUESTED.

    `request_id` and `commitment` are only known after the oracle accepted the
    request, so they are checked only when present; the shell runs this guard
    once without them (preflight) and once with them (commit).
    """
    r = _require_provider(state, params)
    if r is not None:
        return r
    r = _require_not_paused(state)
    if r is not None:
        return r
    r = _require_cooldown_elapsed(state, params, ActionClass.DECRYPTION_REQUEST)
    if r is not None:
        return r
    batch = state.batch(params.batch_id)
    if batch is None:
        return UnknownBatch.code
    if batch.is_open:
        return BatchNotClosed.code
    if batch.is_finalized:
        return BatchAlreadyFinalized.code
    if params.request_id is not None and params.request_id in state.requests:
        return RequestIdCollision.code
    return None


def guard_oracle_callback(state: MarketState, params: ActionParams) -> Rejection:
    """REQUESTED -> FINALIZED.

    Order: replay guard, state verification, proof verification, decode.
    No caller authentication; authenticity comes from the proof. Not gated by
    pause so in-flight requests can still finalize.
    """
    if params.request_id is None:
        return UnknownRequest.code
    ctx = state.request(params.request_id)
    if ctx is None:
        return UnknownRequest.code
    if ctx.processed:
        return ReplayDetected.code
    batch = state.batch(ctx.batch_id)
    if batch is None or batch.is_finalized:
        # Another request already finalized this batch.
        return ReplayDetected.code
    if params.commitment is None or params.commitment != ctx.commitment:
        return StateMismatch.code
    if not params.proof_ok:
        return InvalidProof.code
    try:
        decode_score(params.cleartexts, expected_words=ctx.handle_count)
    except DecodeError:
        return DecodeError.code
    return None


"""Invariant checkers for the market engine.

Two kinds:
- state invariants: functions of one `MarketState`; `check_all()` returns the
  list of violated invariant IDs (empty = all pass),
- transition invariants: functions of (pre, post); `check_transition()` does
  the same for a single step. These cover properties no single snapshot can
  show, e.g. that `processed` never goes back to False.
"""

from __future__ import annotations

from typing import Callable

from ..state.batches import BATCH_STATUS_RANK, BatchStatus
from ..state.roles import Role
from .types import MarketState


def inv_single_owner(s: MarketState) -> bool:
    return sum(1 for r in s.roles.assignments.values() if r is Role.OWNER) == 1


def inv_cooldown_positive(s: MarketState) -> bool:
    return s.cooldown_seconds > 0


def inv_batch_ids_allocated(s: MarketState) -> bool:
    return all(1 <= b < s.next_batch_id and s.batches[b].batch_id == b for b in s.batches)


def inv_batch_aggregates_match(s: MarketState) -> bool:
    totals: dict[int, list[int]] = {b: [0, 0] for b in s.batches}
    for (batch_id, _actor), p in s.predictions.items():
        if batch_id not in totals:
            return False
        totals[batch_id][0] += p.amount
        totals[batch_id][1] += 1
    return all(
        s.batches[b].total_staked == staked and s.batches[b].submission_count == count
        for b, (staked, count) in totals.items()
    )


def inv_prediction_keys_consistent(s: MarketState) -> bool:
    return all(p.key == key and p.amount > 0 for key, p in s.predictions.items())


def inv_requests_target_closed_batches(s: MarketState) -> bool:
    for ctx in s.requests.values():
        batch = s.batches.get(ctx.batch_id)
        if batch is None or batch.status is BatchStatus.OPEN:
            return False
    return True


def inv_finalized_batch_has_processed_request(s: MarketState) -> bool:
    for batch in s.batches.values():
        if batch.status is BatchStatus.FINALIZED:
            if batch.finalized_by is None or batch.actual_score is None:
                return False
            ctx = s.requests.get(batch.finalized_by)
            if ctx is None or not ctx.processed or ctx.batch_id != batch.batch_id:
                return False
        elif batch.finalized_by is not None or batch.actual_score is not None:
            return False
    return True


def inv_processed_request_finalized_its_batch(s: MarketState) -> bool:
    for ctx in s.requests.values():
        if not ctx.processed:
            continue
        batch = s.batches.get(ctx.batch_id)
        if batch is None or batch.finalized_by != ctx.request_id:
            return False
    return True


# ---------------------------------------------------------------------------
# Transition invariants
# ---------------------------------------------------------------------------

def tinv_processed_monotonic(pre: MarketState, post: MarketState) -> bool:
    for rid, ctx in pre.requests.items():
        after = post.requests.get(rid)
        if after is None:
            return False
        if ctx.processed and not after.processed:
            return False
        if (after.batch_id, after.commitment, after.handle_count) != (
            ctx.batch_id, ctx.commitment, ctx.handle_count,
        ):
            return False
    return True


def tinv_batches_retained_and_forward(pre: MarketState, post: MarketState) -> bool:
    if post.next_batch_id < pre.next_batch_id:
        return False
    for bid, batch in pre.batches.items():
        after = post.batches.get(bid)
        if after is None:
            return False
        if BATCH_STATUS_RANK[after.status] < BATCH_STATUS_RANK[batch.status]:
            return False
    return True


def tinv_predictions_immutable(pre: MarketState, post: MarketState) -> bool:
    return all(post.predictions.get(k) == p for k, p in pre.predictions.items())


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[MarketState], bool]] = {
    "inv_single_owner": inv_single_owner,
    "inv_cooldown_positive": inv_cooldown_positive,
    "inv_batch_ids_allocated": inv_batch_ids_allocated,
    "inv_batch_aggregates_match": inv_batch_aggregates_match,
    "inv_prediction_keys_consistent": inv_prediction_keys_consistent,
    "inv_requests_target_closed_batches": inv_requests_target_closed_batches,
    "inv_finalized_batch_has_processed_request": inv_finalized_batch_has_processed_request,
    "inv_processed_request_finalized_its_batch": inv_processed_request_finalized_its_batch,
}

TRANSITION_REGISTRY: dict[str, Callable[[MarketState, MarketState], bool]] = {
    "tinv_processed_monotonic": tinv_processed_monotonic,
    "tinv_batches_retained_and_forward": tinv_batches_retained_and_forward,
    "tinv_predictions_immutable": tinv_predictions_immutable,
}


def check_all(state: MarketState) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state)
    ]


def check_transition(pre: MarketState, post: MarketState) -> list[str]:
    """Return list of violated transition invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in TRANSITION_REGISTRY.items()
        if not check_fn(pre, post)
    ]

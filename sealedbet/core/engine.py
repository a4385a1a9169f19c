"""Dispatch-table engine for the market.

``step(state, params)`` is the single entry point. It:

1. Validates parameter domains.
2. Dispatches to the correct guard / update / effect functions.
3. Checks all state invariants on the post-state and transition invariants
   on (pre, post).
4. Returns a ``StepResult`` (accepted or rejected with reason).

A rejected step returns no state: callers keep the pre-state, which is what
makes every operation all-or-nothing.
"""

from __future__ import annotations

from typing import Callable, Optional

from ..state.canonical import is_canonical_address
from .commitment import is_commitment
from .effects import (
    effect_add_provider,
    effect_close_batch,
    effect_open_batch,
    effect_oracle_callback,
    effect_remove_provider,
    effect_request_evaluation,
    effect_set_cooldown,
    effect_set_paused,
    effect_submit_prediction,
    effect_transfer_ownership,
)
from .errors import InvariantViolation, ParamDomainError, error_for
from .guards import (
    guard_add_provider,
    guard_close_batch,
    guard_open_batch,
    guard_oracle_callback,
    guard_remove_provider,
    guard_request_evaluation,
    guard_set_cooldown,
    guard_set_paused,
    guard_submit_prediction,
    guard_transfer_ownership,
)
from .invariants import check_all, check_transition
from .types import Action, ActionParams, Effect, MarketState, StepResult
from .updates import (
    apply_add_provider,
    apply_close_batch,
    apply_open_batch,
    apply_oracle_callback,
    apply_remove_provider,
    apply_request_evaluation,
    apply_set_cooldown,
    apply_set_paused,
    apply_submit_prediction,
    apply_transfer_ownership,
)

GuardFn = Callable[[MarketState, ActionParams], Optional[str]]
UpdateFn = Callable[[MarketState, ActionParams], MarketState]
EffectFn = Callable[[MarketState, ActionParams], Effect]

_DISPATCH: dict[Action, tuple[GuardFn, UpdateFn, EffectFn]] = {
    Action.ADD_PROVIDER: (
        guard_add_provider, apply_add_provider, effect_add_provider,
    ),
    Action.REMOVE_PROVIDER: (
        guard_remove_provider, apply_remove_provider, effect_remove_provider,
    ),
    Action.TRANSFER_OWNERSHIP: (
        guard_transfer_ownership, apply_transfer_ownership, effect_transfer_ownership,
    ),
    Action.SET_PAUSED: (
        guard_set_paused, apply_set_paused, effect_set_paused,
    ),
    Action.SET_COOLDOWN: (
        guard_set_cooldown, apply_set_cooldown, effect_set_cooldown,
    ),
    Action.OPEN_BATCH: (
        guard_open_batch, apply_open_batch, effect_open_batch,
    ),
    Action.CLOSE_BATCH: (
        guard_close_batch, apply_close_batch, effect_close_batch,
    ),
    Action.SUBMIT_PREDICTION: (
        guard_submit_prediction, apply_submit_prediction, effect_submit_prediction,
    ),
    Action.REQUEST_EVALUATION: (
        guard_request_evaluation, apply_request_evaluation, effect_request_evaluation,
    ),
    Action.ORACLE_CALLBACK: (
        guard_oracle_callback, apply_oracle_callback, effect_oracle_callback,
    ),
}

# -- Parameter domain bounds -------------------------------------------------

MAX_AMOUNT: int = (1 << 128) - 1
MAX_COOLDOWN_SECONDS: int = 365 * 24 * 3600
MAX_REQUEST_ID: int = (1 << 256) - 1
MAX_HANDLES_PER_REQUEST: int = 64

# Actions whose `actor` must be a canonical address.
_ACTOR_ACTIONS = frozenset(a for a in Action if a is not Action.ORACLE_CALLBACK)

# Actions that address an existing batch by id.
_BATCH_ACTIONS = frozenset(
    {Action.CLOSE_BATCH, Action.SUBMIT_PREDICTION, Action.REQUEST_EVALUATION}
)


def _is_int(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _validate_batch_id(params: ActionParams) -> str | None:
    if params.action in _BATCH_ACTIONS:
        if not _is_int(params.batch_id) or params.batch_id < 1:
            return "param_domain:batch_id"
    return None


def _validate_params(params: ActionParams) -> str | None:
    """Check parameter domains. Returns rejection reason or None."""
    if not _is_int(params.now) or params.now < 0:
        return "param_domain:now"
    if params.action in _ACTOR_ACTIONS and not is_canonical_address(params.actor):
        return "param_domain:actor"
    batch_err = _validate_batch_id(params)
    if batch_err is not None:
        return batch_err

    if params.action is Action.SET_COOLDOWN:
        if not _is_int(params.cooldown_seconds) or params.cooldown_seconds > MAX_COOLDOWN_SECONDS:
            return "param_domain:cooldown_seconds"
    elif params.action is Action.SUBMIT_PREDICTION:
        for name in ("amount", "attached_value"):
            v = getattr(params, name)
            if not _is_int(v) or v < 0 or v > MAX_AMOUNT:
                return f"param_domain:{name}"
    elif params.action is Action.REQUEST_EVALUATION:
        rid = params.request_id
        if rid is None or not _is_int(rid) or not 1 <= rid <= MAX_REQUEST_ID:
            return "param_domain:request_id"
        if params.commitment is None or not is_commitment(params.commitment):
            return "param_domain:commitment"
        if not 1 <= params.handle_count <= MAX_HANDLES_PER_REQUEST:
            return "param_domain:handle_count"
    elif params.action is Action.ORACLE_CALLBACK:
        rid = params.request_id
        if rid is None or not _is_int(rid) or not 1 <= rid <= MAX_REQUEST_ID:
            return "param_domain:request_id"
        if not isinstance(params.cleartexts, (bytes, bytearray)):
            return "param_domain:cleartexts"
        if not _is_int(params.winner_count) or params.winner_count < 0:
            return "param_domain:winner_count"
    return None


def check(state: MarketState, params: ActionParams) -> str | None:
    """Run the action's guard plus the batch id domain check (no update).

    Used by the service shell as a preflight before it talks to external
    collaborators; the authoritative decision is still made by ``step()``.
    """
    entry = _DISPATCH.get(params.action)
    if entry is None:
        return f"unknown_action:{params.action}"
    guard_fn, _update_fn, _effect_fn = entry
    batch_err = _validate_batch_id(params)
    if batch_err is not None:
        return batch_err
    return guard_fn(state, params)


def step(state: MarketState, params: ActionParams) -> StepResult:
    """Execute one action against the given state.

    Returns ``StepResult`` with ``accepted=True`` on success,
    or ``accepted=False`` with a ``rejection`` reason string.
    """
    entry = _DISPATCH.get(params.action)
    if entry is None:
        return StepResult(accepted=False, rejection=f"unknown_action:{params.action}")

    domain_err = _validate_params(params)
    if domain_err is not None:
        return StepResult(accepted=False, rejection=domain_err)

    guard_fn, update_fn, effect_fn = entry

    rejection = guard_fn(state, params)
    if rejection is not None:
        return StepResult(accepted=False, rejection=rejection)

    new_state = update_fn(state, params)

    violations = check_all(new_state) + check_transition(state, new_state)
    if violations:
        return StepResult(
            accepted=False,
            rejection=f"invariant:{','.join(violations)}",
        )

    effect = effect_fn(new_state, params)
    return StepResult(accepted=True, state=new_state, effect=effect)


def step_or_raise(state: MarketState, params: ActionParams) -> StepResult:
    """Like ``step()`` but raises on rejection instead of returning a result.

    Raises:
        ParamDomainError: Parameter outside its domain.
        InvariantViolation: Post-state violates one or more invariants.
        MarketError: The typed guard error (``Unauthorized``, ``Paused``, ...).
    """
    result = step(state, params)
    if result.accepted:
        return result
    raise rejection_error(result.rejection or "")


def rejection_error(reason: str) -> Exception:
    """Map a rejection reason string to the exception ``step_or_raise`` raises."""
    if reason.startswith("param_domain:") or reason.startswith("unknown_action:"):
        return ParamDomainError(reason)
    if reason.startswith("invariant:"):
        return InvariantViolation(reason.removeprefix("invariant:").split(","))
    return error_for(reason)

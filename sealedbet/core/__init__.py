"""`core`: pure state machine for the sealed-score prediction market.

- deterministic transitions over one immutable `MarketState`,
- fail-closed guards evaluated in a fixed order, one typed error per rejection,
- state and transition invariants checked after every accepted update.

Public API:
- `initial_state(owner) -> MarketState`
- `step(state, params) -> StepResult`
- `step_or_raise(state, params) -> StepResult` (raises on rejection)
- `check(state, params) -> str | None` (guard plus batch id preflight)
- `compute_commitment(handles, instance_id) -> str`
"""

from .commitment import compute_commitment
from .engine import check, step, step_or_raise
from .errors import MarketError
from .state import compute_state_root, initial_state, state_from_dict, state_to_dict
from .types import Action, ActionParams, Effect, Event, MarketState, StepResult

__all__ = [
    "check",
    "step",
    "step_or_raise",
    "initial_state",
    "state_from_dict",
    "state_to_dict",
    "compute_state_root",
    "compute_commitment",
    "Action",
    "ActionParams",
    "Effect",
    "Event",
    "MarketError",
    "MarketState",
    "StepResult",
]

"""Data types for the market engine.

All types are frozen dataclasses (immutable). Mapping fields inside
`MarketState` are never mutated in place: updates build new dicts and a new
state, so a rejected step cannot leave a partial write behind.

Conventions:
- actors are 20-byte addresses as lowercase 0x-hex,
- ciphertext handles are 32-byte values as lowercase 0x-hex,
- timestamps are non-negative integer seconds,
- amounts are positive integers in the ledger's smallest value unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Dict, Mapping, Optional, Tuple

from ..state.batches import Batch
from ..state.cooldowns import CooldownTable
from ..state.predictions import Prediction, PredictionKey
from ..state.requests import DecryptionContext, RequestStatus
from ..state.roles import Actor, RoleTable

DEFAULT_COOLDOWN_SECONDS: int = 60


@unique
class Action(Enum):
    """One member per externally invoked operation."""
    ADD_PROVIDER = "add_provider"
    REMOVE_PROVIDER = "remove_provider"
    TRANSFER_OWNERSHIP = "transfer_ownership"
    SET_PAUSED = "set_paused"
    SET_COOLDOWN = "set_cooldown"
    OPEN_BATCH = "open_batch"
    CLOSE_BATCH = "close_batch"
    SUBMIT_PREDICTION = "submit_prediction"
    REQUEST_EVALUATION = "request_evaluation"
    ORACLE_CALLBACK = "oracle_callback"


@unique
class Event(Enum):
    """One member per audit record type."""
    ROLE_CHANGED = "RoleChanged"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
    PAUSE_TOGGLED = "PauseToggled"
    COOLDOWN_CHANGED = "CooldownChanged"
    BATCH_OPENED = "BatchOpened"
    BATCH_CLOSED = "BatchClosed"
    PREDICTION_SUBMITTED = "PredictionSubmitted"
    DECRYPTION_REQUESTED = "DecryptionRequested"
    DECRYPTION_FINALIZED = "DecryptionFinalized"


@dataclass(frozen=True)
class MarketState:
    """Complete ledger state of one market instance."""

    roles: RoleTable

    # Operational controls
    paused: bool = False
    cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS

    # Batch ledger
    next_batch_id: int = 1
    batches: Mapping[int, Batch] = field(default_factory=dict)

    # Prediction store, keyed by (batch_id, actor)
    predictions: Mapping[PredictionKey, Prediction] = field(default_factory=dict)

    # Decryption request registry, keyed by oracle request id
    requests: Mapping[int, DecryptionContext] = field(default_factory=dict)

    # Rate limiter stamps
    cooldowns: CooldownTable = field(default_factory=CooldownTable)

    def batch(self, batch_id: int) -> Optional[Batch]:
        return self.batches.get(batch_id)

    def prediction(self, batch_id: int, actor: Actor) -> Optional[Prediction]:
        return self.predictions.get((batch_id, actor))

    def predictions_for(self, batch_id: int) -> Tuple[Prediction, ...]:
        """Predictions of one batch, ordered by actor."""
        return tuple(
            p for (b, _a), p in sorted(self.predictions.items()) if b == batch_id
        )

    def request(self, request_id: int) -> Optional[DecryptionContext]:
        return self.requests.get(request_id)

    def request_status(self, request_id: int) -> RequestStatus:
        ctx = self.requests.get(request_id)
        return RequestStatus.NONE if ctx is None else ctx.status

    @property
    def latest_batch_id(self) -> Optional[int]:
        """Most recently opened batch id, if any."""
        return self.next_batch_id - 1 if self.next_batch_id > 1 else None


@dataclass(frozen=True)
class ActionParams:
    """Parameters for an action. Unused fields default to None/0/False."""

    action: Action
    actor: Actor = ""               # all actions except oracle_callback
    now: int = 0                    # all actions
    target: Actor = ""              # add_provider / remove_provider / transfer_ownership
    paused: bool = False            # set_paused
    cooldown_seconds: int = 0       # set_cooldown
    batch_id: int = 0               # close_batch / submit_prediction / request_evaluation
    handle: str = ""                # submit_prediction
    handle_initialized: bool = False  # submit_prediction (reported by the encryption backend)
    amount: int = 0                 # submit_prediction
    attached_value: int = 0         # submit_prediction
    request_id: Optional[int] = None  # request_evaluation / oracle_callback
    commitment: Optional[str] = None  # request_evaluation / oracle_callback (recomputed)
    handle_count: int = 0           # request_evaluation
    cleartexts: bytes = b""         # oracle_callback
    proof_ok: bool = False          # oracle_callback (reported by the proof verifier)
    winner_count: int = 0           # oracle_callback (reported by the winner policy)


@dataclass(frozen=True)
class Effect:
    """Audit record emitted after a successful step.

    Only the fields relevant to `event` are populated; the rest stay None.
    """

    event: Event
    at: int = 0
    actor: Optional[Actor] = None
    target: Optional[Actor] = None
    role: Optional[str] = None
    granted: Optional[bool] = None
    paused: Optional[bool] = None
    cooldown_seconds: Optional[int] = None
    batch_id: Optional[int] = None
    handle: Optional[str] = None
    amount: Optional[int] = None
    total_staked: Optional[int] = None
    submission_count: Optional[int] = None
    request_id: Optional[int] = None
    commitment: Optional[str] = None
    actual_score: Optional[int] = None
    winner_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"event": self.event.value}
        for name in Effect.__dataclass_fields__:
            if name == "event":
                continue
            v = getattr(self, name)
            if v is not None:
                out[name] = v
        return out


@dataclass(frozen=True)
class StepResult:
    """Result of a single engine step."""

    accepted: bool
    state: MarketState | None = None
    effect: Effect | None = None
    rejection: str | None = None

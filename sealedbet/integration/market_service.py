"""
Market service (imperative shell).

`MarketService` owns the single authoritative `MarketState` and is the only
writer. Every entry point runs under one re-entrant lock, so state-mutating
operations are globally ordered and each either commits a whole transition or
leaves the state untouched.

The pure engine decides; this module only gathers what the engine needs from
the collaborators (ciphertext checks, evaluation results, oracle request ids,
proof verification, winner counts) and publishes the resulting audit records.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from ..core.codec import decode_score
from ..core.commitment import compute_commitment
from ..core.engine import MAX_HANDLES_PER_REQUEST, check, rejection_error, step_or_raise
from ..core.errors import (
    DecodeError,
    EvaluationUnavailable,
    InvariantViolation,
    MarketError,
    ParamDomainError,
    UninitializedCiphertext,
)
from ..core.invariants import check_all
from ..core.state import compute_state_root, initial_state, state_from_dict, state_to_dict
from ..core.types import DEFAULT_COOLDOWN_SECONDS, Action, ActionParams, Effect, MarketState
from ..core.winners import WinnerPolicy
from ..state.batches import Batch
from ..state.canonical import canonical_address, domain_sep_bytes
from ..state.predictions import Prediction
from ..state.requests import DecryptionContext, RequestStatus
from .callbacks import CallbackEnvelope
from .evaluation import EvaluationSource
from .fhe import Ciphertext, CiphertextBackend
from .oracle import DecryptionOracle
from .proof_verifier import ProofVerifier

logger = logging.getLogger("sealedbet.integration.market_service")

SNAPSHOT_VERSION = 1

Listener = Callable[[Effect], None]


@dataclass(frozen=True)
class MarketServiceConfig:
    # Identity of this deployed instance; bound into every commitment and proof.
    instance_id: str
    owner: str
    cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS
    max_events: int = 10_000

    def __post_init__(self) -> None:
        if not isinstance(self.instance_id, str) or not self.instance_id:
            raise ValueError("instance_id must be a non-empty str")
        if len(self.instance_id) > 256:
            raise ValueError("instance_id too long")
        # Must be usable as a domain separation label.
        domain_sep_bytes(f"decryption_proof:{self.instance_id}")
        canonical_address(self.owner, name="owner")
        if (
            not isinstance(self.cooldown_seconds, int)
            or isinstance(self.cooldown_seconds, bool)
            or self.cooldown_seconds <= 0
        ):
            raise ValueError("cooldown_seconds must be a positive int")
        if not isinstance(self.max_events, int) or self.max_events <= 0:
            raise ValueError("max_events must be a positive int")


def _wall_clock() -> int:
    return int(time.time())


def _canon_actor(actor: Any) -> Any:
    # Normalize case/prefix when possible; malformed values fall through to the
    # engine's parameter-domain check.
    try:
        return canonical_address(actor)
    except (TypeError, ValueError):
        return actor


class MarketService:
    def __init__(
        self,
        config: MarketServiceConfig,
        *,
        fhe: CiphertextBackend,
        evaluation: EvaluationSource,
        oracle: DecryptionOracle,
        verifier: ProofVerifier,
        winner_policy: WinnerPolicy,
        clock: Callable[[], int] = _wall_clock,
        state: Optional[MarketState] = None,
    ) -> None:
        self._config = config
        self._fhe = fhe
        self._evaluation = evaluation
        self._oracle = oracle
        self._verifier = verifier
        self._winner_policy = winner_policy
        self._clock = clock
        self._lock = threading.RLock()
        self._events: Deque[Effect] = deque(maxlen=config.max_events)
        self._listeners: List[Listener] = []

        if state is None:
            state = initial_state(config.owner, cooldown_seconds=config.cooldown_seconds)
        else:
            violations = check_all(state)
            if violations:
                raise InvariantViolation(violations)
        self._state = state

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def instance_id(self) -> str:
        return self._config.instance_id

    def _now(self, now: Optional[int]) -> int:
        return self._clock() if now is None else now

    def _commit(self, params: ActionParams) -> Effect:
        with self._lock:
            try:
                result = step_or_raise(self._state, params)
            except MarketError as exc:
                logger.warning(f"{params.action.value} rejected: {exc.code} ({exc})")
                raise
            assert result.state is not None and result.effect is not None
            self._state = result.state
            effect = result.effect
            self._events.append(effect)
            listeners = list(self._listeners)
        logger.info(f"{params.action.value} accepted: {effect.event.value}")
        for listener in listeners:
            try:
                listener(effect)
            except Exception:
                logger.exception(f"event listener failed for {effect.event.value}")
        return effect

    def _preflight(self, params: ActionParams) -> None:
        rejection = check(self._state, params)
        if rejection is not None:
            exc = rejection_error(rejection)
            logger.warning(f"{params.action.value} rejected: {rejection}")
            raise exc

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def add_provider(self, actor: str, target: str, *, now: Optional[int] = None) -> Effect:
        return self._commit(
            ActionParams(
                action=Action.ADD_PROVIDER,
                actor=_canon_actor(actor),
                now=self._now(now),
                target=_canon_actor(target),
            )
        )

    def remove_provider(self, actor: str, target: str, *, now: Optional[int] = None) -> Effect:
        return self._commit(
            ActionParams(
                action=Action.REMOVE_PROVIDER,
                actor=_canon_actor(actor),
                now=self._now(now),
                target=_canon_actor(target),
            )
        )

    def transfer_ownership(self, actor: str, new_owner: str, *, now: Optional[int] = None) -> Effect:
        return self._commit(
            ActionParams(
                action=Action.TRANSFER_OWNERSHIP,
                actor=_canon_actor(actor),
                now=self._now(now),
                target=_canon_actor(new_owner),
            )
        )

    def set_paused(self, actor: str, paused: bool, *, now: Optional[int] = None) -> Effect:
        return self._commit(
            ActionParams(
                action=Action.SET_PAUSED,
                actor=_canon_actor(actor),
                now=self._now(now),
                paused=bool(paused),
            )
        )

    def set_cooldown(self, actor: str, cooldown_seconds: int, *, now: Optional[int] = None) -> Effect:
        return self._commit(
            ActionParams(
                action=Action.SET_COOLDOWN,
                actor=_canon_actor(actor),
                now=self._now(now),
                cooldown_seconds=cooldown_seconds,
            )
        )

    # ------------------------------------------------------------------
    # Batch ledger / prediction store
    # ------------------------------------------------------------------

    def open_batch(self, actor: str, *, now: Optional[int] = None) -> int:
        """Open the next batch and return its id."""
        effect = self._commit(
            ActionParams(action=Action.OPEN_BATCH, actor=_canon_actor(actor), now=self._now(now))
        )
        assert effect.batch_id is not None
        return effect.batch_id

    def close_batch(self, actor: str, batch_id: int, *, now: Optional[int] = None) -> Effect:
        return self._commit(
            ActionParams(
                action=Action.CLOSE_BATCH,
                actor=_canon_actor(actor),
                now=self._now(now),
                batch_id=batch_id,
            )
        )

    def submit_prediction(
        self,
        batch_id: int,
        actor: str,
        prediction: Ciphertext,
        amount: int,
        attached_value: int,
        *,
        now: Optional[int] = None,
    ) -> Effect:
        initialized = self._fhe.is_initialized(prediction)
        handle = ""
        if initialized:
            try:
                handle = self._fhe.to_handle(prediction)
            except (TypeError, ValueError):
                initialized = False
        return self._commit(
            ActionParams(
                action=Action.SUBMIT_PREDICTION,
                actor=_canon_actor(actor),
                now=self._now(now),
                batch_id=batch_id,
                handle=handle,
                handle_initialized=initialized,
                amount=amount,
                attached_value=attached_value,
            )
        )

    # ------------------------------------------------------------------
    # Decryption protocol
    # ------------------------------------------------------------------

    def _result_handles(self, batch_id: int) -> Tuple[str, ...]:
        cts = self._evaluation.result_ciphertexts(batch_id)
        for i, ct in enumerate(cts):
            if not self._fhe.is_initialized(ct):
                raise UninitializedCiphertext(f"result ciphertext {i} of batch {batch_id} is not initialized")
        return tuple(self._fhe.to_handle(ct) for ct in cts)

    def request_evaluation(self, actor: str, batch_id: int, *, now: Optional[int] = None) -> int:
        """NONE -> REQUESTED. Returns the oracle-assigned request id."""
        with self._lock:
            base = ActionParams(
                action=Action.REQUEST_EVALUATION,
                actor=_canon_actor(actor),
                now=self._now(now),
                batch_id=batch_id,
            )
            self._preflight(base)
            try:
                handles = self._result_handles(batch_id)
            except (EvaluationUnavailable, UninitializedCiphertext) as exc:
                logger.warning(f"request_evaluation rejected: {exc.code} ({exc})")
                raise
            if len(handles) > MAX_HANDLES_PER_REQUEST:
                raise ParamDomainError(f"param_domain:handle_count ({len(handles)})")
            commitment = compute_commitment(handles, self._config.instance_id)
            request_id = self._oracle.request_decryption(handles)
            logger.info(f"decryption requested for batch {batch_id}: request_id={request_id} handles={len(handles)}")
            self._commit(
                replace(base, request_id=request_id, commitment=commitment, handle_count=len(handles))
            )
            return request_id

    def on_oracle_callback(self, request_id: int, cleartexts: bytes, proof: Any) -> Effect:
        """REQUESTED -> FINALIZED. Entry point for the oracle; no caller authentication."""
        if not isinstance(cleartexts, (bytes, bytearray)):
            raise DecodeError("cleartexts must be bytes")
        with self._lock:
            state = self._state
            ctx = state.request(request_id) if isinstance(request_id, int) else None
            commitment: Optional[str] = None
            proof_ok = False
            if ctx is not None and not ctx.processed:
                try:
                    handles = self._result_handles(ctx.batch_id)
                    commitment = compute_commitment(handles, self._config.instance_id)
                except (EvaluationUnavailable, UninitializedCiphertext, ValueError) as exc:
                    logger.warning(f"cannot re-derive commitment for request {request_id}: {exc}")
                    handles = ()
                if commitment is not None and commitment == ctx.commitment:
                    proof_ok, reason = self._verifier.verify(
                        request_id=request_id,
                        handles=handles,
                        cleartexts=bytes(cleartexts),
                        proof=proof,
                    )
                    if not proof_ok:
                        logger.warning(f"proof rejected for request {request_id}: {reason}")

            base = ActionParams(
                action=Action.ORACLE_CALLBACK,
                now=self._now(None),
                request_id=request_id,
                commitment=commitment,
                cleartexts=bytes(cleartexts),
                proof_ok=proof_ok,
            )
            self._preflight(base)
            assert ctx is not None
            score = decode_score(bytes(cleartexts), expected_words=ctx.handle_count)
            winners = self._winner_policy.count_winners(state.predictions_for(ctx.batch_id), score)
            return self._commit(replace(base, winner_count=winners))

    def on_callback_envelope(self, envelope: CallbackEnvelope) -> Effect:
        return self.on_oracle_callback(envelope.request_id, envelope.cleartexts, envelope.proof)

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    @property
    def state(self) -> MarketState:
        return self._state

    @property
    def owner(self) -> str:
        return self._state.roles.owner

    def providers(self) -> Tuple[str, ...]:
        return self._state.roles.providers()

    def is_available(self) -> bool:
        """True while the market accepts submissions (not paused)."""
        return not self._state.paused

    def batch(self, batch_id: int) -> Optional[Batch]:
        return self._state.batch(batch_id)

    def prediction(self, batch_id: int, actor: str) -> Optional[Prediction]:
        return self._state.prediction(batch_id, _canon_actor(actor))

    def predictions(self, batch_id: int) -> Tuple[Prediction, ...]:
        return self._state.predictions_for(batch_id)

    def decryption_context(self, request_id: int) -> Optional[DecryptionContext]:
        return self._state.request(request_id)

    def request_status(self, request_id: int) -> RequestStatus:
        return self._state.request_status(request_id)

    def state_root(self) -> str:
        return compute_state_root(self._state)

    def events(self) -> Tuple[Effect, ...]:
        with self._lock:
            return tuple(self._events)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for audit records. Returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "instance_id": self._config.instance_id,
                "state": state_to_dict(self._state),
                "state_root": compute_state_root(self._state),
            }

    @classmethod
    def restore(
        cls,
        snapshot: Mapping[str, Any],
        config: MarketServiceConfig,
        *,
        fhe: CiphertextBackend,
        evaluation: EvaluationSource,
        oracle: DecryptionOracle,
        verifier: ProofVerifier,
        winner_policy: WinnerPolicy,
        clock: Callable[[], int] = _wall_clock,
    ) -> "MarketService":
        if snapshot.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version: {snapshot.get('version')!r}")
        if snapshot.get("instance_id") != config.instance_id:
            raise ValueError("snapshot belongs to a different instance")
        state = state_from_dict(snapshot["state"])
        root = compute_state_root(state)
        if snapshot.get("state_root") != root:
            raise ValueError("snapshot state_root mismatch")
        logger.info(f"restored market {config.instance_id} at state_root={root}")
        return cls(
            config,
            fhe=fhe,
            evaluation=evaluation,
            oracle=oracle,
            verifier=verifier,
            winner_policy=winner_policy,
            clock=clock,
            state=state,
        )

"""Exception types for the market engine.

Every guard rejection has a stable string code (the `StepResult.rejection`
value). ``step_or_raise()`` in ``engine.py`` maps that code back to the class
below, so callers can either inspect codes or catch exceptions by family.
"""

from __future__ import annotations

from typing import ClassVar


class MarketError(Exception):
    """Base class for every rejected market operation."""

    code: ClassVar[str] = "market_error"


# -- Authorization -----------------------------------------------------------

class AuthorizationError(MarketError):
    code = "authorization"


class Unauthorized(AuthorizationError):
    code = "unauthorized"


class InvalidRoleChange(AuthorizationError):
    code = "invalid_role_change"


# -- Lifecycle ---------------------------------------------------------------

class LifecycleError(MarketError):
    code = "lifecycle"


class BatchClosed(LifecycleError):
    code = "batch_closed"


class BatchAlreadyClosed(LifecycleError):
    code = "batch_already_closed"


class BatchNotClosed(LifecycleError):
    code = "batch_not_closed"


class UnknownBatch(LifecycleError):
    code = "unknown_batch"


class BatchAlreadyFinalized(LifecycleError):
    code = "batch_already_finalized"


class EvaluationUnavailable(LifecycleError):
    code = "evaluation_unavailable"


# -- Rate limiting -----------------------------------------------------------

class RateLimitError(MarketError):
    code = "rate_limit"


class CooldownActive(RateLimitError):
    code = "cooldown_active"


class InvalidCooldown(RateLimitError):
    code = "invalid_cooldown"


# -- Integrity ---------------------------------------------------------------

class IntegrityError(MarketError):
    code = "integrity"


class ReplayDetected(IntegrityError):
    code = "replay_detected"


class UnknownRequest(IntegrityError):
    code = "unknown_request"


class StateMismatch(IntegrityError):
    code = "state_mismatch"


class InvalidProof(IntegrityError):
    code = "invalid_proof"


class DecodeError(IntegrityError):
    code = "decode_error"


class RequestIdCollision(IntegrityError):
    code = "request_id_collision"


# -- Value consistency -------------------------------------------------------

class ValueConsistencyError(MarketError):
    code = "value_consistency"


class ValueMismatch(ValueConsistencyError):
    code = "value_mismatch"


class DuplicatePrediction(ValueConsistencyError):
    code = "duplicate_prediction"


class UninitializedCiphertext(ValueConsistencyError):
    code = "uninitialized_ciphertext"


class InvalidAmount(ValueConsistencyError):
    code = "invalid_amount"


# -- Operational gate --------------------------------------------------------

class OperationalGateError(MarketError):
    code = "operational_gate"


class Paused(OperationalGateError):
    code = "paused"


# -- Internal faults ---------------------------------------------------------

class ParamDomainError(MarketError):
    """Raised when an action parameter is outside its domain."""

    code = "param_domain"


class InvariantViolation(MarketError):
    """Raised when a post-state violates one or more invariants."""

    code = "invariant"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


def _leaf_classes(root: type[MarketError]) -> list[type[MarketError]]:
    out: list[type[MarketError]] = []
    stack = list(root.__subclasses__())
    while stack:
        cls = stack.pop()
        subs = cls.__subclasses__()
        if subs:
            stack.extend(subs)
        else:
            out.append(cls)
    return out


ERRORS_BY_CODE: dict[str, type[MarketError]] = {
    cls.code: cls
    for cls in _leaf_classes(MarketError)
    if cls not in (ParamDomainError, InvariantViolation)
}


def error_for(code: str, message: str | None = None) -> MarketError:
    """Build the exception matching a rejection code (unknown codes -> MarketError)."""
    cls = ERRORS_BY_CODE.get(code)
    if cls is None:
        return MarketError(message or code)
    return cls(message or code)

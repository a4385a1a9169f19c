"""
Decryption proof verification (imperative shell).

The oracle proves that `cleartexts` is the authentic decryption of the
committed handles for one specific request by attaching BLS12-381 signatures
from its recognized key set. A proof is accepted when at least `threshold`
distinct recognized keys signed the request's proof message.

Design goals:
- Deterministic, fail-closed verification: never raises, returns (ok, reason).
- Disabled or misconfigured verifiers reject every proof.
- No secret key handling here (verification only; see agents.relayer for signing).

Proof format:
    {"signatures": [{"pubkey": "0x<48 bytes>", "signature": "0x<96 bytes>"}, ...]}

Signed message:
    sha256( domain_sep("decryption_proof:<instance_id>", v1)
            || canonical_json({"request_id", "handles", "cleartexts"}) )
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Set, Tuple

from py_ecc.bls import G2Basic

from ..state.canonical import (
    canonical_hex_fixed_allow_0x,
    canonical_json_bytes,
    domain_sep_bytes,
    hex_to_bytes_fixed,
)

BLS_PUBKEY_BYTES = 48
BLS_SIGNATURE_BYTES = 96
PROOF_MESSAGE_VERSION = 1


@dataclass(frozen=True)
class ProofVerifierConfig:
    enabled: bool = False
    # Recognized oracle public keys (48-byte compressed G1 points, hex).
    oracle_pubkeys: Tuple[str, ...] = ()
    threshold: int = 1
    max_signatures: int = 16  # hard cap for DoS resistance
    max_cleartext_bytes: int = 64 * 32

    def __post_init__(self) -> None:
        for name in ("threshold", "max_signatures", "max_cleartext_bytes"):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool) or v <= 0:
                raise ValueError(f"{name} must be a positive int")
        if isinstance(self.oracle_pubkeys, str):
            raise TypeError("oracle_pubkeys must be a sequence of hex strings")


def decryption_proof_message(
    *, instance_id: str, request_id: int, handles: Sequence[str], cleartexts: bytes
) -> bytes:
    """32-byte digest the oracle signs for one decryption result."""
    payload = {
        "request_id": int(request_id),
        "handles": [str(h) for h in handles],
        "cleartexts": "0x" + bytes(cleartexts).hex(),
    }
    msg = domain_sep_bytes(f"decryption_proof:{instance_id}", version=PROOF_MESSAGE_VERSION)
    return hashlib.sha256(msg + canonical_json_bytes(payload)).digest()


class ProofVerifier:
    """Interface for verifying a decryption proof."""

    def verify(
        self, *, request_id: int, handles: Sequence[str], cleartexts: bytes, proof: Any
    ) -> Tuple[bool, Optional[str]]:
        raise NotImplementedError


class DisabledProofVerifier(ProofVerifier):
    def verify(
        self, *, request_id: int, handles: Sequence[str], cleartexts: bytes, proof: Any
    ) -> Tuple[bool, Optional[str]]:
        return False, "proof verification disabled"


class MisconfiguredProofVerifier(ProofVerifier):
    def __init__(self, reason: str) -> None:
        self._reason = str(reason)

    def verify(
        self, *, request_id: int, handles: Sequence[str], cleartexts: bytes, proof: Any
    ) -> Tuple[bool, Optional[str]]:
        return False, self._reason


class BlsThresholdProofVerifier(ProofVerifier):
    """t-of-n BLS signatures by recognized oracle keys over the proof message."""

    def __init__(
        self,
        *,
        instance_id: str,
        oracle_pubkeys: Sequence[str],
        threshold: int,
        max_signatures: int,
        max_cleartext_bytes: int,
    ) -> None:
        if not oracle_pubkeys:
            raise ValueError("oracle_pubkeys must be non-empty")
        if threshold <= 0 or threshold > len(set(oracle_pubkeys)):
            raise ValueError("threshold must be in 1..len(oracle_pubkeys)")
        self._instance_id = instance_id
        self._pubkeys: Set[str] = set(oracle_pubkeys)
        self._threshold = int(threshold)
        self._max_signatures = int(max_signatures)
        self._max_cleartext_bytes = int(max_cleartext_bytes)

    def verify(
        self, *, request_id: int, handles: Sequence[str], cleartexts: bytes, proof: Any
    ) -> Tuple[bool, Optional[str]]:
        if not isinstance(cleartexts, (bytes, bytearray)):
            return False, "cleartexts must be bytes"
        if len(cleartexts) > self._max_cleartext_bytes:
            return False, "cleartexts too large"
        if not isinstance(proof, Mapping):
            return False, "proof must be an object"
        sigs = proof.get("signatures")
        if not isinstance(sigs, list) or not sigs:
            return False, "proof.signatures must be a non-empty list"
        if len(sigs) > self._max_signatures:
            return False, "too many signatures"

        try:
            msg = decryption_proof_message(
                instance_id=self._instance_id,
                request_id=request_id,
                handles=handles,
                cleartexts=bytes(cleartexts),
            )
        except (TypeError, ValueError) as exc:
            return False, f"invalid proof message: {exc}"

        signers: Set[str] = set()
        for i, entry in enumerate(sigs):
            if not isinstance(entry, Mapping):
                return False, f"proof.signatures[{i}] must be an object"
            try:
                pubkey = canonical_hex_fixed_allow_0x(
                    entry.get("pubkey"), nbytes=BLS_PUBKEY_BYTES, name=f"signatures[{i}].pubkey"
                )
                sig_bytes = hex_to_bytes_fixed(
                    entry.get("signature"), nbytes=BLS_SIGNATURE_BYTES, name=f"signatures[{i}].signature"
                )
            except (TypeError, ValueError) as exc:
                return False, str(exc)
            if pubkey not in self._pubkeys or pubkey in signers:
                continue
            try:
                ok = bool(G2Basic.Verify(bytes.fromhex(pubkey[2:]), msg, sig_bytes))
            except Exception as exc:
                return False, f"signature verification error: {exc}"
            if not ok:
                return False, f"invalid signature from oracle key {pubkey}"
            signers.add(pubkey)

        if len(signers) < self._threshold:
            return False, f"insufficient oracle signatures ({len(signers)}/{self._threshold})"
        return True, None


def make_proof_verifier(config: ProofVerifierConfig, *, instance_id: str) -> ProofVerifier:
    if not config.enabled:
        return DisabledProofVerifier()
    if not config.oracle_pubkeys:
        return MisconfiguredProofVerifier("proof verifier misconfigured (missing oracle_pubkeys)")
    try:
        domain_sep_bytes(f"decryption_proof:{instance_id}")
    except (TypeError, ValueError) as exc:
        return MisconfiguredProofVerifier(f"proof verifier misconfigured (instance_id): {exc}")
    pubkeys = []
    for i, pk in enumerate(config.oracle_pubkeys):
        try:
            pubkeys.append(
                canonical_hex_fixed_allow_0x(pk, nbytes=BLS_PUBKEY_BYTES, name=f"oracle_pubkeys[{i}]")
            )
        except (TypeError, ValueError) as exc:
            return MisconfiguredProofVerifier(f"proof verifier misconfigured ({exc})")
    if config.threshold > len(set(pubkeys)):
        return MisconfiguredProofVerifier(
            "proof verifier misconfigured (threshold exceeds number of distinct oracle keys)"
        )
    return BlsThresholdProofVerifier(
        instance_id=instance_id,
        oracle_pubkeys=pubkeys,
        threshold=config.threshold,
        max_signatures=config.max_signatures,
        max_cleartext_bytes=config.max_cleartext_bytes,
    )

"""
Local oracle relayer for end-to-end runs without an external oracle.

Accepts decryption requests, decrypts through the local FHE backend, signs the
result with its BLS oracle keys, and delivers the callback envelope to a
market service. Request ids are assigned sequentially.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Tuple

from py_ecc.bls import G2Basic

from ..core.codec import encode_cleartexts
from ..core.types import Effect
from ..integration.callbacks import CallbackEnvelope
from ..integration.fhe import LocalFheBackend
from ..integration.oracle import DecryptionOracle
from ..integration.proof_verifier import decryption_proof_message

if TYPE_CHECKING:
    from ..integration.market_service import MarketService

logger = logging.getLogger("sealedbet.agents.relayer")


def oracle_pubkey_hex(secret_key: int) -> str:
    return "0x" + G2Basic.SkToPk(secret_key).hex()


def sign_decryption_proof(
    secret_keys: Sequence[int],
    *,
    instance_id: str,
    request_id: int,
    handles: Sequence[str],
    cleartexts: bytes,
) -> Dict[str, Any]:
    """
    Build a proof object signed by each of `secret_keys`.

    Each key signs decryption_proof_message(instance_id, request_id, handles, cleartexts)
    with BLS12-381 G2Basic.
    """
    if not secret_keys:
        raise ValueError("secret_keys must be non-empty")
    msg = decryption_proof_message(
        instance_id=instance_id, request_id=request_id, handles=handles, cleartexts=cleartexts
    )
    signatures: List[Dict[str, str]] = []
    for sk in secret_keys:
        signatures.append(
            {
                "pubkey": oracle_pubkey_hex(sk),
                "signature": "0x" + G2Basic.Sign(sk, msg).hex(),
            }
        )
    return {"signatures": signatures}


class LocalRelayer(DecryptionOracle):
    def __init__(
        self,
        fhe: LocalFheBackend,
        *,
        instance_id: str,
        secret_keys: Sequence[int],
        first_request_id: int = 1,
    ) -> None:
        if not secret_keys:
            raise ValueError("secret_keys must be non-empty")
        if first_request_id <= 0:
            raise ValueError("first_request_id must be positive")
        self._fhe = fhe
        self._instance_id = instance_id
        self._secret_keys = tuple(secret_keys)
        self._next_request_id = int(first_request_id)
        self._pending: Dict[int, Tuple[str, ...]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_seeds(
        cls, fhe: LocalFheBackend, *, instance_id: str, seeds: Sequence[bytes]
    ) -> "LocalRelayer":
        """Deterministic keys: one G2Basic.KeyGen per 32-byte seed."""
        return cls(fhe, instance_id=instance_id, secret_keys=[G2Basic.KeyGen(s) for s in seeds])

    @property
    def oracle_pubkeys(self) -> Tuple[str, ...]:
        return tuple(oracle_pubkey_hex(sk) for sk in self._secret_keys)

    def request_decryption(self, handles: Sequence[str]) -> int:
        with self._lock:
            request_id = self._next_request_id
            self._next_request_id += 1
            self._pending[request_id] = tuple(handles)
        logger.info(f"queued decryption request {request_id} ({len(handles)} handles)")
        return request_id

    def pending_requests(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(sorted(self._pending))

    def fulfill(self, request_id: int) -> CallbackEnvelope:
        """Decrypt and sign a pending request. The request stays pending until delivered."""
        with self._lock:
            handles = self._pending.get(request_id)
        if handles is None:
            raise ValueError(f"unknown decryption request: {request_id}")
        cleartexts = encode_cleartexts(self._fhe.decrypt(handles))
        proof = sign_decryption_proof(
            self._secret_keys,
            instance_id=self._instance_id,
            request_id=request_id,
            handles=handles,
            cleartexts=cleartexts,
        )
        return CallbackEnvelope(request_id=request_id, cleartexts=cleartexts, proof=proof)

    def deliver(self, service: "MarketService", request_id: int) -> Effect:
        """Fulfill `request_id` and invoke the service callback; errors propagate."""
        envelope = self.fulfill(request_id)
        effect = service.on_callback_envelope(envelope)
        with self._lock:
            self._pending.pop(request_id, None)
        logger.info(f"delivered decryption request {request_id}")
        return effect

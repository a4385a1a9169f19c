# [TESTER] v1

from __future__ import annotations

import pytest
from py_ecc.bls import G2Basic

from sealedbet.agents.relayer import oracle_pubkey_hex, sign_decryption_proof
from sealedbet.core.codec import encode_cleartexts
from sealedbet.integration.proof_verifier import (
    BlsThresholdProofVerifier,
    DisabledProofVerifier,
    MisconfiguredProofVerifier,
    ProofVerifierConfig,
    decryption_proof_message,
    make_proof_verifier,
)

INSTANCE = "sealedbet-test"
HANDLES = ["0x" + "5c" * 32]
CLEARTEXTS = encode_cleartexts([77])

SK1 = G2Basic.KeyGen(b"\x01" * 32)
SK2 = G2Basic.KeyGen(b"\x02" * 32)
SK3 = G2Basic.KeyGen(b"\x03" * 32)


def _verifier(*sks: int, threshold: int = 1):
    return make_proof_verifier(
        ProofVerifierConfig(
            enabled=True,
            oracle_pubkeys=tuple(oracle_pubkey_hex(sk) for sk in sks),
            threshold=threshold,
        ),
        instance_id=INSTANCE,
    )


def _proof(*sks: int, request_id: int = 1, instance_id: str = INSTANCE, cleartexts: bytes = CLEARTEXTS):
    return sign_decryption_proof(
        list(sks), instance_id=instance_id, request_id=request_id, handles=HANDLES, cleartexts=cleartexts
    )


def _verify(v, proof, *, request_id: int = 1, cleartexts: bytes = CLEARTEXTS):
    return v.verify(request_id=request_id, handles=HANDLES, cleartexts=cleartexts, proof=proof)


def test_valid_single_signature() -> None:
    v = _verifier(SK1)
    assert isinstance(v, BlsThresholdProofVerifier)
    ok, err = _verify(v, _proof(SK1))
    assert ok, err


def test_proof_is_bound_to_request_id() -> None:
    ok, err = _verify(_verifier(SK1), _proof(SK1, request_id=2), request_id=1)
    assert not ok
    assert "invalid signature" in err


def test_proof_is_bound_to_instance() -> None:
    ok, _ = _verify(_verifier(SK1), _proof(SK1, instance_id="other-instance"))
    assert not ok


def test_proof_is_bound_to_cleartexts() -> None:
    ok, _ = _verify(_verifier(SK1), _proof(SK1), cleartexts=encode_cleartexts([78]))
    assert not ok


def test_unrecognized_key_does_not_count() -> None:
    ok, err = _verify(_verifier(SK1), _proof(SK3))
    assert not ok
    assert "insufficient" in err


def test_threshold_two_of_three() -> None:
    v = _verifier(SK1, SK2, SK3, threshold=2)
    assert not _verify(v, _proof(SK1))[0]
    assert _verify(v, _proof(SK1, SK3))[0]


def test_duplicate_signer_counted_once() -> None:
    v = _verifier(SK1, SK2, threshold=2)
    proof = _proof(SK1)
    proof["signatures"] = proof["signatures"] * 2
    ok, err = _verify(v, proof)
    assert not ok
    assert "insufficient" in err


@pytest.mark.parametrize(
    "proof",
    [
        None,
        {},
        {"signatures": []},
        {"signatures": "nope"},
        {"signatures": [{"pubkey": "0x00", "signature": "0x00"}]},
        {"signatures": [7]},
    ],
)
def test_malformed_proofs_fail_closed(proof) -> None:
    ok, err = _verify(_verifier(SK1), proof)
    assert not ok
    assert err


def test_too_many_signatures() -> None:
    v = make_proof_verifier(
        ProofVerifierConfig(enabled=True, oracle_pubkeys=(oracle_pubkey_hex(SK1),), max_signatures=1),
        instance_id=INSTANCE,
    )
    proof = _proof(SK1, SK2)
    ok, err = _verify(v, proof)
    assert not ok
    assert "too many" in err


def test_disabled_rejects_everything() -> None:
    v = make_proof_verifier(ProofVerifierConfig(enabled=False), instance_id=INSTANCE)
    assert isinstance(v, DisabledProofVerifier)
    assert _verify(v, _proof(SK1)) == (False, "proof verification disabled")


@pytest.mark.parametrize(
    "config",
    [
        ProofVerifierConfig(enabled=True),
        ProofVerifierConfig(enabled=True, oracle_pubkeys=("0x1234",)),
        ProofVerifierConfig(enabled=True, oracle_pubkeys=(oracle_pubkey_hex(SK1),), threshold=2),
    ],
)
def test_misconfigured_rejects_everything(config) -> None:
    v = make_proof_verifier(config, instance_id=INSTANCE)
    assert isinstance(v, MisconfiguredProofVerifier)
    ok, err = _verify(v, _proof(SK1))
    assert not ok
    assert "misconfigured" in err


def test_config_validation() -> None:
    with pytest.raises(ValueError):
        ProofVerifierConfig(threshold=0)
    with pytest.raises(TypeError):
        ProofVerifierConfig(oracle_pubkeys="0xabc")  # type: ignore[arg-type]


def test_message_is_32_bytes_and_deterministic() -> None:
    a = decryption_proof_message(instance_id=INSTANCE, request_id=1, handles=HANDLES, cleartexts=CLEARTEXTS)
    b = decryption_proof_message(instance_id=INSTANCE, request_id=1, handles=list(HANDLES), cleartexts=CLEARTEXTS)
    assert a == b
    assert len(a) == 32

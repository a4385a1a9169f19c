from __future__ import annotations

from dataclasses import dataclass

import pytest

from sealedbet.agents.relayer import LocalRelayer
from sealedbet.core.winners import ToleranceWinnerPolicy
from sealedbet.integration.evaluation import RecordedEvaluationSource
from sealedbet.integration.fhe import LocalFheBackend
from sealedbet.integration.market_service import MarketService, MarketServiceConfig
from sealedbet.integration.proof_verifier import ProofVerifierConfig, make_proof_verifier

INSTANCE = "sealedbet-test"
OWNER = "0x" + "11" * 20
PROVIDER = "0x" + "22" * 20
ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20


class ManualClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@dataclass
class Market:
    service: MarketService
    fhe: LocalFheBackend
    evaluation: RecordedEvaluationSource
    relayer: LocalRelayer
    clock: ManualClock
    instance_id: str = INSTANCE
    owner: str = OWNER
    provider: str = PROVIDER
    alice: str = ALICE
    bob: str = BOB


def build_market(*, threshold: int = 1, seeds=(b"\x01" * 32,)) -> Market:
    fhe = LocalFheBackend(namespace=INSTANCE)
    evaluation = RecordedEvaluationSource()
    relayer = LocalRelayer.from_seeds(fhe, instance_id=INSTANCE, seeds=list(seeds))
    verifier = make_proof_verifier(
        ProofVerifierConfig(enabled=True, oracle_pubkeys=relayer.oracle_pubkeys, threshold=threshold),
        instance_id=INSTANCE,
    )
    clock = ManualClock()
    service = MarketService(
        MarketServiceConfig(instance_id=INSTANCE, owner=OWNER),
        fhe=fhe,
        evaluation=evaluation,
        oracle=relayer,
        verifier=verifier,
        winner_policy=ToleranceWinnerPolicy(fhe.distance),
        clock=clock,
    )
    return Market(service=service, fhe=fhe, evaluation=evaluation, relayer=relayer, clock=clock)


@pytest.fixture
def market() -> Market:
    return build_market()

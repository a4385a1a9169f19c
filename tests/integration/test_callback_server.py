# [TESTER] v1

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request

import pytest

from sealedbet.integration.callback_server import (
    CallbackServerConfig,
    TokenBucketRateLimiter,
    _env_int,
    build_local_market,
    make_server,
)
from sealedbet.core.winners import ToleranceWinnerPolicy
from sealedbet.integration.callbacks import callback_envelope_to_dict
from sealedbet.state import RequestStatus

OWNER = "0x" + "11" * 20
ALICE = "0x" + "aa" * 20


@pytest.fixture
def server(market):
    httpd = make_server(market.service, CallbackServerConfig(host="127.0.0.1", port=0, max_body_bytes=4096))
    t = threading.Thread(target=httpd.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
    t.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        httpd.server_close()


def _get(url: str):
    try:
        with urllib.request.urlopen(url, timeout=5) as resp:
            return resp.status, json.loads(resp.read())
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read())


def _post(url: str, body: bytes):
    req = urllib.request.Request(url, data=body, method="POST", headers={"Content-Type": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=5) as resp:
            return resp.status, json.loads(resp.read())
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read())


def _requested(market) -> int:
    svc = market.service
    bid = svc.open_batch(OWNER)
    svc.submit_prediction(bid, ALICE, market.fhe.encrypt(77), 10, 10)
    svc.close_batch(OWNER, bid)
    market.evaluation.record(bid, [market.fhe.encrypt(77)])
    return svc.request_evaluation(OWNER, bid)


def test_health(server) -> None:
    status, body = _get(server + "/health")
    assert status == 200
    assert body["status"] == "healthy"
    assert body["available"] is True


def test_callback_roundtrip_and_status(server, market) -> None:
    rid = _requested(market)
    status, body = _get(f"{server}/requests/{rid}")
    assert status == 200
    assert body["status"] == "requested"

    env = callback_envelope_to_dict(market.relayer.fulfill(rid))
    status, body = _post(server + "/oracle/callback", json.dumps(env).encode())
    assert status == 200
    assert body["ok"] is True
    assert body["event"]["event"] == "DecryptionFinalized"
    assert body["event"]["actual_score"] == 77

    status, body = _get(f"{server}/requests/{rid}")
    assert body["status"] == "finalized"
    assert body["winner_count"] == 1
    assert body["total_staked"] == 10

    status, body = _post(server + "/oracle/callback", json.dumps(env).encode())
    assert status == 409
    assert body["error"] == "replay_detected"


def test_forged_callback_is_401(server, market) -> None:
    rid = _requested(market)
    env = callback_envelope_to_dict(market.relayer.fulfill(rid))
    env["cleartexts"] = "0x" + "00" * 31 + "4e"
    status, body = _post(server + "/oracle/callback", json.dumps(env).encode())
    assert status == 401
    assert body["error"] == "invalid_proof"


def test_unknown_request_status(server) -> None:
    status, body = _get(server + "/requests/12")
    assert status == 200
    assert body == {"request_id": 12, "status": "none"}
    status, _ = _get(server + "/requests/abc")
    assert status == 400


def test_bad_bodies(server) -> None:
    status, body = _post(server + "/oracle/callback", b"not json")
    assert status == 400
    status, body = _post(server + "/oracle/callback", json.dumps({"request_id": 1}).encode())
    assert status == 400
    status, body = _post(server + "/nope", b"{}")
    assert status == 404


def test_token_bucket() -> None:
    now = [0.0]
    limiter = TokenBucketRateLimiter(rpm=2, clock=lambda: now[0])
    assert limiter.allow("a")
    assert limiter.allow("a")
    assert not limiter.allow("a")
    assert limiter.allow("b")
    now[0] = 30.0
    assert limiter.allow("a")
    assert TokenBucketRateLimiter(rpm=0).allow("a")


def test_env_int_clamps(monkeypatch) -> None:
    monkeypatch.setenv("SEALEDBET_PORT", "99999")
    assert _env_int("SEALEDBET_PORT", 8080, lo=1, hi=65535) == 65535
    monkeypatch.setenv("SEALEDBET_PORT", "junk")
    assert _env_int("SEALEDBET_PORT", 8080, lo=1, hi=65535) == 8080
    monkeypatch.setenv("SEALEDBET_RATE_LIMIT_RPM", "5")
    assert CallbackServerConfig.from_env().rate_limit_rpm == 5


def test_winner_policy_failure_is_500_and_retryable(server, market, monkeypatch) -> None:
    rid = _requested(market)
    env = callback_envelope_to_dict(market.relayer.fulfill(rid))

    def _boom(self, predictions, actual_score):
        raise ValueError("unknown ciphertext handle")

    monkeypatch.setattr(ToleranceWinnerPolicy, "count_winners", _boom)
    status, body = _post(server + "/oracle/callback", json.dumps(env).encode())
    assert status == 500
    assert body == {"ok": False, "error": "internal_error"}
    assert market.service.request_status(rid) is RequestStatus.REQUESTED

    monkeypatch.undo()
    status, body = _post(server + "/oracle/callback", json.dumps(env).encode())
    assert status == 200
    assert body["event"]["winner_count"] == 1


def test_token_bucket_table_is_bounded() -> None:
    limiter = TokenBucketRateLimiter(rpm=60, clock=lambda: 0.0, max_keys=8)
    for i in range(1000):
        assert limiter.allow(f"10.0.{i // 256}.{i % 256}")
    assert len(limiter) <= 8


def test_token_bucket_evicts_refilled_buckets_first() -> None:
    now = [0.0]
    limiter = TokenBucketRateLimiter(rpm=2, clock=lambda: now[0], max_keys=2)
    assert limiter.allow("a")
    assert limiter.allow("a")
    assert limiter.allow("b")
    now[0] = 30.0
    # "b" has refilled to capacity, "a" has one token back.
    assert limiter.allow("c")
    assert len(limiter) == 2
    assert limiter.allow("a")
    assert not limiter.allow("a")


def test_token_bucket_is_thread_safe() -> None:
    limiter = TokenBucketRateLimiter(rpm=100, clock=lambda: 0.0)
    allowed = []
    lock = threading.Lock()

    def _hammer() -> None:
        n = sum(1 for _ in range(10) if limiter.allow("10.0.0.1"))
        with lock:
            allowed.append(n)

    threads = [threading.Thread(target=_hammer) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(allowed) == 100


def test_local_market_finalizes_through_its_relayer() -> None:
    local = build_local_market("sealedbet-local", OWNER)
    svc = local.service
    bid = svc.open_batch(OWNER)
    svc.submit_prediction(bid, ALICE, local.fhe.encrypt(42), 5, 5)
    svc.close_batch(OWNER, bid)
    local.evaluation.record(bid, [local.fhe.encrypt(42)])
    rid = svc.request_evaluation(OWNER, bid)
    eff = local.relayer.deliver(svc, rid)
    assert eff.actual_score == 42
    assert eff.winner_count == 1
    assert svc.request_status(rid) is RequestStatus.FINALIZED

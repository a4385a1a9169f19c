"""
Minimal HTTP transport for the oracle callback and request status polling.

stdlib only (`http.server`). Routes:
- POST /oracle/callback   callback envelope -> MarketService.on_callback_envelope
- GET  /requests/<id>     decryption request status
- GET  /health            liveness

Security posture:
- Basic rate limiting (per-IP, token bucket)
- Tight request parsing and bounded request sizes
- No authentication on the callback: authenticity comes from the proof

The `sealedbet-callback` script serves a local market (`build_local_market`)
through this transport; market operations themselves are driven in-process.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Dict, Optional, Sequence, Tuple

from ..core.errors import (
    InvalidProof,
    MarketError,
    ReplayDetected,
    StateMismatch,
    UnknownRequest,
)
from .callbacks import DEFAULT_MAX_CLEARTEXT_BYTES, parse_callback_envelope
from .market_service import MarketService

if TYPE_CHECKING:
    from ..agents.relayer import LocalRelayer
    from .evaluation import RecordedEvaluationSource
    from .fhe import LocalFheBackend

logger = logging.getLogger("sealedbet.integration.callback_server")

DEFAULT_MAX_BODY_BYTES = 64_000
DEFAULT_MAX_RATE_LIMIT_KEYS = 10_000

# HTTP status per market error; anything else is 422.
_ERROR_STATUS: Dict[type, int] = {
    UnknownRequest: 404,
    ReplayDetected: 409,
    StateMismatch: 409,
    InvalidProof: 401,
}


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        v = int(raw.strip())
    except ValueError:
        return int(default)
    if v < lo:
        return int(lo)
    if v > hi:
        return int(hi)
    return int(v)


def _env_str(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip()
    return v if v else default


@dataclass(frozen=True)
class CallbackServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    rate_limit_rpm: int = 600
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    rate_limit_max_keys: int = DEFAULT_MAX_RATE_LIMIT_KEYS

    @classmethod
    def from_env(cls) -> "CallbackServerConfig":
        return cls(
            host=_env_str("SEALEDBET_HOST", "127.0.0.1"),
            port=_env_int("SEALEDBET_PORT", 8080, lo=1, hi=65535),
            rate_limit_rpm=_env_int("SEALEDBET_RATE_LIMIT_RPM", 600, lo=0, hi=1_000_000),
            max_body_bytes=_env_int("SEALEDBET_MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES, lo=256, hi=4_000_000),
            rate_limit_max_keys=_env_int(
                "SEALEDBET_RATE_LIMIT_MAX_KEYS", DEFAULT_MAX_RATE_LIMIT_KEYS, lo=1, hi=1_000_000
            ),
        )


@dataclass
class RateLimitBucket:
    tokens: float
    updated_at: float


class TokenBucketRateLimiter:
    """Per-IP token bucket. rpm <= 0 disables limiting.

    At most `max_keys` buckets are kept. When the table is full, buckets that
    have refilled to capacity are dropped first (forgetting them changes no
    decision), then the least recently seen ones.
    """

    def __init__(self, *, rpm: int, clock=time.monotonic, max_keys: int = DEFAULT_MAX_RATE_LIMIT_KEYS) -> None:
        if max_keys <= 0:
            raise ValueError("max_keys must be positive")
        self._rpm = int(max(0, rpm))
        self._capacity = float(max(1, rpm)) if rpm > 0 else 0.0
        self._refill_per_s = float(rpm) / 60.0 if rpm > 0 else 0.0
        self._max_keys = int(max_keys)
        self._buckets: dict[str, RateLimitBucket] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _evict(self, now: float) -> None:
        full = [
            k for k, b in self._buckets.items()
            if float(b.tokens) + max(0.0, now - float(b.updated_at)) * self._refill_per_s >= self._capacity
        ]
        for k in full:
            del self._buckets[k]
        while len(self._buckets) >= self._max_keys:
            # Entries are re-inserted on every hit, so the first key is the stalest.
            del self._buckets[next(iter(self._buckets))]

    def allow(self, key: str) -> bool:
        if self._rpm <= 0:
            return True
        with self._lock:
            now = self._clock()
            b = self._buckets.pop(key, None)
            if b is None:
                if len(self._buckets) >= self._max_keys:
                    self._evict(now)
                self._buckets[key] = RateLimitBucket(tokens=self._capacity - 1.0, updated_at=now)
                return True
            self._buckets[key] = b
            dt = max(0.0, now - float(b.updated_at))
            b.tokens = min(self._capacity, float(b.tokens) + dt * self._refill_per_s)
            b.updated_at = now
            if b.tokens >= 1.0:
                b.tokens -= 1.0
                return True
            return False


def error_status(exc: MarketError) -> int:
    for cls, status in _ERROR_STATUS.items():
        if isinstance(exc, cls):
            return status
    return 422


def request_status_view(service: MarketService, request_id: int) -> Dict[str, object]:
    ctx = service.decryption_context(request_id)
    out: Dict[str, object] = {
        "request_id": request_id,
        "status": service.request_status(request_id).value,
    }
    if ctx is not None:
        out["batch_id"] = ctx.batch_id
        out["commitment"] = ctx.commitment
        out["processed"] = ctx.processed
        batch = service.batch(ctx.batch_id)
        if batch is not None and batch.finalized_by == request_id:
            out["actual_score"] = batch.actual_score
            out["winner_count"] = batch.winner_count
            out["total_staked"] = batch.total_staked
    return out


class _Handler(BaseHTTPRequestHandler):
    server_version = "SealedBetCallback/1"

    # Bound request line / headers to avoid memory abuse.
    max_requestline = 8192
    max_headers = 100

    def _client_ip(self) -> str:
        # Trust boundary: X-Forwarded-For is not trusted.
        try:
            return str(self.client_address[0])
        except (IndexError, TypeError):
            return "unknown"

    def _write_json(self, status: int, obj: object) -> None:
        body = json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        self.send_response(int(status))
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _maybe_rate_limit(self) -> bool:
        limiter: TokenBucketRateLimiter = getattr(self.server, "rate_limiter")  # type: ignore[attr-defined]
        return limiter.allow(self._client_ip())

    def _service(self) -> MarketService:
        return getattr(self.server, "market_service")  # type: ignore[attr-defined]

    def _read_body(self) -> Tuple[Optional[bytes], Optional[str]]:
        max_body: int = getattr(self.server, "max_body_bytes")  # type: ignore[attr-defined]
        raw_len = self.headers.get("Content-Length")
        if raw_len is None:
            return None, "length_required"
        try:
            n = int(raw_len)
        except ValueError:
            return None, "bad_content_length"
        if n < 0:
            return None, "bad_content_length"
        if n > max_body:
            return None, "body_too_large"
        return self.rfile.read(n), None

    def do_GET(self) -> None:  # noqa: N802
        if not self._maybe_rate_limit():
            self._write_json(429, {"ok": False, "error": "rate_limited"})
            return
        path = (self.path or "").split("?", 1)[0]

        if path == "/health":
            self._write_json(
                200,
                {
                    "status": "healthy",
                    "service": "sealedbet-callback",
                    "available": self._service().is_available(),
                },
            )
            return

        if path.startswith("/requests/"):
            raw_id = path[len("/requests/"):]
            if not raw_id.isdigit() or len(raw_id) > 78:
                self._write_json(400, {"ok": False, "error": "bad_request_id"})
                return
            self._write_json(200, request_status_view(self._service(), int(raw_id)))
            return

        self._write_json(404, {"ok": False, "error": "not_found"})

    def do_POST(self) -> None:  # noqa: N802
        if not self._maybe_rate_limit():
            self._write_json(429, {"ok": False, "error": "rate_limited"})
            return
        body, err = self._read_body()
        if body is None:
            status = 413 if err == "body_too_large" else 411 if err == "length_required" else 400
            self.close_connection = True
            self._write_json(status, {"ok": False, "error": err})
            return
        path = (self.path or "").split("?", 1)[0]
        if path != "/oracle/callback":
            self._write_json(404, {"ok": False, "error": "not_found"})
            return

        try:
            obj = json.loads(body.decode("utf-8"))
            envelope = parse_callback_envelope(obj, max_cleartext_bytes=DEFAULT_MAX_CLEARTEXT_BYTES)
        except (UnicodeDecodeError, ValueError) as exc:
            self._write_json(400, {"ok": False, "error": "bad_request", "detail": str(exc)})
            return

        try:
            effect = self._service().on_callback_envelope(envelope)
        except MarketError as exc:
            self._write_json(error_status(exc), {"ok": False, "error": exc.code, "detail": str(exc)})
            return
        except Exception:
            # Collaborator fault (FHE backend, winner policy): the transition was not committed.
            logger.exception(f"callback for request {envelope.request_id} failed")
            self._write_json(500, {"ok": False, "error": "internal_error"})
            return
        self._write_json(200, {"ok": True, "event": effect.to_dict()})

    def log_message(self, fmt: str, *args: object) -> None:
        # Path only: no headers or query strings in logs.
        msg = fmt % args if args else fmt
        logger.debug(f"{self.command} {(self.path or '').split('?', 1)[0]} => {msg}")


def make_server(service: MarketService, config: CallbackServerConfig) -> ThreadingHTTPServer:
    httpd = ThreadingHTTPServer((config.host, config.port), _Handler)
    # Attach config to server instance (used by handler).
    httpd.market_service = service  # type: ignore[attr-defined]
    httpd.rate_limiter = TokenBucketRateLimiter(  # type: ignore[attr-defined]
        rpm=config.rate_limit_rpm, max_keys=config.rate_limit_max_keys
    )
    httpd.max_body_bytes = config.max_body_bytes  # type: ignore[attr-defined]
    return httpd


@dataclass(frozen=True)
class LocalMarket:
    """A market wired to the in-process collaborators."""

    service: MarketService
    fhe: "LocalFheBackend"
    evaluation: "RecordedEvaluationSource"
    relayer: "LocalRelayer"


def build_local_market(instance_id: str, owner: str, *, seed: bytes = b"\x01" * 32) -> LocalMarket:
    """Local FHE backend, recorded evaluation results and a one-key relayer.

    Nothing over HTTP opens batches, records results or triggers delivery:
    the caller drives those in-process (`relayer.deliver`) or an external
    oracle posts to /oracle/callback.
    """
    from ..agents.relayer import LocalRelayer
    from ..core.winners import ToleranceWinnerPolicy
    from .evaluation import RecordedEvaluationSource
    from .fhe import LocalFheBackend
    from .market_service import MarketServiceConfig
    from .proof_verifier import ProofVerifierConfig, make_proof_verifier

    fhe = LocalFheBackend(namespace=instance_id)
    evaluation = RecordedEvaluationSource()
    relayer = LocalRelayer.from_seeds(fhe, instance_id=instance_id, seeds=[seed])
    verifier = make_proof_verifier(
        ProofVerifierConfig(enabled=True, oracle_pubkeys=relayer.oracle_pubkeys, threshold=1),
        instance_id=instance_id,
    )
    service = MarketService(
        MarketServiceConfig(instance_id=instance_id, owner=owner),
        fhe=fhe,
        evaluation=evaluation,
        oracle=relayer,
        verifier=verifier,
        winner_policy=ToleranceWinnerPolicy(fhe.distance),
    )
    return LocalMarket(service=service, fhe=fhe, evaluation=evaluation, relayer=relayer)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve a local market's callback and status endpoints.

    Transport harness only: market operations are not exposed over HTTP, so
    this process answers /health, request status polls and oracle callbacks.
    """
    _ = argv
    logging.basicConfig(
        level=_env_str("SEALEDBET_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    instance_id = _env_str("SEALEDBET_INSTANCE_ID", "sealedbet-local")
    owner = _env_str("SEALEDBET_OWNER", "0x" + "11" * 20)
    server_config = CallbackServerConfig.from_env()

    local = build_local_market(instance_id, owner)
    httpd = make_server(local.service, server_config)
    logger.info(
        f"sealedbet-callback listening on http://{server_config.host}:{server_config.port} "
        f"(instance_id={instance_id}, rpm={server_config.rate_limit_rpm}, "
        f"oracle_pubkeys={','.join(local.relayer.oracle_pubkeys)})"
    )
    httpd.serve_forever(poll_interval=0.25)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

import json
import logging
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from threading import Lock

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from mint_api.config import get_verified_user_ids, settings

_EXTRA_KEYS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "latency_ms",
    "client_ip",
    "user_id",
    "tx_hash",
    "token_id",
    "to_address",
    "nonce",
    "uri",
    "size",
    "image_url",
    "error_type",
    "error",
)

# Routes that spend operator funds or probe credentials.
RATE_LIMITED_PATHS = frozenset({"/mint", "/auth/verify"})
_QUIET_PATHS = frozenset({"/health", "/metrics"})


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {key: getattr(record, key) for key in _EXTRA_KEYS if getattr(record, key, None) is not None}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler()
    if settings.log_json:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.addHandler(handler)


@dataclass
class MetricsRegistry:
    """In-process counters rendered in the Prometheus text format."""

    counters: dict[str, float] = field(default_factory=lambda: defaultdict(float))
    requests_by_status: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    requests_inflight: int = 0
    _lock: Lock = field(default_factory=Lock)

    def incr(self, name: str, amount: float = 1) -> None:
        with self._lock:
            self.counters[name] += amount

    def get(self, name: str) -> float:
        with self._lock:
            return self.counters.get(name, 0)

    def record_request(self, status_code: int, latency_ms: float) -> None:
        with self._lock:
            self.counters["http_requests_total"] += 1
            self.counters["http_request_latency_ms_sum"] += latency_ms
            self.requests_by_status[str(status_code)] += 1

    def set_inflight(self, delta: int) -> None:
        with self._lock:
            self.requests_inflight = max(0, self.requests_inflight + delta)

    def record_mint(self, success: bool) -> None:
        self.incr("nft_mints_total" if success else "nft_mint_failures_total")

    @property
    def mints_total(self) -> int:
        return int(self.get("nft_mints_total"))

    @property
    def mint_failures_total(self) -> int:
        return int(self.get("nft_mint_failures_total"))

    def render_prometheus(self) -> str:
        names = (
            "http_requests_total",
            "http_request_latency_ms_sum",
            "http_rate_limited_total",
            "nft_mints_total",
            "nft_mint_failures_total",
        )
        with self._lock:
            lines = []
            for name in names:
                lines += [f"# TYPE {name} counter", f"{name} {_format_value(self.counters.get(name, 0))}"]
            lines += ["# TYPE http_requests_inflight gauge", f"http_requests_inflight {self.requests_inflight}"]
            lines.append("# TYPE http_requests_by_status_total counter")
            for code, count in sorted(self.requests_by_status.items()):
                lines.append(f'http_requests_by_status_total{{status="{code}"}} {count}')
            return "\n".join(lines) + "\n"


def _format_value(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class SlidingWindowLimiter:
    """Per-key request timestamps inside a sliding window.

    Buckets whose newest hit has left the window are dropped at most once per
    window, so unknown keys do not accumulate.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._buckets: dict[str, deque[float]] = {}
        self._last_sweep = 0.0

    def allow(self, key: str, now: float, limit: int, window_s: float) -> bool:
        cutoff = now - window_s
        with self._lock:
            if now - self._last_sweep >= window_s:
                self._sweep(cutoff)
                self._last_sweep = now
            bucket = self._buckets.setdefault(key, deque())
            while bucket and bucket[0] < cutoff:
                bucket.popleft()
            if len(bucket) >= limit:
                return False
            bucket.append(now)
            return True

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._buckets)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._last_sweep = 0.0

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, bucket in self._buckets.items() if not bucket or bucket[-1] < cutoff]
        for key in stale:
            del self._buckets[key]


metrics_registry = MetricsRegistry()
rate_limiter = SlidingWindowLimiter()
_access_logger = logging.getLogger("mint_api.access")


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "anonymous"


def rate_limit_key(request: Request) -> str:
    # Unverified ids are attacker-chosen; fall back to the peer address.
    user_id = request.headers.get("x-user-id")
    if user_id and user_id in get_verified_user_ids():
        return f"user:{user_id}"
    return f"ip:{_client_ip(request)}"


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        metrics_registry.set_inflight(1)
        try:
            response = await call_next(request)
        except Exception:
            _log_access(request, request_id, 500, started, failed=True)
            raise
        finally:
            metrics_registry.set_inflight(-1)

        _log_access(request, request_id, response.status_code, started)
        response.headers["x-request-id"] = request_id
        return response


def _log_access(request: Request, request_id: str, status_code: int, started: float, failed: bool = False) -> None:
    latency_ms = (time.perf_counter() - started) * 1000.0
    if settings.enable_metrics:
        metrics_registry.record_request(status_code=status_code, latency_ms=latency_ms)

    extra = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "latency_ms": round(latency_ms, 2),
        "client_ip": _client_ip(request),
        "user_id": request.headers.get("x-user-id"),
    }
    if failed:
        _access_logger.exception("request_failed", extra=extra)
    elif request.url.path in _QUIET_PATHS:
        _access_logger.debug("request_complete", extra=extra)
    else:
        _access_logger.info("request_complete", extra=extra)


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if not settings.rate_limit_enabled or request.url.path not in RATE_LIMITED_PATHS:
            return await call_next(request)

        allowed = rate_limiter.allow(
            rate_limit_key(request),
            now=time.monotonic(),
            limit=settings.rate_limit_requests,
            window_s=float(settings.rate_limit_window_seconds),
        )
        if not allowed:
            metrics_registry.incr("http_rate_limited_total")
            return JSONResponse(
                status_code=429,
                content={"detail": "rate limit exceeded"},
                headers={"Retry-After": str(settings.rate_limit_window_seconds)},
            )
        return await call_next(request)

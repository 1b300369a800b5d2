"""Per-client-IP token bucket rate limiting for the API routes."""

import logging
import math
import re
import threading
import time
from typing import Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger(__name__)

NANOS_PER_SECOND = 1_000_000_000
GUARDED_PREFIX = "/api/"

# Static asset routes dominate ordinary browsing and are not abuse vectors.
EXEMPT_PATTERNS = (
    re.compile(r"^/api/books/[^/]+/(thumbnail|pdf)/?$"),
    re.compile(r"^/api/books/[^/]+/pages/\d+/audio/?$"),
)

Clock = Callable[[], int]


class TokenBucket:
    """Starts full. Each request takes one token; ``capacity`` tokens refill per minute."""

    def __init__(self, capacity: int, clock: Clock = time.monotonic_ns) -> None:
        self.capacity = capacity
        self.refill_rate_per_nano = capacity / (60.0 * NANOS_PER_SECOND)
        self._clock = clock
        self.lock = threading.Lock()
        now = clock()
        self.tokens = float(capacity)
        self.last_refill = now
        self.last_access = now

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self.last_refill
        if elapsed > 0:
            self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate_per_nano)
            self.last_refill = now

    def available(self) -> float:
        with self.lock:
            self._refill()
            return self.tokens

    def _retry_after(self) -> int:
        deficit = 1.0 - self.tokens
        return max(1, math.ceil(deficit * 60.0 / self.capacity))

    def try_consume(self) -> bool:
        return self.consume() == 0

    def consume(self) -> int:
        """Take a token. Returns 0 on success, else whole seconds until one refills."""
        with self.lock:
            self._refill()
            self.last_access = self._clock()
            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return 0
            return self._retry_after()

    def seconds_until_next_token(self) -> int:
        with self.lock:
            self._refill()
            if self.tokens >= 1.0:
                return 0
            return self._retry_after()

    def idle_since(self) -> int:
        with self.lock:
            return self.last_access


class RateLimiter:
    """Owns the bucket per client and the background sweep of idle buckets."""

    def __init__(
        self,
        requests_per_minute: int = 60,
        cleanup_interval_seconds: float = 600.0,
        clock: Clock = time.monotonic_ns,
    ) -> None:
        self.capacity = requests_per_minute
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock
        self.lock = threading.Lock()
        self.buckets: dict[str, TokenBucket] = {}
        self._stop_event = threading.Event()
        self._sweep_thread: Optional[threading.Thread] = None

    def bucket_for(self, client: str) -> TokenBucket:
        with self.lock:
            bucket = self.buckets.get(client)
            if bucket is None:
                bucket = TokenBucket(self.capacity, clock=self._clock)
                self.buckets[client] = bucket
            return bucket

    def check(self, client: str) -> tuple[bool, int]:
        """Consume a token for ``client``. Returns (allowed, retry_after_seconds)."""
        retry_after = self.bucket_for(client).consume()
        return retry_after == 0, retry_after

    def sweep(self) -> int:
        """Drop buckets idle for longer than the cleanup interval."""
        cutoff = self._clock() - int(self.cleanup_interval_seconds * NANOS_PER_SECOND)
        with self.lock:
            stale = [client for client, bucket in self.buckets.items() if bucket.idle_since() < cutoff]
            for client in stale:
                del self.buckets[client]
        if stale:
            logger.debug(f"Evicted {len(stale)} idle rate-limit buckets")
        return len(stale)

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.cleanup_interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Rate-limit bucket sweep failed")

    def start(self) -> None:
        if self._sweep_thread is not None and self._sweep_thread.is_alive():
            return
        self._stop_event.clear()
        self._sweep_thread = threading.Thread(
            target=self._sweep_loop, name="rate-limit-cleanup", daemon=True
        )
        self._sweep_thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._sweep_thread is not None and self._sweep_thread.is_alive():
            self._sweep_thread.join(timeout=1)
        self._sweep_thread = None


def is_rate_limited_path(path: str) -> bool:
    if not path.startswith(GUARDED_PREFIX):
        return False
    return not any(pattern.match(path) for pattern in EXEMPT_PATTERNS)


def resolve_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and forwarded.strip():
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: RateLimiter) -> None:
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not is_rate_limited_path(request.url.path):
            return await call_next(request)

        client_ip = resolve_client_ip(request)
        allowed, retry_after = self.limiter.check(client_ip)
        if allowed:
            return await call_next(request)

        logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
        return JSONResponse(
            status_code=429,
            headers={"Retry-After": str(retry_after)},
            content={"error": f"Too many requests. Try again in {retry_after} seconds."},
        )

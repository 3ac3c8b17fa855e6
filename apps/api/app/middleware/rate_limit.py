from __future__ import annotations

import math
import threading
import time
import uuid
from dataclasses import dataclass

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.context import get_correlation_id
from app.core.config import get_settings
from app.core.context import client_ip


@dataclass
class _BucketState:
    tokens: float
    last_refill: float


_MAX_BUCKETS = 10_000


class _TokenBucketLimiter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[tuple[str, str], _BucketState] = {}
        self._last_prune = time.monotonic()

    def take(self, client_key: str, route_group: str, capacity: int, window_seconds: int) -> tuple[bool, int]:
        if capacity <= 0:
            return False, window_seconds

        now = time.monotonic()
        refill_rate = capacity / float(window_seconds)
        key = (client_key, route_group)

        with self._lock:
            self._prune(now, window_seconds)
            current = self._buckets.get(key)
            if current is None:
                current = _BucketState(tokens=float(capacity), last_refill=now)
                self._buckets[key] = current

            elapsed = max(0.0, now - current.last_refill)
            current.tokens = min(float(capacity), current.tokens + (elapsed * refill_rate))
            current.last_refill = now

            if current.tokens < 1.0:
                retry_after = max(1, math.ceil((1.0 - current.tokens) / refill_rate))
                return False, retry_after

            current.tokens -= 1.0
            return True, 0

    def _prune(self, now: float, window_seconds: int) -> None:
        # A bucket idle for a whole window has refilled, so dropping it changes nothing.
        if now - self._last_prune < window_seconds and len(self._buckets) < _MAX_BUCKETS:
            return
        self._last_prune = now
        idle = [key for key, state in self._buckets.items() if now - state.last_refill >= window_seconds]
        for key in idle:
            del self._buckets[key]

    def size(self) -> int:
        with self._lock:
            return len(self._buckets)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = _TokenBucketLimiter()

# Unauthenticated entry points: credential checks and anonymous submissions.
_LIMITED_PREFIXES: dict[str, str] = {
    "/api/auth/login": "login",
    "/api/auth/register": "register",
    "/api/auth/password-reset": "password_reset",
    "/api/public/": "public",
}


class PublicRateLimitMiddleware(BaseHTTPMiddleware):
    limited_methods = {"POST"}

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or request.method.upper() not in self.limited_methods:
            return await call_next(request)

        route_group = _resolve_route_group(request.url.path)
        if route_group is None:
            return await call_next(request)

        allowed, retry_after = _limiter.take(
            client_key=client_ip(request) or "unknown",
            route_group=route_group,
            capacity=settings.rate_limit_public_per_minute,
            window_seconds=60,
        )
        if allowed:
            return await call_next(request)

        correlation_id = (
            get_correlation_id()
            or getattr(request.state, "correlation_id", None)
            or request.headers.get("x-correlation-id")
            or str(uuid.uuid4())
        )
        response = JSONResponse(
            status_code=429,
            content={
                "code": "rate_limited",
                "message": "Too many requests",
                "details": None,
                "correlation_id": correlation_id,
            },
        )
        response.headers["Retry-After"] = str(retry_after)
        response.headers["X-Correlation-Id"] = correlation_id
        return response


def _resolve_route_group(path: str) -> str | None:
    for prefix, group in _LIMITED_PREFIXES.items():
        if path.startswith(prefix):
            return group
    return None


def reset_rate_limiter() -> None:
    _limiter.clear()

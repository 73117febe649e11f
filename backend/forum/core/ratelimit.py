"""
Fixed-window request limiter for the /api routes.

Counters live in process memory and reset at the end of each window. The
limiter takes an explicit RateLimitConfig so that environments decide whether
it is active instead of the limiter sniffing the environment itself.
"""
import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests. Try again in a few moments."


@dataclass(frozen=True)
class RateLimitConfig:
    enabled: bool = True
    window_seconds: float = 15.0
    max_requests: int = 100
    prefix: str = "/api"
    exempt_paths: tuple[str, ...] = field(default_factory=tuple)

    def applies_to(self, path: str) -> bool:
        if not self.enabled or not path.startswith(self.prefix):
            return False
        return not any(path.startswith(exempt) for exempt in self.exempt_paths)


class FixedWindowRateLimiter:
    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._window_start = clock()
        self._counts: dict[str, int] = {}

    def hit(self, key: str) -> tuple[bool, int]:
        """Count one request for `key`.

        Returns (allowed, retry_after_seconds). retry_after is 0 when allowed.
        """
        with self._lock:
            now = self._clock()
            elapsed = now - self._window_start
            if elapsed >= self.config.window_seconds:
                self._window_start = now
                self._counts.clear()
                elapsed = 0.0

            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
            if count <= self.config.max_requests:
                return True, 0
            remaining = self.config.window_seconds - elapsed
            return False, max(1, math.ceil(remaining))

    def reset(self) -> None:
        with self._lock:
            self._window_start = self._clock()
            self._counts.clear()


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, limiter: FixedWindowRateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.limiter.config.applies_to(request.url.path):
            return await call_next(request)

        key = client_key(request)
        allowed, retry_after = self.limiter.hit(key)
        if not allowed:
            logger.warning(
                "Rate limit exceeded for %s on %s (retry in %ss)",
                key,
                request.url.path,
                retry_after,
            )
            return JSONResponse(
                status_code=429,
                content={"error": RATE_LIMIT_MESSAGE},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)

"""
CRUD App: Rate Limiting Middleware
==================================

What:  Per-client-IP fixed window rate limiter.
How:   ``RateLimiter`` keeps ``{key: window}`` in process memory behind a
       threading.Lock; ``RateLimitMiddleware`` asks it about every request.
Who:   Every request, including health checks (no excluded paths).

Algorithm: Fixed Window Counter
    1. First request from a key opens a window [now, now + period)
    2. Each request increments the window's count
    3. count > limit → rejected until the window ends
    4. An expired window is replaced by a fresh one on the next request

    remaining = max(0, limit - count), so it never goes negative.

Response headers (on every response, allowed or not):
    X-RateLimit-Limit       configured limit
    X-RateLimit-Remaining   requests left in the current window
    X-RateLimit-Reset       Unix timestamp (seconds) when the window ends

Scope:
    Counters live in one process. Multiple workers or instances each keep
    their own, so the effective limit scales with the worker count.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from crud.middleware.client_ip import IPNetwork, get_client_ip
from crud.schemas.common import RateLimitResponse

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_SECONDS = 60.0

# Prune expired windows once this many checks have run since the last prune
PRUNE_INTERVAL = 1000


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # Unix seconds

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


@dataclass
class _Window:
    count: int
    expires_at: float


class RateLimiter:
    """
    Fixed window counter keyed by an arbitrary string (the client IP).

    ``clock`` returns Unix seconds and is injectable for tests.
    """

    def __init__(
        self,
        limit: int,
        period: float = DEFAULT_PERIOD_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.limit = limit
        self.period = period
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._checks_since_prune = 0

    def check(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and report whether it may proceed."""
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or window.expires_at <= now:
                window = _Window(count=0, expires_at=now + self.period)
                self._windows[key] = window
            window.count += 1

            self._checks_since_prune += 1
            if self._checks_since_prune >= PRUNE_INTERVAL:
                self._prune_locked(now)

            return RateLimitResult(
                allowed=window.count <= self.limit,
                limit=self.limit,
                remaining=max(0, self.limit - window.count),
                reset=int(math.ceil(window.expires_at)),
            )

    def retry_after(self, result: RateLimitResult) -> int:
        """Whole seconds until the window in ``result`` resets, never negative."""
        return max(0, int(math.ceil(result.reset - self._clock())))

    def prune(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        with self._lock:
            return self._prune_locked(self._clock())

    def _prune_locked(self, now: float) -> int:
        expired: List[str] = [k for k, w in self._windows.items() if w.expires_at <= now]
        for key in expired:
            del self._windows[key]
        self._checks_since_prune = 0
        if expired:
            logger.debug("Pruned %d expired rate limit windows", len(expired))
        return len(expired)

    def active_windows(self) -> int:
        with self._lock:
            return len(self._windows)


def apply_rate_limit_headers(response: Response, request: Request) -> None:
    """Copy the X-RateLimit-* headers of the request's check onto ``response``."""
    result = getattr(request.state, "rate_limit", None)
    if result is not None:
        response.headers.update(result.headers())


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies a RateLimiter to every request.

    Response on rate limit:
        HTTP 429, ``{"error": "Rate limit exceeded", "retry_after": <seconds>}``
        plus Retry-After and the X-RateLimit-* headers. Later middleware and
        the handler never run.

    Allowed requests keep their result on ``request.state.rate_limit`` so the
    recovery 500 can carry the same headers.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: RateLimiter,
        trusted_proxies: Optional[List[IPNetwork]] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.trusted_proxies = trusted_proxies or []

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        client_ip = get_client_ip(request, self.trusted_proxies)
        result = self.limiter.check(client_ip)

        if not result.allowed:
            retry_after = self.limiter.retry_after(result)
            logger.warning("Rate limit exceeded for IP: %s", client_ip)
            headers = result.headers()
            headers["Retry-After"] = str(retry_after)
            return JSONResponse(
                status_code=429,
                content=RateLimitResponse(
                    error="Rate limit exceeded", retry_after=retry_after
                ).model_dump(),
                headers=headers,
            )

        request.state.rate_limit = result
        response = await call_next(request)
        apply_rate_limit_headers(response, request)
        return response

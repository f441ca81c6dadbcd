"""Reusable in-memory rate limiting.

``InMemoryRateLimiter`` guards individual endpoints (login); the
``RateLimitMiddleware`` applies a coarse per-IP budget to the whole API.
Both keep state per process.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict

from fastapi import HTTPException, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from backend.depot.core.config import settings
from backend.depot.core.errors import error_body


class InMemoryRateLimiter:
    """Sliding-window in-memory rate limiter keyed by an arbitrary string."""

    def __init__(self, window_seconds: int = 60, max_attempts: int = 5) -> None:
        self._window = window_seconds
        self._max = max_attempts
        self._attempts: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> int:
        return self._window

    def hit(self, key: str) -> bool:
        """Record an attempt for *key*; False when the budget is exhausted."""
        now = time.time()
        with self._lock:
            attempts = [t for t in self._attempts[key] if now - t < self._window]
            if len(attempts) >= self._max:
                self._attempts[key] = attempts
                return False
            attempts.append(now)
            self._attempts[key] = attempts
            return True

    def check(self, key: str) -> None:
        """Raise HTTP 429 if *key* has exceeded *max_attempts* in the window."""
        if not self.hit(key):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many attempts. Try again in {self._window} seconds.",
            )

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request budget over ``RATE_LIMIT_WINDOW_SECONDS``."""

    def __init__(self, app, limiter: InMemoryRateLimiter | None = None) -> None:
        super().__init__(app)
        self.limiter = limiter or InMemoryRateLimiter(
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            max_attempts=settings.RATE_LIMIT_MAX_REQUESTS,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not settings.RATE_LIMIT_ENABLED or request.url.path == "/health":
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"
        if not self.limiter.hit(ip):
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error_body(
                    request,
                    message="Too many requests, please try again later",
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    error_type="RateLimitExceeded",
                ),
                headers={"Retry-After": str(self.limiter.window_seconds)},
            )
        return await call_next(request)

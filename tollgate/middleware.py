"""Starlette middleware turning limiter denials into HTTP 429 responses."""

from __future__ import annotations

from typing import Callable, Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .limiter import Limiter
from .metrics import DECISIONS

UNKNOWN_CLIENT = "unknown"


def client_key(request: Request) -> str:
    """Identify the caller by remote address."""

    return request.client.host if request.client and request.client.host else UNKNOWN_CLIENT


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Check every request against ``limiter`` before it reaches the app.

    Denied requests get a 429 with ``Retry-After`` and never reach the route.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: Limiter,
        key_func: Callable[[Request], str] = client_key,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.key_func = key_func
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)
        decision = self.limiter.check(self.key_func(request) or UNKNOWN_CLIENT)
        if not decision.admitted:
            DECISIONS.labels("denied").inc()
            retry_after = decision.retry_after_seconds
            return JSONResponse(
                {"detail": "rate limit", "retry_after": retry_after},
                status_code=429,
                headers={"Retry-After": str(retry_after)},
            )
        DECISIONS.labels("admitted").inc()
        return await call_next(request)

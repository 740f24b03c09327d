from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from pydantic import BaseModel
from starlette.routing import Match

from .config import Settings, settings as default_settings
from .limiter import Limiter
from .logging_setup import RequestLogMiddleware, init_logging
from .metrics import BUCKETS, LAT, REQS, router as metrics_router
from .middleware import RateLimitMiddleware

EXEMPT_PATHS = ("/health", "/metrics")
UNMATCHED_PATH = "<unmatched>"


class Health(BaseModel):
    status: str
    time: str


class LimitState(BaseModel):
    key: str
    tracked: bool
    tokens: float
    capacity: float
    refill_rate: float


def _route_label(app: FastAPI, request: Request) -> str:
    """Label metrics by route template so path parameters do not mint new series."""

    for route in app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", UNMATCHED_PATH)
    return UNMATCHED_PATH


def create_app(
    limiter: Optional[Limiter] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the service around ``limiter`` or one configured from ``settings``.

    The ``tollgate_buckets`` gauge is process-wide and reports the limiter of
    the most recently created app.
    """

    settings = settings or default_settings
    init_logging(settings.LOG_LEVEL)
    enabled = limiter is not None or settings.RATE_LIMIT_ENABLED
    if limiter is None:
        limiter = Limiter.from_settings(settings)
    BUCKETS.set_function(lambda: len(limiter))

    app = FastAPI(title="Tollgate", version="0.1.0")
    app.state.limiter = limiter
    # added first so it sits innermost; rejected requests are still logged and counted
    if enabled:
        app.add_middleware(RateLimitMiddleware, limiter=limiter, exempt_paths=EXEMPT_PATHS)
    app.add_middleware(RequestLogMiddleware)
    app.include_router(metrics_router())

    @app.middleware("http")
    async def _metrics(request: Request, call_next):
        method = request.method
        start = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.time() - start
            path = _route_label(app, request)
            REQS.labels(method, path, str(status_code)).inc()
            LAT.labels(method, path).observe(duration)

    @app.get("/health", response_model=Health)
    def health():
        return Health(status="ok", time=datetime.now(timezone.utc).isoformat())

    @app.get("/limits/{key}", response_model=LimitState)
    def limit_state(key: str):
        tokens = limiter.peek(key)
        return LimitState(
            key=key,
            tracked=tokens is not None,
            tokens=limiter.capacity if tokens is None else tokens,
            capacity=limiter.capacity,
            refill_rate=limiter.refill_rate,
        )

    return app


app = create_app()

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQS = Counter(
    "tollgate_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "tollgate_latency_seconds",
    "Latency",
    ["method", "path"],
)
DECISIONS = Counter(
    "tollgate_decisions_total",
    "Rate limit decisions",
    ["result"],
)
BUCKETS = Gauge(
    "tollgate_buckets",
    "Identity keys currently tracked by the limiter",
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r

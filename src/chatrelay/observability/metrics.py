from __future__ import annotations

"""Prometheus metrics for the chat relay.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters for the real-time relay path.
"""

import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

REQUEST_LATENCY = Histogram(
    "chatrelay_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

RELAY_REPLIES = Counter(
    "chatrelay_replies_total",
    "Replies produced for inbound send_message events",
    labelnames=("outcome",),
)

DROPPED_EVENTS = Counter(
    "chatrelay_dropped_events_total",
    "Inbound events dropped before any store write",
    labelnames=("reason",),
)

GENERATION_LATENCY = Histogram(
    "chatrelay_generation_latency_seconds",
    "Answer generation latency in seconds",
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths (e.g., /history/{uid}) to a coarse label."""
    if not path:
        return "/"
    segs = path.split("?")[0].split("/")
    if len(segs) > 1:
        return "/" + segs[1]
    return path


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        REQUEST_LATENCY.labels(
            method=request.method,
            path=sanitize_path(request.url.path),
            status=str(response.status_code),
        ).observe(elapsed)
        return response

    return middleware

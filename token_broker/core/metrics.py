"""
Prometheus metrics for the token broker.

Each replica exports its own series; aggregation happens in Prometheus.
"""

import re
import time

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

_STARTED_AT = time.time()
_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")

# --- HTTP surface ------------------------------------------------------------

requests_total = Counter(
    "broker_http_requests_total",
    "Requests served, by method, route and status code",
    ["method", "route", "status"],
)

request_latency_seconds = Histogram(
    "broker_http_request_latency_seconds",
    "Time spent serving a request",
    ["method", "route"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

requests_in_flight = Gauge(
    "broker_http_requests_in_flight",
    "Requests currently being served",
)

# --- Upstream calls (GitHub REST API, OIDC issuer) ---------------------------

upstream_requests_total = Counter(
    "broker_upstream_requests_total",
    "Calls to upstream services, by outcome",
    ["service", "outcome"],
)

upstream_latency_seconds = Histogram(
    "broker_upstream_latency_seconds",
    "Latency of upstream calls",
    ["service"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# --- Exchanges ---------------------------------------------------------------

token_exchanges_total = Counter(
    "broker_token_exchanges_total",
    "Token exchanges, by outcome",
    ["outcome"],
)

claim_rejections_total = Counter(
    "broker_claim_rejections_total",
    "Identity token claims that failed verification",
    ["phase", "claim"],
)

uptime_seconds = Gauge("broker_uptime_seconds", "Seconds since the process started")
uptime_seconds.set_function(lambda: time.time() - _STARTED_AT)


def route_label(path: str) -> str:
    """Collapse numeric path segments so ids do not become label values."""
    return _NUMERIC_SEGMENT.sub("/{id}", path)


async def metrics_endpoint(request: Request) -> Response:
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        route = route_label(request.url.path)
        status_code = 500
        started = time.perf_counter()
        requests_in_flight.inc()
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            requests_in_flight.dec()
            request_latency_seconds.labels(request.method, route).observe(time.perf_counter() - started)
            requests_total.labels(request.method, route, str(status_code)).inc()

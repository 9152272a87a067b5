"""
Métriques Prometheus pour l'application.

Ce module définit les métriques HTTP, de requêtes par tag, de livraison des
pingbacks et du cycle de vie des baux, ainsi que l'endpoint `/metrics`.
"""

import time

from fastapi import APIRouter, Request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

TAG_QUERIES = Counter(
    "tag_queries_total",
    "Total paginated tag queries",
    ["content_type"],
)

# Pingbacks
PINGBACK_DELIVERIES = Counter(
    "pingback_deliveries_total",
    "Pingback delivery outcomes (after in-cycle retries)",
    ["outcome"],
)
PINGBACK_LATENCY = Histogram(
    "pingback_delivery_latency_seconds",
    "Latency of a single pingback HTTP call",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
DISPATCH_COALESCED = Counter(
    "dispatch_coalesced_total",
    "Deliveries merged into an in-flight delivery to the same subscriber",
)
DISPATCH_IN_FLIGHT = Gauge(
    "dispatch_in_flight",
    "Subscribers with a pingback currently in flight",
)

# Baux
LEASE_SUBSCRIPTIONS = Counter(
    "lease_subscriptions_total",
    "Subscribe calls that created or renewed a lease",
)
LEASE_EVICTIONS = Counter(
    "lease_evictions_total",
    "Leases removed",
    ["reason"],
)


@metrics_router.get("/metrics")
def metrics():
    """
    Expose les métriques Prometheus au format texte.

    Returns:
        Response: Réponse HTTP contenant les métriques au format Prometheus.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware Prometheus pour mesurer les métriques HTTP.

    Le label `route` utilise le gabarit de route (ex: `/do/api/tags/{name}/get`)
    pour borner la cardinalité.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        route = getattr(request.scope.get("route"), "path", None) or "unmatched"
        REQUEST_COUNT.labels(request.method, route, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
        return response

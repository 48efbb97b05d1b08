"""Prometheus metrics utilities."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

_http_request_latency = Histogram(
    "llm_gateway_http_request_duration_seconds",
    "Latency of processed HTTP requests",
    labelnames=("method", "route"),
)
_http_request_total = Counter(
    "llm_gateway_http_requests_total",
    "Total number of processed HTTP requests",
    labelnames=("method", "route", "status"),
)
_backend_call_latency = Histogram(
    "llm_gateway_backend_call_duration_seconds",
    "Duration of inference backend requests until the response is available",
    labelnames=("host",),
)
_backend_call_errors = Counter(
    "llm_gateway_backend_call_errors_total",
    "Number of failed inference backend requests",
    labelnames=("host", "reason"),
)
_generation_latency = Histogram(
    "llm_gateway_generation_duration_seconds",
    "Duration of complete generation requests, streaming included",
    labelnames=("model", "host"),
)
_generation_total = Counter(
    "llm_gateway_generations_total",
    "Generation requests by terminal state",
    labelnames=("model", "host", "outcome"),
)
_endpoint_selections = Counter(
    "llm_gateway_endpoint_selections_total",
    "Endpoints chosen by weighted selection",
    labelnames=("model", "host"),
)
_configured_models = Gauge(
    "llm_gateway_configured_models",
    "Number of models loaded from configuration",
    labelnames=("status",),
)


def _normalise_route(route: Optional[str]) -> str:
    if not route:
        return "unknown"
    return route


def record_http_request(method: str, route: Optional[str], status_code: int, duration_seconds: float) -> None:
    """Record metrics for a handled HTTP request."""

    normalized_route = _normalise_route(route)
    _http_request_latency.labels(method=method, route=normalized_route).observe(duration_seconds)
    _http_request_total.labels(method=method, route=normalized_route, status=str(status_code)).inc()


def record_backend_call(host: str, duration_seconds: float, *, error: Optional[str] = None) -> None:
    """Record one request to an inference backend; ``error`` names the failure kind."""

    _backend_call_latency.labels(host=host).observe(duration_seconds)
    if error is not None:
        _backend_call_errors.labels(host=host, reason=error).inc()


def record_generation(model: str, host: str, duration_seconds: float, *, outcome: str) -> None:
    """Record the terminal state of a generation request."""

    _generation_latency.labels(model=model, host=host).observe(duration_seconds)
    _generation_total.labels(model=model, host=host, outcome=outcome).inc()


def record_endpoint_selection(model: str, host: str) -> None:
    _endpoint_selections.labels(model=model, host=host).inc()


def record_configured_models(active: int, deprecated: int) -> None:
    _configured_models.labels(status="active").set(active)
    _configured_models.labels(status="deprecated").set(deprecated)


def register_metrics_endpoint(app: FastAPI) -> None:
    """Expose a Prometheus scrape endpoint on ``/metrics``."""

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        payload = generate_latest()
        return Response(payload, media_type=CONTENT_TYPE_LATEST)

    logger.info("Registered /metrics endpoint for Prometheus scraping")

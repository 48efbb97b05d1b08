"""Observability utilities for logging and metrics."""

from .logging import bind_request_id, configure_logging, current_request_id, reset_request_id
from .metrics import (
    record_backend_call,
    record_configured_models,
    record_endpoint_selection,
    record_generation,
    record_http_request,
    register_metrics_endpoint,
)
from .middleware import RequestContextMiddleware

__all__ = [
    "bind_request_id",
    "configure_logging",
    "current_request_id",
    "reset_request_id",
    "record_backend_call",
    "record_configured_models",
    "record_endpoint_selection",
    "record_generation",
    "record_http_request",
    "register_metrics_endpoint",
    "RequestContextMiddleware",
]

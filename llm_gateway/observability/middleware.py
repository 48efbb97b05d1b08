"""ASGI middleware for request identifiers, access logging and metrics."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from llm_gateway.config.settings import Settings
from llm_gateway.observability.logging import bind_request_id, reset_request_id
from llm_gateway.observability.metrics import record_http_request

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of a request and record its outcome.

    Streaming responses are timed until their headers are sent; generation
    metrics cover the full stream.
    """

    def __init__(self, app: ASGIApp, *, settings: Settings) -> None:
        super().__init__(app)
        self._header = settings.request_id_header
        self._quiet_paths = frozenset(settings.access_log_exclude_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(self._header) or uuid.uuid4().hex
        token = bind_request_id(request_id)
        request.state.request_id = request_id

        path = request.url.path
        method = request.method
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            record_http_request(method, self._route_of(request), 500, time.perf_counter() - start)
            logger.exception("%s %s failed with an unhandled exception", method, path)
            raise
        else:
            duration = time.perf_counter() - start
            record_http_request(method, self._route_of(request), response.status_code, duration)
            response.headers.setdefault(self._header, request_id)
            if path not in self._quiet_paths:
                logger.info(
                    "%s %s -> %s in %.1fms",
                    method,
                    path,
                    response.status_code,
                    duration * 1000,
                )
            return response
        finally:
            reset_request_id(token)

    @staticmethod
    def _route_of(request: Request) -> str:
        # Templated path (``/v1/models/{model_id}``) keeps metric cardinality bounded.
        route = request.scope.get("route")
        return getattr(route, "path", request.url.path)

"""Common interface and helpers for inference backends."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from llm_gateway.errors import AbortedError, EmptyResponseError, UpstreamError
from llm_gateway.observability.metrics import record_backend_call
from llm_gateway.utils.streams import race_abort

logger = logging.getLogger(__name__)


class EndpointBackend(ABC):
    """Dispatches one generation request to a configured endpoint.

    ``dispatch`` is an async generator of raw text fragments: streaming
    backends yield one fragment per upstream delta, buffered backends yield the
    whole generation once.
    """

    host: str

    @abstractmethod
    def dispatch(
        self,
        prompt: str,
        parameters: Mapping[str, Any],
        *,
        model_id: str,
        abort: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        raise NotImplementedError


def read_generated_text(response: httpx.Response) -> str:
    """Extract ``generated_text`` from a buffered ``[{generated_text}]`` response."""

    if not response.is_success:
        raise UpstreamError(response.text, status_code=response.status_code)
    if not response.content:
        raise EmptyResponseError()

    try:
        results = json.loads(response.content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise UpstreamError(
            f"Malformed response body: {response.text[:200]}",
            status_code=response.status_code,
        ) from exc

    if isinstance(results, list) and not results:
        raise EmptyResponseError("Response contained no generations")
    first = results[0] if isinstance(results, list) else None
    generated = first.get("generated_text") if isinstance(first, dict) else None
    if not isinstance(generated, str):
        raise UpstreamError(
            f"Unexpected response payload: {response.text[:200]}",
            status_code=response.status_code,
        )
    return generated


async def post_buffered(
    client: httpx.AsyncClient,
    *,
    host: str,
    url: str,
    content: bytes,
    headers: Mapping[str, str],
    abort: Optional[asyncio.Event] = None,
) -> str:
    """POST ``content`` and wait for the complete body before parsing it."""

    start = time.perf_counter()
    try:
        response = await race_abort(client.post(url, content=content, headers=dict(headers)), abort)
    except AbortedError:
        record_backend_call(host, time.perf_counter() - start, error="aborted")
        raise
    except httpx.HTTPError as exc:
        record_backend_call(host, time.perf_counter() - start, error="transport")
        logger.warning("Request to %s backend at %s failed: %s", host, url, exc)
        raise UpstreamError(f"Request to {host} backend failed: {exc}") from exc

    try:
        text = read_generated_text(response)
    except UpstreamError as exc:
        record_backend_call(host, time.perf_counter() - start, error="upstream")
        logger.warning("%s backend answered %s: %s", host, exc.status_code, exc.body[:200])
        raise
    except EmptyResponseError:
        record_backend_call(host, time.perf_counter() - start, error="empty")
        raise

    record_backend_call(host, time.perf_counter() - start)
    return text

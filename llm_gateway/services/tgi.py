"""text-generation-inference backend."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from llm_gateway.config.models import TGIEndpoint
from llm_gateway.services.backend import EndpointBackend, post_buffered


class TGIBackend(EndpointBackend):
    """Buffered JSON generation against a TGI server.

    The transport may be chunked, but the body is read in full and parsed as
    one ``[{generated_text}]`` array.
    """

    host = "tgi"

    def __init__(self, endpoint: TGIEndpoint, client: httpx.AsyncClient) -> None:
        self._endpoint = endpoint
        self._client = client

    async def dispatch(
        self,
        prompt: str,
        parameters: Mapping[str, Any],
        *,
        model_id: str,
        abort: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        headers = {"Content-Type": "application/json"}
        if self._endpoint.authorization:
            headers["Authorization"] = self._endpoint.authorization
        body = json.dumps({**parameters, "inputs": prompt}).encode("utf-8")

        yield await post_buffered(
            self._client,
            host=self.host,
            url=self._endpoint.url,
            content=body,
            headers=headers,
            abort=abort,
        )

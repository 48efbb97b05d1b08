"""Token-streaming backend for OpenAI-compatible completion servers."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Callable, Mapping, Optional

import httpx
import openai
from openai import AsyncOpenAI

from llm_gateway.config.models import OpenAICompatibleEndpoint
from llm_gateway.config.settings import Settings
from llm_gateway.errors import AbortedError, UpstreamError
from llm_gateway.observability.metrics import record_backend_call
from llm_gateway.services.backend import EndpointBackend
from llm_gateway.utils.streams import ReadResult, StreamAdapter, race_abort

logger = logging.getLogger(__name__)

OpenAIClientFactory = Callable[[OpenAICompatibleEndpoint], AsyncOpenAI]

_EXHAUSTED = object()


def default_client_factory(settings: Settings) -> OpenAIClientFactory:
    """Build one short-lived client per request; retries stay disabled."""

    def factory(endpoint: OpenAICompatibleEndpoint) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=endpoint.api_key or "sk-",
            base_url=endpoint.base_url,
            timeout=settings.upstream_timeout_seconds,
            max_retries=0,
        )

    return factory


class OpenAIStreamReader:
    """Pull reader over an ``AsyncStream`` of completion chunks.

    The abort signal is checked before every read, so no chunk is requested
    from upstream once it has fired.
    """

    def __init__(self, stream: Any, *, chat: bool, abort: Optional[asyncio.Event] = None) -> None:
        self._stream = stream
        self._iterator = stream.__aiter__()
        self._chat = chat
        self._abort = abort

    async def read(self) -> ReadResult[str]:
        if self._abort is not None and self._abort.is_set():
            raise AbortedError()
        chunk = await race_abort(self._next_chunk(), self._abort)
        if chunk is _EXHAUSTED:
            return ReadResult(done=True)
        return ReadResult(done=False, value=self._text_of(chunk))

    async def release(self) -> None:
        await self._stream.close()

    async def _next_chunk(self) -> Any:
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            return _EXHAUSTED

    def _text_of(self, chunk: Any) -> str:
        if not chunk.choices:
            return ""
        choice = chunk.choices[0]
        if self._chat:
            return choice.delta.content or ""
        return choice.text or ""


class OpenAICompatibleBackend(EndpointBackend):
    host = "openai-compatible"

    def __init__(self, endpoint: OpenAICompatibleEndpoint, client_factory: OpenAIClientFactory) -> None:
        self._endpoint = endpoint
        self._client_factory = client_factory

    @property
    def chat(self) -> bool:
        return self._endpoint.completions_mode == "chat_completions"

    async def dispatch(
        self,
        prompt: str,
        parameters: Mapping[str, Any],
        *,
        model_id: str,
        abort: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        client = self._client_factory(self._endpoint)
        try:
            stream = await self._open_stream(client, prompt, parameters, model_id=model_id, abort=abort)
            reader = OpenAIStreamReader(stream, chat=self.chat, abort=abort)
            async with StreamAdapter(reader) as deltas:
                try:
                    async for delta in deltas:
                        if delta:
                            yield delta
                except (openai.APIError, httpx.HTTPError) as exc:
                    logger.warning("Stream from %s broke off: %s", self._endpoint.base_url, exc)
                    raise UpstreamError(f"Stream from {self.host} backend failed: {exc}") from exc
        finally:
            await client.close()

    async def _open_stream(
        self,
        client: AsyncOpenAI,
        prompt: str,
        parameters: Mapping[str, Any],
        *,
        model_id: str,
        abort: Optional[asyncio.Event],
    ) -> Any:
        stop = parameters.get("stop")
        options = {
            key: value
            for key, value in (
                ("max_tokens", parameters.get("max_new_tokens")),
                ("stop", list(stop) if stop else None),
                ("temperature", parameters.get("temperature")),
            )
            if value is not None
        }
        if self.chat:
            request = client.chat.completions.create(
                model=model_id,
                messages=[{"role": "user", "content": prompt}],
                stream=True,
                **options,
            )
        else:
            request = client.completions.create(model=model_id, prompt=prompt, stream=True, **options)

        start = time.perf_counter()
        try:
            stream = await race_abort(request, abort)
        except AbortedError:
            record_backend_call(self.host, time.perf_counter() - start, error="aborted")
            raise
        except openai.APIStatusError as exc:
            record_backend_call(self.host, time.perf_counter() - start, error="upstream")
            logger.warning("%s backend answered %s", self.host, exc.status_code)
            raise UpstreamError(exc.response.text, status_code=exc.status_code) from exc
        except openai.APIConnectionError as exc:
            record_backend_call(self.host, time.perf_counter() - start, error="transport")
            raise UpstreamError(f"Request to {self.host} backend failed: {exc}") from exc

        record_backend_call(self.host, time.perf_counter() - start)
        return stream

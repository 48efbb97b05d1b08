"""Generation orchestration: parameter merge, endpoint choice, dispatch, cleanup."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

import httpx

from llm_gateway.config.models import (
    Endpoint,
    GenerationParameterOverrides,
    ModelConfig,
    OpenAICompatibleEndpoint,
    SageMakerEndpoint,
    TGIEndpoint,
)
from llm_gateway.config.settings import Settings
from llm_gateway.errors import AbortedError, ConfigurationError
from llm_gateway.observability.metrics import record_generation
from llm_gateway.services.backend import EndpointBackend
from llm_gateway.services.openai_compatible import (
    OpenAIClientFactory,
    OpenAICompatibleBackend,
    default_client_factory,
)
from llm_gateway.services.sagemaker import SageMakerBackend
from llm_gateway.services.selector import EndpointSelector
from llm_gateway.services.tgi import TGIBackend
from llm_gateway.utils.text import clean_generated_text

logger = logging.getLogger(__name__)

ParameterOverrides = Union[GenerationParameterOverrides, Mapping[str, Any], None]


class GenerationState(str, enum.Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TokenEvent:
    """A raw fragment, forwarded in the order the backend produced it."""

    text: str
    type: str = "token"


@dataclass(frozen=True, slots=True)
class FinalAnswerEvent:
    """The post-processed text of the whole generation."""

    text: str
    type: str = "final"


GenerationEvent = Union[TokenEvent, FinalAnswerEvent]


class GenerationClient:
    """Run generation requests against a model's endpoints.

    Each call is independent: configuration is only read, and the shared
    :class:`httpx.AsyncClient` is owned through ``startup``/``shutdown``.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        selector: Optional[EndpointSelector] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        openai_client_factory: Optional[OpenAIClientFactory] = None,
    ) -> None:
        self._settings = settings
        self._selector = selector or EndpointSelector()
        self._client = http_client
        self._owns_client = http_client is None
        self._openai_client_factory = openai_client_factory or default_client_factory(settings)

    async def startup(self) -> None:
        """Initialise the HTTP client used by buffered backends."""

        if self._client is not None:
            return
        timeout = httpx.Timeout(self._settings.upstream_timeout_seconds)
        self._client = httpx.AsyncClient(timeout=timeout)
        self._owns_client = True
        logger.info(
            "Initialised inference HTTP client with timeout %.1fs",
            self._settings.upstream_timeout_seconds,
        )

    async def shutdown(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    @staticmethod
    def build_parameters(model: ModelConfig, overrides: ParameterOverrides = None) -> Dict[str, Any]:
        """Merge request overrides onto the model defaults.

        ``None`` overrides keep the default. ``return_full_text`` is always
        disabled and ``stop_sequences`` mirrors the merged ``stop``.
        """

        merged: Dict[str, Any] = {}
        if model.parameters is not None:
            merged.update(model.parameters.model_dump(exclude_none=True))

        if isinstance(overrides, GenerationParameterOverrides):
            merged.update(overrides.model_dump(exclude_none=True))
        elif overrides:
            validated = GenerationParameterOverrides.model_validate(dict(overrides))
            merged.update(validated.model_dump(exclude_none=True))

        merged["return_full_text"] = False
        if merged.get("stop"):
            merged["stop"] = list(merged["stop"])
            merged["stop_sequences"] = merged["stop"]
        return merged

    def backend_for(self, endpoint: Endpoint) -> EndpointBackend:
        if isinstance(endpoint, OpenAICompatibleEndpoint):
            return OpenAICompatibleBackend(endpoint, self._openai_client_factory)
        if isinstance(endpoint, SageMakerEndpoint):
            return SageMakerBackend(endpoint, self._require_client())
        if isinstance(endpoint, TGIEndpoint):
            return TGIBackend(endpoint, self._require_client())
        raise ConfigurationError(f"Unsupported endpoint host: {getattr(endpoint, 'host', endpoint)!r}")

    async def stream(
        self,
        model: ModelConfig,
        prompt: str,
        parameters: ParameterOverrides = None,
        *,
        abort: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[GenerationEvent]:
        """Yield a :class:`TokenEvent` per upstream fragment, then the final answer.

        Fragments already yielded are not retracted when the request fails
        later; the stream simply ends with the exception.
        """

        state = GenerationState.IDLE
        merged = self.build_parameters(model, parameters)
        endpoint = self._selector.select(model)
        backend = self.backend_for(endpoint)

        state = GenerationState.DISPATCHING
        logger.debug("Generation for model '%s' via %s: %s", model.id, endpoint.host, state.value)
        fragments: list[str] = []
        start = time.perf_counter()
        try:
            async with aclosing(
                backend.dispatch(prompt, merged, model_id=model.id or model.name, abort=abort)
            ) as chunks:
                async for fragment in chunks:
                    state = GenerationState.STREAMING
                    fragments.append(fragment)
                    yield TokenEvent(text=fragment)

            text = clean_generated_text("".join(fragments), prompt, merged.get("stop"))
            state = GenerationState.COMPLETED
            yield FinalAnswerEvent(text=text)
        except (AbortedError, asyncio.CancelledError, GeneratorExit):
            # closing the stream after the final answer is a normal exit
            if state is not GenerationState.COMPLETED:
                state = GenerationState.ABORTED
            raise
        except Exception:
            state = GenerationState.FAILED
            raise
        finally:
            duration = time.perf_counter() - start
            logger.info(
                "Generation for model '%s' via %s %s after %.1fms (%d fragment(s))",
                model.id,
                endpoint.host,
                state.value,
                duration * 1000,
                len(fragments),
            )
            record_generation(model.id or model.name, endpoint.host, duration, outcome=state.value)

    async def generate(
        self,
        model: ModelConfig,
        prompt: str,
        parameters: ParameterOverrides = None,
        *,
        abort: Optional[asyncio.Event] = None,
    ) -> str:
        """Run a generation to completion and return the cleaned text."""

        async with aclosing(self.stream(model, prompt, parameters, abort=abort)) as events:
            async for event in events:
                if isinstance(event, FinalAnswerEvent):
                    return event.text
        raise AbortedError()  # pragma: no cover - stream always ends with a final answer or raises

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GenerationClient.startup() has not been called")
        return self._client

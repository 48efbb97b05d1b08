"""Load-once model configuration and the context object built from it."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

import httpx

from llm_gateway.config.models import (
    DeprecatedModel,
    ModelConfig,
    parse_deprecated_models,
    parse_models,
)
from llm_gateway.config.settings import Settings
from llm_gateway.errors import (
    ConfigurationError,
    ConfigValidationError,
    DeprecatedModelError,
    ModelNotFoundError,
    PrepromptFetchError,
)
from llm_gateway.observability.metrics import record_configured_models

logger = logging.getLogger(__name__)

PromptRenderer = Callable[..., str]
TemplateCompiler = Callable[[str, ModelConfig], PromptRenderer]


@dataclass(frozen=True, slots=True)
class GatewayContext:
    """Immutable view of every configured model, shared by all requests."""

    models: tuple[ModelConfig, ...]
    task_model: ModelConfig
    deprecated_models: tuple[DeprecatedModel, ...] = ()
    prompt_renderers: Mapping[str, PromptRenderer] = field(default_factory=dict)

    @property
    def default_model(self) -> ModelConfig:
        return self.models[0]

    def get_model(self, model_id: Optional[str] = None) -> ModelConfig:
        """Resolve ``model_id`` (or the default model when omitted)."""

        if model_id is None:
            return self.default_model
        for model in self.models:
            if model.id == model_id:
                return model
        if self.task_model.id == model_id:
            return self.task_model
        if self.is_deprecated(model_id):
            raise DeprecatedModelError(model_id)
        raise ModelNotFoundError(model_id)

    def is_deprecated(self, model_id: str) -> bool:
        return any(model.id == model_id for model in self.deprecated_models)

    def renderer_for(self, model: ModelConfig) -> PromptRenderer:
        try:
            return self.prompt_renderers[model.id]
        except KeyError as exc:
            raise ConfigurationError(f"No compiled prompt template for model '{model.id}'") from exc


async def _resolve_preprompt(client: httpx.AsyncClient, model: ModelConfig) -> ModelConfig:
    if not model.preprompt_url:
        return model

    logger.info("Fetching preprompt for model '%s' from %s", model.name, model.preprompt_url)
    try:
        response = await client.get(model.preprompt_url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Preprompt fetch failed for model '%s'", model.name)
        raise PrepromptFetchError(
            f"Failed to fetch preprompt for model '{model.name}' from {model.preprompt_url}"
        ) from exc
    return model.model_copy(update={"preprompt": response.text})


async def load_models(
    raw: str | list[Any],
    *,
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    root: str = "models",
) -> list[ModelConfig]:
    """Parse models and fetch any remote preprompts.

    A single failed preprompt fetch aborts the whole load.
    """

    models = parse_models(raw, settings=settings, root=root)
    if not any(model.preprompt_url for model in models):
        return models

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.preprompt_timeout_seconds),
        follow_redirects=True,
    )
    try:
        resolved = await asyncio.gather(*(_resolve_preprompt(client, model) for model in models))
    finally:
        if owns_client:
            await client.aclose()
    return list(resolved)


async def _load_task_model(
    settings: Settings,
    models: list[ModelConfig],
    http_client: Optional[httpx.AsyncClient],
) -> ModelConfig:
    raw = settings.task_model
    if not raw:
        return models[0]

    for model in models:
        if model.name == raw:
            return model

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigValidationError(
            [f"task_model: '{raw}' is neither a configured model name nor a JSON model object"]
        ) from exc
    if not isinstance(data, dict):
        raise ConfigValidationError(["task_model: expected a model name or a JSON object"])

    loaded = await load_models([data], settings=settings, http_client=http_client, root="task_model")
    return loaded[0]


async def load_gateway_context(
    settings: Settings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    compile_template: Optional[TemplateCompiler] = None,
) -> GatewayContext:
    """Build the :class:`GatewayContext` from ``settings``.

    Any configuration error propagates; the application must not start with a
    partially loaded model set.
    """

    models = await load_models(settings.models, settings=settings, http_client=http_client)
    task_model = await _load_task_model(settings, models, http_client)
    deprecated = parse_deprecated_models(settings.old_models)

    renderers: dict[str, PromptRenderer] = {}
    if compile_template is not None:
        for model in (*models, task_model):
            renderers[model.id] = compile_template(model.chat_prompt_template, model)

    record_configured_models(len(models), len(deprecated))
    logger.info(
        "Loaded %d model(s), %d deprecated; default=%s task=%s",
        len(models),
        len(deprecated),
        models[0].id,
        task_model.id,
    )
    return GatewayContext(
        models=tuple(models),
        task_model=task_model,
        deprecated_models=deprecated,
        prompt_renderers=renderers,
    )

"""Text generation API endpoints."""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from llm_gateway.config.loader import GatewayContext
from llm_gateway.config.models import ModelConfig
from llm_gateway.errors import (
    AbortedError,
    ConfigurationError,
    DeprecatedModelError,
    EmptyResponseError,
    GenerationError,
    ModelNotFoundError,
    UpstreamError,
)
from llm_gateway.observability import current_request_id
from llm_gateway.schemas.generation import (
    GenerationRequest,
    GenerationResponse,
    ModelInfo,
    ModelListResponse,
)
from llm_gateway.services.generation import GenerationClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


def _get_context(request: Request) -> GatewayContext:
    context: GatewayContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Model configuration is not loaded")
    return context


def _get_generation_client(request: Request) -> GenerationClient:
    client: GenerationClient | None = getattr(request.app.state, "generation_client", None)
    if client is None or not client.is_ready:
        raise HTTPException(status_code=503, detail="Generation service is not available")
    return client


def _resolve_model(context: GatewayContext, model_id: str | None) -> ModelConfig:
    try:
        return context.get_model(model_id)
    except ModelNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DeprecatedModelError as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc


def _error_detail(exc: Exception) -> tuple[int, str]:
    if isinstance(exc, UpstreamError):
        return 502, exc.body or "Upstream inference backend failed"
    if isinstance(exc, EmptyResponseError):
        return 502, str(exc)
    if isinstance(exc, ConfigurationError):
        return 500, str(exc)
    return 500, "Failed to generate text."


async def _generate(
    client: GenerationClient,
    model: ModelConfig,
    payload: GenerationRequest,
) -> GenerationResponse:
    logger.info("Generating text with model '%s' for prompt: '%s...'", model.id, payload.prompt[:50])
    try:
        text = await client.generate(model, payload.prompt, payload.parameters)
    except AbortedError as exc:
        raise HTTPException(status_code=499, detail=str(exc)) from exc
    except (GenerationError, ConfigurationError) as exc:
        status_code, detail = _error_detail(exc)
        logger.warning("Generation with model '%s' failed: %s", model.id, exc)
        raise HTTPException(status_code=status_code, detail=detail) from exc
    return GenerationResponse(model=model.id or model.name, generated_text=text)


@router.post("/generate", response_model=GenerationResponse)
async def generate_text(
    payload: GenerationRequest,
    context: GatewayContext = Depends(_get_context),
    client: GenerationClient = Depends(_get_generation_client),
) -> GenerationResponse:
    """Buffered generation; returns the cleaned text."""

    return await _generate(client, _resolve_model(context, payload.model), payload)


@router.post("/task/generate", response_model=GenerationResponse)
async def generate_task_text(
    payload: GenerationRequest,
    context: GatewayContext = Depends(_get_context),
    client: GenerationClient = Depends(_get_generation_client),
) -> GenerationResponse:
    """Generation against the task model (summaries, titles); ``model`` is ignored."""

    return await _generate(client, context.task_model, payload)


@router.post("/generate_stream")
async def generate_text_stream(
    payload: GenerationRequest,
    context: GatewayContext = Depends(_get_context),
    client: GenerationClient = Depends(_get_generation_client),
) -> StreamingResponse:
    """Stream generation events as newline-delimited JSON.

    Token events carry raw fragments; the last event holds the cleaned text.
    A client disconnect cancels the stream and closes the upstream request.
    """

    model = _resolve_model(context, payload.model)
    logger.info("Streaming text with model '%s' for prompt: '%s...'", model.id, payload.prompt[:50])

    async def event_stream() -> AsyncIterator[str]:
        try:
            async with aclosing(client.stream(model, payload.prompt, payload.parameters)) as events:
                async for event in events:
                    yield json.dumps({"type": event.type, "text": event.text}) + "\n"
        except AbortedError:
            logger.info("Generation stream for model '%s' aborted", model.id)
        except (GenerationError, ConfigurationError) as exc:
            logger.warning("Streaming generation with model '%s' failed: %s", model.id, exc)
            _, detail = _error_detail(exc)
            yield json.dumps({"type": "error", "detail": detail, "request_id": current_request_id()}) + "\n"

    return StreamingResponse(event_stream(), media_type="application/x-ndjson")


@router.get("/models", response_model=ModelListResponse)
async def list_models(context: GatewayContext = Depends(_get_context)) -> ModelListResponse:
    """List configured models followed by deprecated ones."""

    models = [ModelInfo.from_config(model) for model in context.models]
    models.extend(ModelInfo.from_deprecated(model) for model in context.deprecated_models)
    return ModelListResponse(
        models=models,
        default_model=context.default_model.id or context.default_model.name,
        task_model=context.task_model.id or context.task_model.name,
    )


@router.get("/models/{model_id:path}", response_model=ModelInfo)
async def get_model_info(
    model_id: str,
    context: GatewayContext = Depends(_get_context),
) -> ModelInfo:
    return ModelInfo.from_config(_resolve_model(context, model_id))

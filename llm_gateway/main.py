"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from llm_gateway.api.router import api_router
from llm_gateway.config.loader import TemplateCompiler, load_gateway_context
from llm_gateway.config.settings import Settings, get_settings
from llm_gateway.observability import (
    RequestContextMiddleware,
    configure_logging,
    register_metrics_endpoint,
)
from llm_gateway.services.generation import GenerationClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup...")

    settings: Settings = app.state.settings
    generation_client = GenerationClient(settings=settings)
    await generation_client.startup()

    try:
        # A configuration error propagates here and aborts startup.
        app.state.context = await load_gateway_context(
            settings,
            compile_template=app.state.compile_template,
        )
        app.state.generation_client = generation_client
        yield
    finally:
        logger.info("Application shutdown...")
        app.state.generation_client = None
        app.state.context = None
        await generation_client.shutdown()


def create_app(
    settings: Settings | None = None,
    *,
    compile_template: Optional[TemplateCompiler] = None,
) -> FastAPI:
    settings = settings or get_settings()

    configure_logging(settings)

    application = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.compile_template = compile_template
    application.add_middleware(RequestContextMiddleware, settings=settings)
    application.include_router(api_router)
    register_metrics_endpoint(application)

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()

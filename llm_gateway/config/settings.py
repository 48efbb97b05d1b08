"""Application configuration and environment management."""

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import Field, PositiveFloat, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised application settings.

    Model definitions arrive as raw JSON strings (``MODELS``, ``OLD_MODELS``,
    ``TASK_MODEL``) and are validated separately by
    :mod:`llm_gateway.config.models` when the application starts.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Core service metadata
    api_title: str = Field(default="LLM Gateway", description="Human readable API title")
    api_version: str = Field(default="1.0.0", description="Semantic version exposed by FastAPI")
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level used for application loggers.",
    )
    upstream_log_level: str = Field(
        default="WARNING",
        alias="UPSTREAM_LOG_LEVEL",
        description="Logging level applied to the httpx, openai and botocore loggers.",
    )
    request_id_header: str = Field(
        default="X-Request-ID",
        alias="REQUEST_ID_HEADER",
        description="HTTP header used to propagate the request identifier.",
    )
    access_log_exclude_paths: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/health", "/metrics"],
        alias="ACCESS_LOG_EXCLUDE_PATHS",
        description="Comma separated request paths that are not access-logged.",
    )

    # Model configuration
    models: str = Field(
        default="[]",
        alias="MODELS",
        description="JSON array describing every servable model and its endpoints.",
    )
    old_models: Optional[str] = Field(
        default=None,
        alias="OLD_MODELS",
        description="Optional JSON array of deprecated models kept for identification.",
    )
    task_model: Optional[str] = Field(
        default=None,
        alias="TASK_MODEL",
        description="Name of a configured model, or a JSON model object, used for background tasks.",
    )

    # Upstream credentials and defaults
    hf_access_token: Optional[str] = Field(
        default=None,
        alias="HF_ACCESS_TOKEN",
        description="Token used for the default TGI Authorization header.",
    )
    hf_api_root: Optional[str] = Field(
        default=None,
        alias="HF_API_ROOT",
        description="Inference API root used to derive an endpoint for models that declare none.",
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        alias="OPENAI_API_KEY",
        description="Default API key for OpenAI-compatible endpoints.",
    )
    upstream_timeout_seconds: PositiveFloat = Field(
        default=120.0,
        alias="UPSTREAM_TIMEOUT_SECONDS",
        description="Network timeout applied to inference backend requests.",
    )
    preprompt_timeout_seconds: PositiveFloat = Field(
        default=30.0,
        alias="PREPROMPT_TIMEOUT_SECONDS",
        description="Network timeout applied when fetching preprompts at startup.",
    )

    @field_validator("access_log_exclude_paths", mode="before")
    @classmethod
    def _split_paths(cls, value: Optional[str | list[str]]) -> list[str]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, list):
            return [item for item in value if item]
        raise TypeError("Invalid value for ACCESS_LOG_EXCLUDE_PATHS")


@lru_cache()
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()

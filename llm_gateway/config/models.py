"""Typed model and endpoint configuration.

The raw configuration is a JSON array of camelCase model objects. Each
object is validated into a frozen :class:`ModelConfig`; endpoint objects are
discriminated by their ``host`` field, which falls back to ``"tgi"`` when it
is omitted. Defaults that depend on the deployment (API keys, the inference
API root) are read from :class:`~llm_gateway.config.settings.Settings`,
passed to pydantic through the validation context.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from llm_gateway.config.settings import Settings
from llm_gateway.errors import ConfigValidationError

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"

DEFAULT_CHAT_PROMPT_TEMPLATE = (
    "{{preprompt}}"
    "{{#each messages}}"
    "{{#ifUser}}{{@root.userMessageToken}}{{content}}{{@root.userMessageEndToken}}{{/ifUser}}"
    "{{#ifAssistant}}{{@root.assistantMessageToken}}{{content}}{{@root.assistantMessageEndToken}}{{/ifAssistant}}"
    "{{/each}}"
    "{{assistantMessageToken}}"
)

_HTTP_URL = TypeAdapter(HttpUrl)


def _check_url(value: str) -> str:
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError as exc:
        raise ValueError(f"'{value}' is not a valid URL") from exc
    return value


UrlString = Annotated[str, AfterValidator(_check_url)]
NonEmptyStr = Annotated[str, Field(min_length=1)]
# JSON numbers only: no numeric strings, no booleans
StrictPositiveInt = Annotated[int, Field(gt=0, strict=True)]


def _settings_from(info: ValidationInfo) -> Optional[Settings]:
    context = info.context or {}
    return context.get("settings")


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )


class _EndpointBase(_ConfigModel):
    weight: StrictPositiveInt = 1


class OpenAICompatibleEndpoint(_EndpointBase):
    """Any server speaking the OpenAI completions API."""

    host: Literal["openai-compatible"]
    base_url: UrlString = Field(default=DEFAULT_OPENAI_BASE_URL, alias="baseURL")
    api_key: Optional[str] = None
    completions_mode: Literal["completions", "chat_completions"] = Field(
        default="completions",
        validation_alias=AliasChoices("type", "completionsMode", "completions_mode"),
    )

    @model_validator(mode="before")
    @classmethod
    def _default_api_key(cls, data: Any, info: ValidationInfo) -> Any:
        settings = _settings_from(info)
        if (
            isinstance(data, dict)
            and data.get("apiKey") is None
            and data.get("api_key") is None
            and settings is not None
            and settings.openai_api_key
        ):
            return {**data, "apiKey": settings.openai_api_key}
        return data


class SageMakerEndpoint(_EndpointBase):
    """An AWS SageMaker inference endpoint reached with SigV4-signed requests."""

    host: Literal["sagemaker"]
    url: UrlString
    access_key: NonEmptyStr
    secret_key: NonEmptyStr
    session_token: Optional[str] = None
    region: Optional[NonEmptyStr] = None


class TGIEndpoint(_EndpointBase):
    """A text-generation-inference server; the default when ``host`` is omitted."""

    host: Literal["tgi"] = "tgi"
    url: UrlString
    authorization: Optional[NonEmptyStr] = None

    @model_validator(mode="before")
    @classmethod
    def _default_authorization(cls, data: Any, info: ValidationInfo) -> Any:
        settings = _settings_from(info)
        if (
            isinstance(data, dict)
            and data.get("authorization") is None
            and settings is not None
            and settings.hf_access_token
        ):
            return {**data, "authorization": f"Bearer {settings.hf_access_token}"}
        return data


Endpoint = Annotated[
    Union[OpenAICompatibleEndpoint, SageMakerEndpoint, TGIEndpoint],
    Field(discriminator="host"),
]

_ENDPOINT_HOSTS = frozenset({"openai-compatible", "sagemaker", "tgi"})


class GenerationParameters(BaseModel):
    """Default sampling parameters of a model; unknown keys pass through."""

    model_config = ConfigDict(frozen=True, extra="allow")

    temperature: float = Field(ge=0, le=1, strict=True)
    truncate: StrictPositiveInt
    max_new_tokens: StrictPositiveInt
    stop: Optional[tuple[str, ...]] = None
    top_p: Optional[float] = Field(default=None, gt=0, strict=True)
    top_k: Optional[StrictPositiveInt] = None
    repetition_penalty: Optional[float] = Field(default=None, ge=-2, le=2, strict=True)


class GenerationParameterOverrides(BaseModel):
    """Per-request partial overrides merged onto :class:`GenerationParameters`."""

    model_config = ConfigDict(frozen=True, extra="allow")

    temperature: Optional[float] = Field(default=None, ge=0, le=1, strict=True)
    truncate: Optional[StrictPositiveInt] = None
    max_new_tokens: Optional[StrictPositiveInt] = None
    stop: Optional[tuple[str, ...]] = None
    top_p: Optional[float] = Field(default=None, gt=0, strict=True)
    top_k: Optional[StrictPositiveInt] = None
    repetition_penalty: Optional[float] = Field(default=None, ge=-2, le=2, strict=True)


class PromptExample(_ConfigModel):
    title: NonEmptyStr
    prompt: NonEmptyStr


class ModelConfig(_ConfigModel):
    """A servable model: display metadata, prompt tokens, defaults and endpoints."""

    id: Optional[str] = None
    name: NonEmptyStr
    display_name: Optional[NonEmptyStr] = None
    description: Optional[NonEmptyStr] = None
    website_url: Optional[UrlString] = None
    model_url: Optional[UrlString] = None
    dataset_name: Optional[NonEmptyStr] = None
    dataset_url: Optional[UrlString] = None
    user_message_token: str = ""
    user_message_end_token: str = ""
    assistant_message_token: str = ""
    assistant_message_end_token: str = ""
    message_end_token: str = ""
    preprompt: str = ""
    preprompt_url: Optional[UrlString] = None
    chat_prompt_template: str = DEFAULT_CHAT_PROMPT_TEMPLATE
    prompt_examples: Optional[tuple[PromptExample, ...]] = None
    endpoints: tuple[Endpoint, ...] = ()
    parameters: Optional[GenerationParameters] = None

    @field_validator("endpoints", mode="before")
    @classmethod
    def _default_host(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [
            {**item, "host": "tgi"} if isinstance(item, dict) and item.get("host") is None else item
            for item in value
        ]


class DeprecatedModel(_ConfigModel):
    """A retired model, kept so old conversations can still be identified."""

    id: Optional[str] = None
    name: NonEmptyStr
    display_name: Optional[NonEmptyStr] = None


_MODEL_LIST = TypeAdapter(list[ModelConfig])
_DEPRECATED_LIST = TypeAdapter(list[DeprecatedModel])


def _format_location(root: str, loc: tuple[Any, ...]) -> str:
    path = root
    previous: Any = None
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif isinstance(previous, int) and part in _ENDPOINT_HOSTS:
            # discriminated-union tag, not a real field
            pass
        else:
            path += f".{part}"
        previous = part
    return path


def _describe(exc: ValidationError, root: str) -> list[str]:
    return [f"{_format_location(root, tuple(error['loc']))}: {error['msg']}" for error in exc.errors()]


def _decode(raw: str | list[Any], root: str) -> list[Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigValidationError([f"{root}: invalid JSON ({exc.msg} at line {exc.lineno})"]) from exc
    if not isinstance(raw, list):
        raise ConfigValidationError([f"{root}: expected a JSON array"])
    return raw


def _derived_endpoints(model: ModelConfig, settings: Optional[Settings]) -> tuple[TGIEndpoint, ...]:
    if settings is None or not settings.hf_api_root:
        return ()
    endpoint = TGIEndpoint.model_validate(
        {"url": f"{settings.hf_api_root.rstrip('/')}/{model.name}"},
        context={"settings": settings},
    )
    return (endpoint,)


def _finalise(model: ModelConfig, endpoints: tuple[Any, ...]) -> ModelConfig:
    return model.model_copy(
        update={
            "id": model.id or model.name,
            "display_name": model.display_name or model.name,
            "user_message_end_token": model.user_message_end_token or model.message_end_token,
            "assistant_message_end_token": model.assistant_message_end_token or model.message_end_token,
            "endpoints": endpoints,
        }
    )


def parse_models(
    raw: str | list[Any],
    *,
    settings: Optional[Settings] = None,
    root: str = "models",
) -> list[ModelConfig]:
    """Validate raw model configuration and apply derived defaults.

    Raises :class:`ConfigValidationError` naming every offending field. A
    model without endpoints is only accepted when ``HF_API_ROOT`` is
    configured, in which case a TGI endpoint under that root is derived.
    """

    data = _decode(raw, root)
    try:
        parsed = _MODEL_LIST.validate_python(data, context={"settings": settings})
    except ValidationError as exc:
        raise ConfigValidationError(_describe(exc, root)) from exc

    if not parsed:
        raise ConfigValidationError([f"{root}: at least one model must be configured"])

    problems: list[str] = []
    models: list[ModelConfig] = []
    for index, model in enumerate(parsed):
        endpoints = model.endpoints or _derived_endpoints(model, settings)
        if not endpoints:
            problems.append(
                f"{root}[{index}].endpoints: model '{model.name}' declares no endpoints "
                "and HF_API_ROOT is not configured"
            )
            continue
        models.append(_finalise(model, endpoints))

    if problems:
        raise ConfigValidationError(problems)
    return models


def parse_deprecated_models(raw: Optional[str | list[Any]]) -> tuple[DeprecatedModel, ...]:
    """Parse the optional deprecated-models list; missing input yields ``()``."""

    if raw is None or raw == "":
        return ()
    data = _decode(raw, "old_models")
    try:
        parsed = _DEPRECATED_LIST.validate_python(data)
    except ValidationError as exc:
        raise ConfigValidationError(_describe(exc, "old_models")) from exc
    return tuple(
        model.model_copy(
            update={"id": model.id or model.name, "display_name": model.display_name or model.name}
        )
        for model in parsed
    )

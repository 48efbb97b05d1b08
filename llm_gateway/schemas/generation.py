"""Pydantic models for text generation endpoints."""

from typing import List, Optional

from pydantic import BaseModel, Field

from llm_gateway.config.models import (
    DeprecatedModel,
    GenerationParameterOverrides,
    GenerationParameters,
    ModelConfig,
    PromptExample,
)


class GenerationRequest(BaseModel):
    prompt: str = Field(min_length=1)
    model: Optional[str] = Field(default=None, description="Model id; the default model when omitted")
    parameters: Optional[GenerationParameterOverrides] = None


class GenerationResponse(BaseModel):
    model: str
    generated_text: str


class ModelInfo(BaseModel):
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    website_url: Optional[str] = None
    model_url: Optional[str] = None
    dataset_name: Optional[str] = None
    dataset_url: Optional[str] = None
    prompt_examples: List[PromptExample] = Field(default_factory=list)
    parameters: Optional[GenerationParameters] = None
    deprecated: bool = False

    @classmethod
    def from_config(cls, model: ModelConfig) -> "ModelInfo":
        return cls(
            id=model.id or model.name,
            name=model.name,
            display_name=model.display_name or model.name,
            description=model.description,
            website_url=model.website_url,
            model_url=model.model_url,
            dataset_name=model.dataset_name,
            dataset_url=model.dataset_url,
            prompt_examples=list(model.prompt_examples or ()),
            parameters=model.parameters,
        )

    @classmethod
    def from_deprecated(cls, model: DeprecatedModel) -> "ModelInfo":
        return cls(
            id=model.id or model.name,
            name=model.name,
            display_name=model.display_name or model.name,
            deprecated=True,
        )


class ModelListResponse(BaseModel):
    models: List[ModelInfo]
    default_model: str
    task_model: str

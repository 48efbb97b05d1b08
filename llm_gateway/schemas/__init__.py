"""Schema exports."""

from .generation import GenerationRequest, GenerationResponse, ModelInfo, ModelListResponse

__all__ = [
    "GenerationRequest",
    "GenerationResponse",
    "ModelInfo",
    "ModelListResponse",
]

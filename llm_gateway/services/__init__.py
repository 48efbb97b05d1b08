"""Service exports."""

from .backend import EndpointBackend
from .generation import (
    FinalAnswerEvent,
    GenerationClient,
    GenerationEvent,
    GenerationState,
    TokenEvent,
)
from .openai_compatible import OpenAICompatibleBackend, OpenAIStreamReader
from .sagemaker import SageMakerBackend
from .selector import EndpointSelector
from .tgi import TGIBackend

__all__ = [
    "EndpointBackend",
    "EndpointSelector",
    "FinalAnswerEvent",
    "GenerationClient",
    "GenerationEvent",
    "GenerationState",
    "OpenAICompatibleBackend",
    "OpenAIStreamReader",
    "SageMakerBackend",
    "TGIBackend",
    "TokenEvent",
]

"""Exception hierarchy shared by configuration loading and generation."""

from __future__ import annotations

from typing import Optional, Sequence


class GatewayError(Exception):
    """Base class for every error raised by the gateway."""


class ConfigError(GatewayError):
    """Raised when the model configuration cannot be loaded."""


class ConfigValidationError(ConfigError):
    """A configuration field is missing, malformed or out of range."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        summary = "; ".join(self.problems) or "invalid configuration"
        super().__init__(f"Invalid model configuration: {summary}")


class PrepromptFetchError(ConfigError):
    """The preprompt referenced by ``prepromptUrl`` could not be fetched."""


class ConfigurationError(ConfigError):
    """A model was used in a state its configuration cannot serve."""


class ModelLookupError(GatewayError):
    """Base class for failures resolving a model identifier."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(model_id)


class ModelNotFoundError(ModelLookupError):
    def __str__(self) -> str:
        return f"Model '{self.model_id}' is not configured"


class DeprecatedModelError(ModelLookupError):
    def __str__(self) -> str:
        return f"Model '{self.model_id}' has been deprecated"


class GenerationError(GatewayError):
    """Base class for per-request generation failures."""


class UpstreamError(GenerationError):
    """The inference backend answered with a non-2xx status or was unreachable."""

    def __init__(self, body: str, *, status_code: Optional[int] = None) -> None:
        self.body = body
        self.status_code = status_code
        super().__init__(body)


class EmptyResponseError(GenerationError):
    """The inference backend returned no body."""

    def __init__(self, message: str = "Response body is empty") -> None:
        super().__init__(message)


class AbortedError(GenerationError):
    """The caller cancelled the generation."""

    def __init__(self, message: str = "Generation aborted by caller") -> None:
        super().__init__(message)

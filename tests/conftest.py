from typing import Any, Callable

import pytest

from llm_gateway.config.settings import Settings


def _build_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "models": "[]",
        "old_models": None,
        "task_model": None,
        "hf_access_token": None,
        "hf_api_root": None,
        "openai_api_key": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build settings isolated from the developer's environment."""

    return _build_settings


@pytest.fixture
def settings() -> Settings:
    return _build_settings()

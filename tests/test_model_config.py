import json

import pytest
from pydantic import ValidationError

from llm_gateway.config.models import (
    DEFAULT_OPENAI_BASE_URL,
    OpenAICompatibleEndpoint,
    SageMakerEndpoint,
    TGIEndpoint,
    parse_deprecated_models,
    parse_models,
)
from llm_gateway.errors import ConfigValidationError

SAGEMAKER_URL = "https://runtime.sagemaker.eu-west-1.amazonaws.com/endpoints/mistral/invocations"


def _raw_models() -> list[dict]:
    return [
        {
            "name": "mistralai/Mistral-7B-Instruct-v0.1",
            "displayName": "Mistral 7B",
            "userMessageToken": "[INST]",
            "assistantMessageToken": "[/INST]",
            "messageEndToken": "</s>",
            "promptExamples": [{"title": "Poem", "prompt": "Write a poem"}],
            "parameters": {
                "temperature": 0.5,
                "truncate": 1000,
                "max_new_tokens": 512,
                "stop": ["</s>"],
                "watermark": True,
            },
            "endpoints": [
                {"url": "http://tgi.internal:8080/generate", "weight": 2},
                {
                    "host": "openai-compatible",
                    "baseURL": "http://vllm.internal:8000/v1",
                    "type": "chat_completions",
                },
                {
                    "host": "sagemaker",
                    "url": SAGEMAKER_URL,
                    "accessKey": "AKIAEXAMPLE",
                    "secretKey": "secret",
                },
            ],
        }
    ]


def _problems(raw: object, settings) -> str:
    with pytest.raises(ConfigValidationError) as exc:
        parse_models(raw, settings=settings)
    return str(exc.value)


def test_parse_models_applies_defaults_and_derivations(settings) -> None:
    [model] = parse_models(_raw_models(), settings=settings)

    assert model.id == "mistralai/Mistral-7B-Instruct-v0.1"
    assert model.display_name == "Mistral 7B"
    assert model.user_message_end_token == "</s>"
    assert model.assistant_message_end_token == "</s>"
    assert model.prompt_examples[0].title == "Poem"

    tgi, openai_compatible, sagemaker = model.endpoints
    assert isinstance(tgi, TGIEndpoint)
    assert tgi.host == "tgi"
    assert tgi.weight == 2
    assert tgi.authorization is None
    assert isinstance(openai_compatible, OpenAICompatibleEndpoint)
    assert openai_compatible.completions_mode == "chat_completions"
    assert openai_compatible.base_url == "http://vllm.internal:8000/v1"
    assert openai_compatible.weight == 1
    assert isinstance(sagemaker, SageMakerEndpoint)
    assert sagemaker.session_token is None


def test_parameters_preserve_unknown_fields(settings) -> None:
    [model] = parse_models(_raw_models(), settings=settings)

    assert model.parameters.stop == ("</s>",)
    assert model.parameters.model_extra == {"watermark": True}


def test_explicit_end_tokens_win_over_message_end_token(settings) -> None:
    raw = _raw_models()
    raw[0]["userMessageEndToken"] = "<|user_end|>"

    [model] = parse_models(raw, settings=settings)

    assert model.user_message_end_token == "<|user_end|>"
    assert model.assistant_message_end_token == "</s>"


def test_endpoint_credentials_default_from_settings(make_settings) -> None:
    settings = make_settings(hf_access_token="hf_token", openai_api_key="sk-test")

    [model] = parse_models(_raw_models(), settings=settings)

    assert model.endpoints[0].authorization == "Bearer hf_token"
    assert model.endpoints[1].api_key == "sk-test"


def test_openai_endpoint_defaults(settings) -> None:
    raw = [{"name": "gpt-3.5-turbo-instruct", "endpoints": [{"host": "openai-compatible"}]}]

    [model] = parse_models(raw, settings=settings)

    endpoint = model.endpoints[0]
    assert endpoint.base_url == DEFAULT_OPENAI_BASE_URL
    assert endpoint.completions_mode == "completions"
    assert endpoint.api_key is None


def test_parse_models_is_idempotent(settings) -> None:
    raw = json.dumps(_raw_models())

    assert parse_models(raw, settings=settings) == parse_models(raw, settings=settings)


def test_models_are_immutable(settings) -> None:
    [model] = parse_models(_raw_models(), settings=settings)

    with pytest.raises(ValidationError):
        model.name = "other"  # type: ignore[misc]


def test_non_positive_weight_names_field_path(settings) -> None:
    raw = _raw_models()
    raw[0]["endpoints"][0]["weight"] = 0

    message = _problems(raw, settings)

    assert "models[0].endpoints[0].weight" in message
    assert "greater than 0" in message


@pytest.mark.parametrize("weight", ["3", True, 2.5])
def test_weight_must_be_a_json_integer(settings, weight) -> None:
    raw = _raw_models()
    raw[0]["endpoints"][0]["weight"] = weight

    assert "models[0].endpoints[0].weight" in _problems(raw, settings)


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("temperature", "0.5"),
        ("temperature", True),
        ("truncate", "10"),
        ("max_new_tokens", "512"),
        ("top_k", "5"),
    ],
)
def test_numeric_parameters_reject_strings_and_booleans(settings, field: str, value: object) -> None:
    raw = _raw_models()
    raw[0]["parameters"][field] = value

    assert f"models[0].parameters.{field}" in _problems(raw, settings)


def test_integer_temperature_is_accepted(settings) -> None:
    raw = _raw_models()
    raw[0]["parameters"]["temperature"] = 1

    [model] = parse_models(raw, settings=settings)

    assert model.parameters.temperature == 1.0


def test_non_url_is_rejected(settings) -> None:
    raw = _raw_models()
    raw[0]["endpoints"][0]["url"] = "not a url"

    message = _problems(raw, settings)

    assert "models[0].endpoints[0].url" in message
    assert "is not a valid URL" in message


def test_missing_name_is_rejected(settings) -> None:
    raw = _raw_models()
    del raw[0]["name"]

    assert "models[0].name: Field required" in _problems(raw, settings)


def test_unknown_host_is_rejected(settings) -> None:
    raw = _raw_models()
    raw[0]["endpoints"][0]["host"] = "ollama"

    assert "models[0].endpoints[0]" in _problems(raw, settings)


def test_temperature_out_of_range_is_rejected(settings) -> None:
    raw = _raw_models()
    raw[0]["parameters"]["temperature"] = 1.5

    assert "models[0].parameters.temperature" in _problems(raw, settings)


def test_model_without_endpoints_fails_validation(settings) -> None:
    raw = [{"name": "bigcode/starcoder"}]

    with pytest.raises(ConfigValidationError) as exc:
        parse_models(raw, settings=settings)

    assert exc.value.problems == [
        "models[0].endpoints: model 'bigcode/starcoder' declares no endpoints "
        "and HF_API_ROOT is not configured"
    ]


def test_model_without_endpoints_derives_tgi_endpoint_from_api_root(make_settings) -> None:
    settings = make_settings(
        hf_api_root="https://api-inference.huggingface.co/models/",
        hf_access_token="hf_token",
    )

    [model] = parse_models([{"name": "bigcode/starcoder"}], settings=settings)

    [endpoint] = model.endpoints
    assert isinstance(endpoint, TGIEndpoint)
    assert endpoint.url == "https://api-inference.huggingface.co/models/bigcode/starcoder"
    assert endpoint.authorization == "Bearer hf_token"
    assert endpoint.weight == 1


def test_empty_model_list_is_rejected(settings) -> None:
    assert "at least one model" in _problems("[]", settings)


def test_invalid_json_is_rejected(settings) -> None:
    assert "models: invalid JSON" in _problems("[{", settings)


def test_deprecated_models_default_to_empty() -> None:
    assert parse_deprecated_models(None) == ()
    assert parse_deprecated_models("") == ()


def test_deprecated_models_fill_id_and_display_name() -> None:
    raw = json.dumps(
        [
            {"name": "OpenAssistant/oasst-sft-6-llama-30b-xor"},
            {"id": "falcon", "name": "tiiuae/falcon-180B-chat", "displayName": "Falcon 180B"},
        ]
    )

    oasst, falcon = parse_deprecated_models(raw)

    assert oasst.id == oasst.name == oasst.display_name
    assert falcon.id == "falcon"
    assert falcon.display_name == "Falcon 180B"


def test_deprecated_models_require_name() -> None:
    with pytest.raises(ConfigValidationError) as exc:
        parse_deprecated_models([{"id": "orphan"}])

    assert "old_models[0].name" in str(exc.value)

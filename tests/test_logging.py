import logging

from llm_gateway.observability.logging import (
    RequestIdFilter,
    bind_request_id,
    current_request_id,
    reset_request_id,
)


def test_request_id_is_bound_for_the_current_context_only() -> None:
    assert current_request_id() == "-"

    token = bind_request_id("abc123")
    try:
        assert current_request_id() == "abc123"
    finally:
        reset_request_id(token)

    assert current_request_id() == "-"


def test_filter_stamps_records_with_bound_request_id() -> None:
    record = logging.LogRecord("llm_gateway", logging.INFO, __file__, 1, "hello", None, None)
    token = bind_request_id("req-7")
    try:
        assert RequestIdFilter().filter(record) is True
    finally:
        reset_request_id(token)

    assert record.request_id == "req-7"

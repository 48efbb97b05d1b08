"""Logging configuration with per-request identifiers."""

from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from logging.config import dictConfig

from llm_gateway.config.settings import Settings

_REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="-")

# Third-party clients used to reach inference backends; they log every request at INFO.
_UPSTREAM_LOGGERS = ("httpx", "httpcore", "openai", "botocore")


class RequestIdFilter(logging.Filter):
    """Inject the current request id into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _REQUEST_ID.get()
        return True


def current_request_id() -> str:
    return _REQUEST_ID.get()


def bind_request_id(request_id: str) -> Token[str]:
    """Bind the provided request identifier in the current context."""

    return _REQUEST_ID.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    _REQUEST_ID.reset(token)


def configure_logging(settings: Settings) -> None:
    """Configure the root, uvicorn and upstream-client loggers."""

    log_level = settings.log_level.upper()
    upstream_level = settings.upstream_log_level.upper()

    loggers: dict[str, dict[str, object]] = {
        "": {"handlers": ["default"], "level": log_level},
    }
    for name in ("uvicorn", "uvicorn.error"):
        loggers[name] = {"handlers": ["default"], "level": log_level, "propagate": False}
    # RequestContextMiddleware writes the access log with the request id attached.
    loggers["uvicorn.access"] = {"handlers": [], "level": "WARNING", "propagate": False}
    for name in _UPSTREAM_LOGGERS:
        loggers[name] = {"level": upstream_level}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_id": {"()": RequestIdFilter}},
            "formatters": {
                "standard": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | request_id=%(request_id)s | %(message)s",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "filters": ["request_id"],
                }
            },
            "loggers": loggers,
        }
    )

    logging.getLogger(__name__).debug(
        "Logging configured at level %s (upstream clients at %s)", log_level, upstream_level
    )

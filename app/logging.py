import json
import logging
import logging.config
import os
from contextvars import ContextVar, Token
from datetime import datetime, timezone

_CONTEXT_FIELDS = (
    "request_id",
    "path",
    "method",
    "status",
    "duration_ms",
    "customer_id",
    "account_id",
    "event_id",
    "event_type",
    "outcome",
    "reason",
    "task_id",
)

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def bind_request_id(request_id: str) -> Token:
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def current_request_id() -> str | None:
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Stamps the active request id on records logged below the middleware."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = _request_id.get()
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None) -> None:
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": RequestContextFilter},
        },
        "formatters": {
            "json": {
                "()": JsonLogFormatter,
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "filters": ["request_context"],
            }
        },
        "root": {
            "handlers": ["default"],
            "level": level or os.getenv("LOG_LEVEL", "INFO").upper(),
        },
        "loggers": {
            # Stripe logs every request line at INFO
            "stripe": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(logging_config)

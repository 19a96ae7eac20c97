import logging
import os

from app.config import Settings, settings

logger = logging.getLogger(__name__)


def _env_value(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def _env_int(name: str, default: int) -> int:
    raw = _env_value(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def get_celery_config(s: Settings = settings) -> dict:
    broker = s.celery_broker_url or s.redis_url or "redis://localhost:6379/0"
    backend = s.celery_result_backend or s.redis_url or "redis://localhost:6379/1"
    timezone = _env_value("CELERY_TIMEZONE") or "UTC"
    eager = (_env_value("CELERY_TASK_ALWAYS_EAGER") or "false").lower() in {
        "1",
        "true",
        "yes",
        "on",
    }
    return {
        "broker_url": broker,
        "result_backend": backend,
        "timezone": timezone,
        "task_serializer": "json",
        "result_serializer": "json",
        "accept_content": ["json"],
        "task_acks_late": True,
        "task_always_eager": eager,
        "task_eager_propagates": False,
        "task_soft_time_limit": _env_int("CELERY_TASK_SOFT_TIME_LIMIT", 120),
        "task_time_limit": _env_int("CELERY_TASK_TIME_LIMIT", 180),
        "result_expires": _env_int("CELERY_RESULT_EXPIRES", 3600),
    }

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Optional

from lendflow.core.context import get_request_id, get_user_id
from lendflow.core.settings import settings

AUDIT_LOGGER_NAME = "lendflow.audit"
ACCESS_LOGGER_NAME = "lendflow.access"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "request_id", "user_id", "taskName"}


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.user_id = get_user_id()
        return True


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are emitted as top-level keys."""

    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = _extra_fields(record)
        if extra:
            line += " " + " ".join(f"{key}={value}" for key, value in sorted(extra.items()))
        return line


def _handler(formatter: str, log_level: str) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": log_level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    use_json = (log_format or settings.log_format) == "json"
    formatters: dict[str, Any] = {
        "transactional": {"()": JsonFormatter, "stream_label": "transactional"} if use_json else {"()": TextFormatter},
        "audit": {"()": JsonFormatter, "stream_label": "audit"} if use_json else {"()": TextFormatter},
    }
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": formatters,
            "handlers": {
                "default": _handler("transactional", log_level),
                "audit": _handler("audit", log_level),
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level},
                AUDIT_LOGGER_NAME: {"handlers": ["audit"], "level": log_level, "propagate": False},
                "uvicorn": {"handlers": ["default"], "level": log_level, "propagate": False},
                # Our access middleware already logs one line per request.
                "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": False},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "environment": settings.environment,
            "log_format": "json" if use_json else "text",
            "storage_provider": settings.storage_provider,
        },
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)


def get_access_logger() -> logging.Logger:
    return logging.getLogger(ACCESS_LOGGER_NAME)

"""Logging setup for the admission engine.

Standard library logging configured through ``dictConfig``. Decision logs
carry the rate limit key, scope and outcome as record attributes (pass them
with ``extra=get_log_context(...)``); the ``json`` format lifts them to
top-level keys so they can be filtered in a log aggregator.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from admission.app.core.config import settings

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

CONTEXT_FIELDS = (
    "key",       # rate limit key (client identifier)
    "route",     # scope name, "global" or "METHOD /path"
    "method",
    "path",
    "decision",  # allow | deny | ban
    "current",   # counter value reported by the store
    "max",       # effective ceiling
    "ttl_ms",    # window time left
    "store",     # store implementation name
)


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        payload: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra: Dict[str, Any] = {}
        for name, value in record.__dict__.items():
            if name in _RECORD_ATTRS:
                continue
            if name in CONTEXT_FIELDS:
                if value is not None:
                    payload[name] = value
            else:
                extra[name] = value
        if extra:
            payload["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Give every record the context attributes, so text formats never KeyError."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


_FORMATS = {
    "text": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "structured": (
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        " - route=%(route)s decision=%(decision)s key=%(key)s ttl_ms=%(ttl_ms)s"
    ),
}


def _stream_handler(stream: Any, level: str, formatter: str) -> Dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "stream": stream,
        "level": level,
        "formatter": formatter,
        "filters": ["context"],
    }


def get_logging_config() -> Dict[str, Any]:
    """Build a ``dictConfig`` mapping from ``settings.log_format`` and ``settings.log_level``."""
    log_format = str(settings.log_format).lower()
    log_level = str(settings.log_level).upper()

    formatters: Dict[str, Any] = {
        "standard": {"format": _FORMATS["text"]},
        "structured": {"format": _FORMATS["structured"]},
    }
    if log_format == "json":
        formatters["json"] = {"()": f"{__name__}.JSONFormatter"}
        formatter = "json"
    elif log_format == "structured":
        formatter = "structured"
    else:
        formatter = "standard"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {"context": {"()": f"{__name__}.ContextFilter"}},
        "handlers": {
            "console": _stream_handler(sys.stdout, log_level, formatter),
            "error_console": _stream_handler(sys.stderr, "ERROR", formatter),
        },
        "loggers": {
            "admission": {
                "level": log_level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }


def setup_logging() -> None:
    logging.config.dictConfig(get_logging_config())
    # redis-py logs every reconnect attempt at INFO
    logging.getLogger("redis").setLevel(logging.WARNING)


def get_logger(name: str = "admission") -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    key: Optional[str] = None,
    route: Optional[str] = None,
    decision: Optional[str] = None,
    **fields: Any,
) -> Dict[str, Any]:
    """Collect decision context for ``extra=``, dropping unset values.

    Example:
        >>> logger.warning(
        ...     "Rate limit exceeded",
        ...     extra=get_log_context(key="10.0.0.1", route="global", decision="deny"),
        ... )
    """
    context = dict(key=key, route=route, decision=decision, **fields)
    return {name: value for name, value in context.items() if value is not None}

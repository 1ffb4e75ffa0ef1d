"""
app/core/logging.py

Purpose: Logging configuration

- Standardizes log format
- Controls log levels
- Structured JSON logging in production
- Context tracking (phone, pending_action, intent, source, event_id)
"""

import logging
import sys
import json
from contextvars import ContextVar
from typing import Any, Dict
from datetime import datetime, timezone
from app.core.config import settings

# Record attributes promoted into structured output when present.
# "signal" carries monitoring markers such as dedup fail-open.
CONTEXT_FIELDS = ("phone", "pending_action", "intent", "source", "event_id", "event_type", "signal")


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for the production log pipeline."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update({f: getattr(record, f) for f in CONTEXT_FIELDS if hasattr(record, f)})

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Coloured one-line output for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    # Short labels for the context suffix
    LABELS = {"phone": "phone", "pending_action": "state", "intent": "intent", "event_id": "event"}

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}[{clock}] {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        tags = [f"{label}={getattr(record, field)}" for field, label in self.LABELS.items() if hasattr(record, field)]
        if tags:
            line += " [" + ", ".join(tags) + "]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


NOISY_LOGGERS = ("httpx", "openai", "stripe", "motor", "pymongo", "uvicorn.access")


def setup_logging():
    """JSON lines in production, coloured text elsewhere."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if settings.is_production else DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("cobraya")
    logger.info(f"Logging configured ({settings.ENVIRONMENT}, level={settings.LOG_LEVEL})")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Namespaced under "cobraya" so setup_logging() controls every module logger."""
    return logging.getLogger(f"cobraya.{name}")


_log_context: ContextVar[Dict[str, Any]] = ContextVar("cobraya_log_context", default={})


def _install_context_factory():
    """Installs (once) a record factory that copies the task-local context onto records."""
    base_factory = logging.getLogRecordFactory()
    if getattr(base_factory, "_cobraya_context", False):
        return

    def record_factory(*args, **kwargs):
        record = base_factory(*args, **kwargs)
        for key, value in _log_context.get().items():
            setattr(record, key, value)
        return record

    record_factory._cobraya_context = True
    logging.setLogRecordFactory(record_factory)


class LogContext:
    """
    Context manager for adding structured context to logs.

    Context lives in a ContextVar so concurrent webhook deliveries never
    see each other's fields.

    Usage:
        with LogContext(phone="+5215512345678", pending_action="choose_tone"):
            logger.info("Processing tone choice")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        _install_context_factory()
        self._token = _log_context.set({**_log_context.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)

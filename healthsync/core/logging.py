"""
healthsync/core/logging.py

Purpose: Logging configuration

- JSON lines in production, colored one-liners in development
- Flow context (client_id, user_id, state, purpose) attached to every record
- Bearer tokens and JWTs masked before anything is emitted

Passwords and passcodes must never be passed to a logger.
"""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

from healthsync.core.config import settings

# Record attributes copied into log output when present
CONTEXT_FIELDS = ("client_id", "user_id", "email", "role", "state", "purpose")
# The development formatter keeps lines short
DEV_CONTEXT_FIELDS = ("client_id", "user_id", "state", "purpose")

NOISY_LOGGERS = ("httpx", "httpcore", "motor", "pymongo", "uvicorn.access")

SECRET_PATTERNS = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.=]+"),
    re.compile(r"eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+"),
)

_log_context: ContextVar[dict] = ContextVar("healthsync_log_context", default={})


def _context_of(record: logging.LogRecord, fields) -> dict:
    return {field: getattr(record, field) for field in fields if hasattr(record, field)}


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line for log shippers.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            **_context_of(record, CONTEXT_FIELDS),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    `[12:00:01] INFO     healthsync.flow.controller: message [client_id=..., state=...]`
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}[{clock}] {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        context = _context_of(record, DEV_CONTEXT_FIELDS)
        if context:
            line += " [" + ", ".join(f"{key}={value}" for key, value in context.items()) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class SecretRedactionFilter(logging.Filter):
    """Masks bearer tokens and JWTs in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = message
        for pattern in SECRET_PATTERNS:
            redacted = pattern.sub(lambda m: (m.group(1) if m.groups() else "") + "***", redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging() -> logging.Logger:
    """
    Installs a single stdout handler on the root logger.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if settings.is_production else DevelopmentFormatter())
    handler.addFilter(SecretRedactionFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("healthsync")
    logger.info(f"Logging configured ({settings.ENVIRONMENT}, level={settings.LOG_LEVEL})")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the `healthsync.` namespace (usually called with __name__).
    """
    if name.startswith("healthsync"):
        return logging.getLogger(name)
    return logging.getLogger(f"healthsync.{name}")


class LogContext:
    """
    Adds fields to every record logged inside the block.

    Fields live in a ContextVar, so flows running side by side on one event
    loop keep their own context.

    Usage:
        with LogContext(client_id="abc", state="LOGIN_FORM"):
            logger.info("Submitting credentials")
    """

    def __init__(self, **fields):
        self.fields = fields
        self._token = None

    def __enter__(self):
        self._token = _log_context.set({**_log_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)


_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    for key, value in _log_context.get().items():
        setattr(record, key, value)
    return record


logging.setLogRecordFactory(_record_factory)

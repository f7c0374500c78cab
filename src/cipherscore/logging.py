"""
CipherScore Structured Logging Configuration.

Provides consistent logging across all CipherScore components with:
- Structured JSON output for production
- Human-readable output for development
- Run ID correlation for scoring runs
- Sensitive data filtering (key material, plaintext scores)

Usage:
    from cipherscore.logging import get_logger, configure_logging

    # At application startup
    configure_logging(level="INFO", json_format=True)

    # In modules
    logger = get_logger(__name__)
    logger.info("Scored row", extra={"row": 3})
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional


# Sensitive field patterns to filter from logs
SENSITIVE_PATTERNS = frozenset(
    {
        "secret",
        "private_key",
        "privatekey",
        "secret_key",
        "secretkey",
        "key_bytes",
        "plaintext",
        "features",
        "credential",
    }
)

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


def _is_sensitive_key(key: str) -> bool:
    """Check if a key name suggests sensitive data."""
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in SENSITIVE_PATTERNS)


def _filter_sensitive(data: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively filter sensitive values from a dictionary."""
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        if _is_sensitive_key(key):
            filtered[key] = "[REDACTED]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive(value)
        elif isinstance(value, list):
            filtered[key] = [_filter_sensitive(item) if isinstance(item, dict) else item for item in value]
        else:
            filtered[key] = value
    return filtered


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add location info
        if record.pathname:
            log_data["location"] = {
                "file": record.pathname.split("/")[-1],
                "line": record.lineno,
                "function": record.funcName,
            }

        # Add extra fields (filtered for sensitive data)
        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if isinstance(value, dict):
                extra_fields[key] = _filter_sensitive(value)
            elif not _is_sensitive_key(key):
                extra_fields[key] = value
            else:
                extra_fields[key] = "[REDACTED]"

        if extra_fields:
            log_data["extra"] = extra_fields

        # Add exception info
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "") if self.use_color else ""
        reset = self.RESET if color else ""

        timestamp = datetime.utcnow().strftime("%H:%M:%S.%f")[:-3]
        level = f"{color}{record.levelname:8}{reset}"
        name = record.name.split(".")[-1][:15].ljust(15)
        message = record.getMessage()

        # Prefix with run_id when a LogContext is active
        run_id = getattr(record, "run_id", None)
        if run_id:
            message = f"[{run_id[:8]}] {message}"

        formatted = f"{timestamp} {level} {name} {message}"

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


class LogContextFilter(logging.Filter):
    """Copies the active LogContext fields onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in LogContext.get_current().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def configure_logging(
    level: str = "INFO",
    json_format: Optional[bool] = None,
    stream: Any = None,
) -> None:
    """
    Configure logging for CipherScore components.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON output. Default: True in production, False otherwise
        stream: Output stream. Default: sys.stderr
    """
    if json_format is None:
        env = os.environ.get("CS_ENVIRONMENT", "development")
        json_format = env == "production"

    root_logger = logging.getLogger("cipherscore")
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    output = stream or sys.stderr
    handler = logging.StreamHandler(output)
    handler.addFilter(LogContextFilter())

    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter(use_color=hasattr(output, "isatty") and output.isatty()))

    root_logger.addHandler(handler)

    # Don't propagate to root logger
    root_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a CipherScore module.

    Usage:
        logger = get_logger(__name__)
        logger.info("Message", extra={"row": 1})
    """
    if not name.startswith("cipherscore"):
        name = f"cipherscore.{name}"
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for adding correlation fields to logs.

    Usage:
        with LogContext(run_id="abc123", mode="score"):
            logger.info("Processing")  # record carries run_id and mode
    """

    _current: Optional["LogContext"] = None

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self._previous: Optional["LogContext"] = None

    def __enter__(self) -> "LogContext":
        self._previous = LogContext._current
        if self._previous is not None:
            merged = self._previous.context.copy()
            merged.update(self.context)
            self.context = merged
        LogContext._current = self
        return self

    def __exit__(self, *args: Any) -> None:
        LogContext._current = self._previous

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current logging context."""
        if cls._current:
            return cls._current.context.copy()
        return {}


# Initialize with default config when module is imported
# (can be reconfigured later with configure_logging())
if not logging.getLogger("cipherscore").handlers:
    configure_logging()


__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
    "LogContextFilter",
    "StructuredFormatter",
    "DevelopmentFormatter",
]

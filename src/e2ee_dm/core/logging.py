# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for e2ee_dm.

Provides:
- JSON formatter for production (machine-parseable)
- Standard formatter for development (human-readable)
- Correlation IDs so one unlock or send can be traced across log lines
- Redaction of key material before anything reaches a handler
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("e2ee_correlation_id", default=None)

# Field names whose values must never be logged
SENSITIVE_FIELDS = frozenset(
    {
        "d",
        "private_key",
        "private_jwk",
        "wrapped_private_key",
        "prf_salt",
        "hkdf_salt",
        "iv",
        "ciphertext",
        "plaintext",
        "phrase",
        "words",
        "token",
        "authorization",
    }
)


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    """Generate a new unique correlation ID."""
    return str(uuid.uuid4())


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
) -> Generator[str, None, None]:
    """Context manager for correlation ID scope.

    Args:
        correlation_id: Optional correlation ID to use. If None, generates a new one.

    Yields:
        The correlation ID being used.
    """
    cid = correlation_id or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


def redact(data: Any) -> Any:
    """Return a copy of ``data`` with sensitive fields masked.

    Dicts are walked recursively; any key in :data:`SENSITIVE_FIELDS`
    (case-insensitive) has its value replaced by ``"[REDACTED]"``.
    """
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and key.lower() in SENSITIVE_FIELDS:
                result[key] = "[REDACTED]"
            else:
                result[key] = redact(value)
        return result
    if isinstance(data, list | tuple):
        return [redact(item) for item in data]
    return data


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production environments."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = redact(record.extra_data)

        return json.dumps(log_data)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter with optional colors for terminal output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the original record
        record = logging.makeLogRecord(record.__dict__)

        correlation_id = get_correlation_id()
        if correlation_id:
            record.msg = f"[{correlation_id[:8]}] " + str(record.msg)

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure logging for e2ee_dm.

    Args:
        level: Log level (defaults to ``E2EE_DM_LOG_LEVEL``)
        json_format: Use JSON format (auto-detect if None)
        log_file: Optional file to write logs to

    Environment variables:
        E2EE_DM_LOG_LEVEL: Log level
        E2EE_DM_LOG_FORMAT: "json" or "text", auto-detect if unset
        E2EE_DM_LOG_FILE: Log file path
    """
    from .config import get_config

    config = get_config()

    level = config.log_level if level is None else level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    formatter: logging.Formatter = JSONFormatter() if json_format else StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

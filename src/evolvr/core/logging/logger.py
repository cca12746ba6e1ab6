"""
Evolvr Logging Subsystem

Purpose
-------
Structured logging for the progression engine:

- JSON records for aggregation, colored text for local development.
- Operation context (user, task, kind, correlation id) carried by a
  ContextVar and stamped onto every record by `ContextFilter`.
- An optional daily-rotating JSON file sink.

Responsibilities
----------------
- `setup_logging()` / `shutdown_logging()` install and remove the handler
  stack on the ``evolvr`` logger tree.
- `get_logger()`, `LogContext` and the `*_log_context()` helpers for library
  code.

Design Decisions
----------------
- Library modules only call `get_logger(__name__)`; installing handlers is an
  explicit host decision so embedding applications keep their own setup.
- ContextFilter sits on each installed handler, so records from child
  loggers are enriched when they reach it.
- Fields passed via `logger.info("msg", extra={...})` land under ``extra``
  in JSON output.

Dependencies
------------
- evolvr.core.config.config.Config (read lazily, at setup time)
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import TimedRotatingFileHandler
from typing import IO, Any, Dict, List, Optional

ROOT_LOGGER_NAME = "evolvr"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-34s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_BASENAME = "evolvr.json.log"

_CONTEXT_FIELDS = ("user_id", "task_id", "task_kind", "correlation_id", "component", "operation")

_request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

_installed_handlers: List[logging.Handler] = []


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the current LogContext onto the record ("N/A" when unset)."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _request_context.get({})
        for name in _CONTEXT_FIELDS:
            setattr(record, name, context.get(name) or "N/A")
        if record.component == "N/A":
            record.component = record.name.rsplit(".", 1)[-1]
        return True


class ColoredFormatter(logging.Formatter):
    LEVEL_COLORS: Dict[int, str] = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[94m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def formatMessage(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        color = self.LEVEL_COLORS.get(record.levelno)
        line = super().formatMessage(record)
        return f"{color}{line}{self.RESET}" if color else line


# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; context fields at top level, the rest under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        data.update(
            (name, getattr(record, name))
            for name in _CONTEXT_FIELDS
            if getattr(record, name, "N/A") not in (None, "N/A")
        )
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in _CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            data["extra"] = extra

        return json.dumps(data, ensure_ascii=False, default=str)


# ============================================================================
# Setup / Shutdown
# ============================================================================


def _resolve_level(level: Optional[str]) -> int:
    from evolvr.core.config.config import Config

    name = (level or Config.LOG_LEVEL or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _console_formatter(json_output: Optional[bool], stream: IO[str]) -> logging.Formatter:
    from evolvr.core.config.config import Config

    if json_output is None:
        json_output = Config.LOG_JSON if Config.LOG_JSON is not None else Config.is_production()
    if json_output:
        return JSONFormatter()
    if Config.LOG_COLORS and getattr(stream, "isatty", lambda: False)():
        return ColoredFormatter(CONSOLE_FORMAT, DATE_FORMAT)
    return logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT)


def _file_handler() -> logging.Handler:
    from evolvr.core.config.config import Config

    Config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        Config.LOGS_DIR / FILE_BASENAME,
        when="midnight",
        backupCount=7,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(
    level: Optional[str] = None,
    *,
    json_output: Optional[bool] = None,
    stream: Optional[IO[str]] = None,
) -> List[logging.Handler]:
    """
    Install console (and, with ``EVOLVR_LOG_TO_FILE``, file) handlers on the
    ``evolvr`` logger. Calling it again while installed is a no-op.

    Examples
    --------
    >>> setup_logging()                      # level/format from Config
    >>> setup_logging("DEBUG", json_output=True, stream=buffer)
    """
    from evolvr.core.config.config import Config

    if _installed_handlers:
        return list(_installed_handlers)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    resolved = _resolve_level(level)
    target = stream if stream is not None else sys.stdout

    console = logging.StreamHandler(target)
    console.setFormatter(_console_formatter(json_output, target))
    handlers: List[logging.Handler] = [console]
    if Config.LOG_TO_FILE:
        handlers.append(_file_handler())

    for handler in handlers:
        handler.setLevel(resolved)
        handler.addFilter(ContextFilter())
        root.addHandler(handler)
    root.setLevel(resolved)
    root.propagate = False
    _installed_handlers.extend(handlers)

    root.info(
        "Logging initialized",
        extra={
            "log_level": logging.getLevelName(resolved),
            "environment": Config.ENVIRONMENT,
            "file_sink": Config.LOG_TO_FILE,
        },
    )
    return list(handlers)


def shutdown_logging() -> None:
    """Flush and remove the handlers installed by `setup_logging()`."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True


def is_logging_configured() -> bool:
    return bool(_installed_handlers)


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind operation context to every log record emitted inside the block.

    Usage
    -----
    >>> async with LogContext(user_id="u1", task_id="t9", operation="complete_task"):
    ...     await coordinator.complete_task("u1", "t9", TaskKind.ROUTINE)
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        task_id: Optional[str] = None,
        task_kind: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        parent = _request_context.get({})
        effective = (
            correlation_id
            or parent.get("correlation_id")
            or self._generate_correlation_id()
        )

        self.context: Dict[str, Any] = {
            **parent,
            "user_id": str(user_id) if user_id is not None else parent.get("user_id", "N/A"),
            "task_id": task_id or parent.get("task_id", "N/A"),
            "task_kind": task_kind or parent.get("task_kind", "N/A"),
            "component": component or parent.get("component"),
            "operation": operation or parent.get("operation"),
            "correlation_id": effective,
            **extra,
        }

        self._token: Optional[Token[Dict[str, Any]]] = None

    @staticmethod
    def _generate_correlation_id() -> str:
        return str(uuid.uuid4())[:8]

    def __enter__(self) -> "LogContext":
        self._token = _request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_context.reset(self._token)

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def get_log_context() -> Dict[str, Any]:
    return dict(_request_context.get({}))


def set_log_context(
    user_id: Optional[str] = None,
    task_id: Optional[str] = None,
    task_kind: Optional[str] = None,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    correlation_id: Optional[str] = None,
    **extra: Any,
) -> None:
    current = _request_context.get({}).copy()

    if user_id is not None:
        current["user_id"] = str(user_id)
    if task_id is not None:
        current["task_id"] = task_id
    if task_kind is not None:
        current["task_kind"] = task_kind
    if component is not None:
        current["component"] = component
    if operation is not None:
        current["operation"] = operation
    if correlation_id:
        current["correlation_id"] = correlation_id

    current.update(extra)
    _request_context.set(current)


def clear_log_context() -> None:
    _request_context.set({})

"""
Centralized logging configuration for the relationship assessment application.

Everything logs under the ``rpi_assessment`` logger. Records can carry the
device, license key, assessment mode and operation they belong to; the context
lives in a ``ContextVar`` so concurrent requests on the server threadpool do
not see each other's values.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
import time
from collections.abc import Callable
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from types import TracebackType
from typing import Any, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

ROOT_LOGGER = "rpi_assessment"
CONTEXT_FIELDS = ("device_id", "license_key", "mode", "request_id", "operation")

# Third-party loggers that only get through at WARNING
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "uvicorn.access")

_context: ContextVar[dict[str, Any]] = ContextVar("rpi_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, with any context fields attached to the record."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            {name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)}
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, ensure_ascii=False, default=str)


class ContextFilter(logging.Filter):
    """Copies the current logging context onto every record that passes through."""

    @property
    def context(self) -> dict[str, Any]:
        return dict(_context.get())

    def set_context(self, **kwargs: Any) -> None:
        _context.set({**_context.get(), **kwargs})

    def clear_context(self) -> None:
        _context.set({})

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context.get().items():
            setattr(record, key, value)
        return True


context_filter = ContextFilter()


def _console_handler(level: str, structured: bool) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": "structured" if structured else "plain",
        "filters": ["context"],
        "stream": "ext://sys.stdout",
    }


def _file_handler(level: str, log_file: str) -> dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "structured",
        "filters": ["context"],
        "filename": log_file,
        "maxBytes": 10 * 1024 * 1024,
        "backupCount": 5,
        "encoding": "utf-8",
    }


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    structured: bool = True,
    enable_console: bool = True,
) -> None:
    """
    Configure the application and third-party loggers.

    Files always get JSON lines; the console gets JSON or a plain one-line
    format depending on ``structured``.

    Example:
        >>> setup_logging(level="DEBUG", log_file="./logs/app.log", structured=False)
    """
    handlers: dict[str, dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = _console_handler(level, structured)
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = _file_handler(level, log_file)
    names = list(handlers)

    loggers: dict[str, dict[str, Any]] = {
        ROOT_LOGGER: {"level": level, "handlers": names, "propagate": False},
    }
    for noisy in QUIET_LOGGERS:
        loggers[noisy] = {"level": "WARNING", "handlers": names, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": StructuredFormatter},
                "plain": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "filters": {"context": {"()": lambda: context_filter}},
            "handlers": handlers,
            "loggers": loggers,
            "root": {"level": level, "handlers": names},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger namespaced under the application root logger.

    Example:
        >>> get_logger("licensing").name
        'rpi_assessment.licensing'
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def set_context(**kwargs: Any) -> None:
    """
    Add fields to the logging context until ``clear_context`` is called.

    Example:
        >>> set_context(device_id="DEV-1A2B3C4D")
    """
    context_filter.set_context(**kwargs)


def clear_context() -> None:
    context_filter.clear_context()


class LogContext:
    """Adds context fields for the duration of a ``with`` block."""

    def __init__(self, **kwargs: Any):
        self.fields = kwargs
        self._token: Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = _context.set({**_context.get(), **self.fields})
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


def _timed(
    operation: str,
    logger: logging.Logger,
    level: int,
    failure_level: int,
    func: Callable[P, R],
    *args: P.args,
    **kwargs: P.kwargs,
) -> R:
    logger.log(level, "Starting %s", operation)
    start = time.perf_counter()
    try:
        result = func(*args, **kwargs)
    except Exception as e:
        logger.log(
            failure_level,
            "Failed %s after %.3fs: %s",
            operation,
            time.perf_counter() - start,
            e,
            exc_info=failure_level >= logging.ERROR,
        )
        raise
    logger.log(level, "Completed %s in %.3fs", operation, time.perf_counter() - start)
    return result


def log_operation(
    operation: str, logger: logging.Logger | None = None
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log start, completion and failure of a business operation at INFO/ERROR.

    Example:
        >>> @log_operation("generate_batch")
        ... def generate(count: int):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            func_logger = logger or get_logger(func.__module__)
            with LogContext(operation=operation):
                return _timed(
                    operation, func_logger, logging.INFO, logging.ERROR, func, *args, **kwargs
                )

        return wrapper

    return decorator


def log_store_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log a blob store call at DEBUG, and its failure at WARNING.

    Example:
        >>> @log_store_operation("file.put")
        ... def put(name: str, content: str):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with LogContext(operation=f"store_{operation}"):
                return _timed(
                    operation, get_logger("store"), logging.DEBUG, logging.WARNING,
                    func, *args, **kwargs,
                )

        return wrapper

    return decorator


ENVIRONMENT_PRESETS: dict[str, dict[str, Any]] = {
    "development": {
        "level": "DEBUG",
        "log_file": "./logs/development.log",
        "structured": False,
        "enable_console": True,
    },
    "production": {
        "level": "INFO",
        "log_file": "./logs/production.log",
        "structured": True,
        "enable_console": False,
    },
    "test": {"level": "WARNING", "log_file": None, "structured": False, "enable_console": False},
}


def configure_environment_logging(env: str | None = None) -> str:
    """Apply the preset for ``env`` (default: ``$ENVIRONMENT``, else development)."""
    env = (env or os.getenv("ENVIRONMENT", "development")).lower()
    if env not in ENVIRONMENT_PRESETS:
        env = "development"
    setup_logging(**ENVIRONMENT_PRESETS[env])
    get_logger(__name__).info("Logging configured for %s environment", env)
    return env


if not logging.getLogger().handlers:
    configure_environment_logging()

"""Logging abstraction layer for yeelight-lan.

Provides dual-format logging (JSON + human-readable) with correlation tracking
and structured context. Context bound to a logger (typically the device id and
address of a session) is merged into every record it emits, so each line can
be traced back to one bulb.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from typing_extensions import override

from yeelight_lan.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "YeelightLogger",
    "get_logger",
]

_LEVEL_NAMES: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_loggers: dict[str, YeelightLogger] = {}


def _record_context(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return dict(cast("Mapping[str, object]", extra_data))
    return {}


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record.

    ``device_id`` is lifted out of the context to the top level so log
    pipelines can index by bulb.
    """

    @override
    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        if "device_id" in context:
            log_data["device_id"] = context.pop("device_id")
        if context:
            log_data["context"] = context
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter for terminals: correlation id, then the remaining context as ``key=value`` pairs."""

    def __init__(self) -> None:
        # timestamp level [module:line] [correlation] > message
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id}]" if correlation_id else "[-]"

        formatted = super().format(record)
        context = _record_context(record)
        if not context:
            return formatted
        return f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context.items())


def _build_handlers(log_format: str, json_file: str | Path | None, human_output: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if log_format in ("json", "both") and json_file:
        try:
            json_path = Path(json_file)
            json_path.parent.mkdir(parents=True, exist_ok=True)
            json_handler = logging.FileHandler(json_path, mode="a")
        except OSError as e:
            print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
        else:
            json_handler.setFormatter(JSONFormatter())
            handlers.append(json_handler)

    if log_format in ("human", "both"):
        human_handler: logging.Handler
        match human_output or "stdout":
            case "stdout":
                human_handler = logging.StreamHandler(sys.stdout)
            case "stderr":
                human_handler = logging.StreamHandler(sys.stderr)
            case path:
                try:
                    Path(path).parent.mkdir(parents=True, exist_ok=True)
                    human_handler = logging.FileHandler(path, mode="a")
                except OSError as e:
                    print(f"Warning: Failed to create human log file {path}: {e}", file=sys.stderr)
                    human_handler = logging.StreamHandler(sys.stdout)
        human_handler.setFormatter(HumanReadableFormatter())
        handlers.append(human_handler)

    return handlers


class YeelightLogger:
    """Structured logger over a stdlib logger.

    Every method takes an optional ``extra`` mapping that is merged over the
    logger's bound context. ``bind`` returns a child sharing the same stdlib
    logger with more context attached.
    """

    def __init__(self, logger: logging.Logger, context: Mapping[str, object] | None = None) -> None:
        self.logger: logging.Logger = logger
        self.context: dict[str, object] = dict(context or {})

    @property
    def name(self) -> str:
        return self.logger.name

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers

    def bind(self, **context: object) -> YeelightLogger:
        """Child logger whose records always carry ``context``."""
        return YeelightLogger(self.logger, {**self.context, **context})

    def _payload(self, extra: Mapping[str, object] | None) -> dict[str, object] | None:
        merged = {**self.context, **extra} if extra else self.context
        return {"extra_data": dict(merged)} if merged else None

    def log(self, level: int | str, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at a numeric or named level ("debug", "info", ...)."""
        if isinstance(level, str):
            level = _LEVEL_NAMES.get(level.casefold(), logging.INFO)
        # stacklevel points module:line at the caller, not this wrapper
        self.logger.log(level, msg, *args, extra=self._payload(extra), stacklevel=2)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.logger.debug(msg, *args, extra=self._payload(extra), stacklevel=2)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.logger.info(msg, *args, extra=self._payload(extra), stacklevel=2)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.logger.warning(msg, *args, extra=self._payload(extra), stacklevel=2)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.logger.error(msg, *args, extra=self._payload(extra), stacklevel=2)

    def critical(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.logger.critical(msg, *args, extra=self._payload(extra), stacklevel=2)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        self.logger.exception(msg, *args, extra=self._payload(extra), stacklevel=2)

    def set_level(self, level: int) -> None:
        """Set logging level on the logger and its handlers."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> YeelightLogger:
    """Get the YeelightLogger for ``name``, configuring its handlers on first use.

    Args:
        name: Logger name (typically ``__name__``)
        log_format: "json", "human" or "both" (default: YEELIGHT_LOG_FORMAT)
        json_file: JSON output file (default: YEELIGHT_LOG_JSON_FILE)
        human_output: "stdout", "stderr" or a file path (default: YEELIGHT_LOG_HUMAN_OUTPUT)

    """
    if name in _loggers:
        return _loggers[name]

    from yeelight_lan.const import (
        YEELIGHT_DEBUG,
        YEELIGHT_LOG_FORMAT,
        YEELIGHT_LOG_HUMAN_OUTPUT,
        YEELIGHT_LOG_JSON_FILE,
    )

    stdlib_logger = logging.getLogger(name)
    level = logging.DEBUG if YEELIGHT_DEBUG else logging.INFO
    stdlib_logger.setLevel(level)
    # loggers are process-wide; never stack a second set of handlers
    if not stdlib_logger.handlers:
        for handler in _build_handlers(
            log_format or YEELIGHT_LOG_FORMAT,
            json_file or YEELIGHT_LOG_JSON_FILE,
            human_output or YEELIGHT_LOG_HUMAN_OUTPUT,
        ):
            handler.setLevel(level)
            stdlib_logger.addHandler(handler)

    logger = _loggers[name] = YeelightLogger(stdlib_logger)
    return logger

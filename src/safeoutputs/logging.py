"""Structured JSON logging for SafeOutputs.

Message text frequently echoes agent-controlled content (titles, types,
repository names), so everything emitted here passes through
``neutralize_workflow_commands`` first.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any

# CI runners interpret lines beginning with "::" as workflow commands.
_RE_WORKFLOW_COMMAND = re.compile(r"^::", re.MULTILINE)


def neutralize_workflow_commands(text: Any) -> Any:
    """Break ``::command::`` syntax at the start of any line.

    Non-string values are returned unchanged.
    """
    if not isinstance(text, str):
        return text
    return _RE_WORKFLOW_COMMAND.sub(": :", text)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in (
            "operation",
            "message_index",
            "message_type",
            "temporary_id",
            "repo",
            "duration_ms",
            "error",
        ):
            if hasattr(record, attr):
                entry[attr] = getattr(record, attr)
        reserved = set(entry.keys()) | {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "lineno",
        }
        for k, v in record.__dict__.items():
            if k not in reserved and not k.startswith("_") and k not in entry:
                entry[k] = v
        return json.dumps(entry, default=str)


class StructuredLogger:
    def __init__(
        self, name: str = "safeoutputs", json_logging: bool = False, level: str = "INFO"
    ) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if json_logging
            else logging.Formatter("%(asctime)s %(levelname)s %(message)s")
        )
        self._logger.addHandler(handler)
        self._logger.propagate = False
        self._dedupe_enabled = json_logging
        self._last_signature: tuple[int, str, tuple[tuple[str, str], ...]] | None = None

    @property
    def name(self) -> str:
        return self._logger.name

    def _emit(self, level: int, message: str, extra: dict[str, Any]) -> None:
        message = neutralize_workflow_commands(message)
        if self._dedupe_enabled:
            signature = (
                level,
                message,
                tuple(sorted((k, repr(v)) for k, v in extra.items())),
            )
            if signature == self._last_signature:
                return
            self._last_signature = signature
        self._logger.log(level, message, extra=extra)

    def log_message_outcome(
        self,
        index: int,
        message_type: str,
        success: bool,
        error: str | None = None,
        **kw: Any,
    ) -> None:
        extra: dict[str, Any] = {
            "operation": "message_processed",
            "message_index": index,
            "message_type": message_type,
            "success": success,
            **kw,
        }
        if error:
            extra["error"] = error
        status = "ok" if success else f"failed: {error}"
        level = logging.INFO if success else logging.WARNING
        self._emit(level, f"message {index} ({message_type}) {status}", extra)

    def log_performance(self, operation: str, duration_ms: float, **kw: Any) -> None:
        extra = {"operation": operation, "duration_ms": round(duration_ms, 2), **kw}
        self._emit(
            logging.INFO,
            f"Performance: {operation} completed in {duration_ms:.2f}ms",
            extra,
        )

    def log_error(self, message: str, error: str | None = None, **kw: Any) -> None:
        extra = dict(kw)
        if error:
            extra["error"] = error
        self._emit(logging.ERROR, message, extra)

    def debug(self, message: str, **kw: Any) -> None:
        self._emit(logging.DEBUG, message, kw)

    def info(self, message: str, **kw: Any) -> None:
        self._emit(logging.INFO, message, kw)

    def warning(self, message: str, **kw: Any) -> None:
        self._emit(logging.WARNING, message, kw)

    def error(self, message: str, **kw: Any) -> None:  # noqa: D401
        self._emit(logging.ERROR, message, kw)


_GLOBAL: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    if _GLOBAL is None:
        _GLOBAL = StructuredLogger()
    return _GLOBAL


def configure_logging(json_logging: bool = False, level: str = "INFO") -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    _GLOBAL = StructuredLogger(json_logging=json_logging, level=level)
    return _GLOBAL


__all__ = [
    "JSONFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "neutralize_workflow_commands",
]

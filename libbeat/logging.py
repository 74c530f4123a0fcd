from __future__ import annotations

import json
import logging
import logging.handlers
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SENSITIVE_KEYS = {
    "api_key",
    "authorization",
    "password",
    "secret",
    "token",
}

_RESERVED_ATTRS = {
    "msg",
    "args",
    "name",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "taskName",
}

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "info"
    format: Literal["json", "text"] = "json"
    to_files: bool = False
    path: str = "~/.collectbeat/logs"
    name: str = "collectbeat.log"
    rotate_every_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    keep_files: int = Field(default=7, ge=1, le=1024)

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if cleaned not in _LEVELS:
            raise ValueError(f"unknown log level {value!r}; expected one of {sorted(_LEVELS)}")
        return cleaned


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED_ATTRS:
                continue
            lowered = key.lower()
            if any(secret in lowered for secret in _SENSITIVE_KEYS):
                payload[key] = "[REDACTED]"
            else:
                payload[key] = value
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def _build_formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JsonFormatter()
    return logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")


def configure_logging(
    settings: LoggingSettings | None = None,
    *,
    verbose: bool = False,
    to_stderr: bool = False,
) -> logging.Handler:
    settings = settings or LoggingSettings()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    level = logging.DEBUG if verbose else _LEVELS[settings.level]
    fmt = os.getenv("COLLECTBEAT_LOG_FORMAT", settings.format).lower()

    handler: logging.Handler
    if settings.to_files and not to_stderr:
        directory = Path(settings.path).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            directory / settings.name,
            maxBytes=settings.rotate_every_bytes,
            backupCount=settings.keep_files - 1,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(_build_formatter(fmt))
    root.setLevel(level)
    root.addHandler(handler)
    return handler

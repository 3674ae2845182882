"""Logging configuration.

Loggers are named ``promptteams.<area>``. With ``log_format="json"`` every
record is emitted as one JSON line; structured fields passed through
``extra={"event": {...}}`` are redacted with :func:`safe_log_json` first.
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Optional

from promptteams.core.secrets import redact_text, safe_log_json
from promptteams.core.settings import Settings

ROOT_LOGGER = "promptteams"

_HANDLER_NAME = "promptteams-handler"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, metadata only, never prompt bodies."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.datetime.fromtimestamp(
                record.created, tz=datetime.timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_text(record.getMessage()),
        }
        event = getattr(record, "event", None)
        if isinstance(event, dict):
            payload.update(safe_log_json(event))
        if record.exc_info:
            payload["exc"] = redact_text(self.formatException(record.exc_info))
        return json.dumps(payload, separators=(",", ":"), default=str)


class TextFormatter(logging.Formatter):
    """``asctime name message key=value ...`` with redaction applied."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = redact_text(super().format(record))
        event = getattr(record, "event", None)
        if isinstance(event, dict):
            pairs = " ".join(f"{k}={v}" for k, v in safe_log_json(event).items())
            line = f"{line} {pairs}"
        return line


def configure_logging(settings: Settings, stream: Optional[object] = None) -> logging.Logger:
    """Install a single handler on the ``promptteams`` logger.

    Idempotent: calling again replaces the previously installed handler.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)  # type: ignore[arg-type]
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JsonFormatter() if settings.log_format == "json" else TextFormatter())
    logger.addHandler(handler)
    logger.setLevel(settings.log_level.upper())
    return logger

"""Logging setup for the offline store.

Modules log through ``logging.getLogger(__name__)``; this module only wires
the root handler. Structured fields are passed with ``extra=`` and end up as
top-level keys of the JSON line.
"""

import json
import logging
import sys

_STANDARD_FIELDS = {
    "args",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


class StructuredJsonFormatter(logging.Formatter):
    """Emit log records as JSON with consistent fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self._extract_extra(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info
        try:
            return json.dumps(payload, default=str)
        except (TypeError, ValueError):
            return super().format(record)

    def _extract_extra(self, record: logging.LogRecord) -> dict[str, object]:
        extras: dict[str, object] = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_") or value is None:
                continue
            extras[key] = value
        return extras


def configure_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG").
        json_output: Emit JSON lines when True, plain text otherwise.
    """
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(StructuredJsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

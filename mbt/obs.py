"""Structured events on top of the standard logging module."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

EVENT_LOGGER = "mbt.events"

_events = logging.getLogger(EVENT_LOGGER)


def emit(event: str, **fields: Any) -> None:
    if not _events.isEnabledFor(logging.INFO):
        return
    payload = {"event": event, **fields}
    _events.info(json.dumps(payload, default=str, ensure_ascii=False, sort_keys=True), extra={"mbt_event": payload})


class _JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = getattr(record, "mbt_event", None)
        if payload is None:
            payload = {"event": "log", "message": record.getMessage()}
        data = {"level": record.levelname.lower(), "logger": record.name, **payload}
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str, ensure_ascii=False)


def configure_logging(level: str = "warning", *, json_lines: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if json_lines:
        handler.setFormatter(_JsonLinesFormatter())
    else:
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    root = logging.getLogger("mbt")
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
    root.propagate = False


__all__ = ["EVENT_LOGGER", "configure_logging", "emit"]

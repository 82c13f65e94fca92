"""Logging helpers.

Every module logs through ``get_logger(__name__)`` and attaches structured
context with ``extra={"event": ..., ...}``. :class:`JsonFormatter` lifts those
extras into the emitted JSON object; the plain formatter appends them as
``key=value`` pairs.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

PACKAGE_LOGGER = "wxpub"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_PLAIN_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_PLAIN_DATEFMT = "%H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "google_genai", "markdown")


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS}


class JsonFormatter(logging.Formatter):
    """Render log records as compact JSON, one object per line."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03dZ"

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(_record_extras(record))

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        # Paths and enums in ``extra`` are rendered through str()
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=str)


class PlainFormatter(logging.Formatter):
    """Human-readable lines for ``--log-plain``."""

    def __init__(self) -> None:
        super().__init__(_PLAIN_FORMAT, _PLAIN_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _record_extras(record)
        if not extras:
            return line
        event = extras.pop("event", None)
        parts = [f"[{event}]"] if event else []
        parts.extend(f"{key}={value}" for key, value in extras.items())
        # tracebacks stay on the lines after the message
        head, sep, tail = line.partition("\n")
        return f"{head}  {' '.join(parts)}{sep}{tail}"


def _build_formatter(structured: bool) -> logging.Formatter:
    return JsonFormatter() if structured else PlainFormatter()


def configure_logging(
    *,
    verbose: bool = False,
    structured: bool | None = None,
) -> None:
    """Configure the ``wxpub`` logger hierarchy.

    Logs go to stderr; stdout is left to the batch report. ``verbose`` lowers
    the level to DEBUG for wxpub loggers only. When ``structured`` is ``None``
    an already configured formatter is kept, and a fresh handler gets JSON.
    """

    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if verbose else logging.INFO)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stderr))
        if structured is None:
            structured = True

    if structured is None:
        return
    formatter = _build_formatter(structured)
    for handler in root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "PACKAGE_LOGGER", "PlainFormatter", "configure_logging", "get_logger"]

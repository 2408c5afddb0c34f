from __future__ import annotations

import json
import logging
import sys

_HANDLER_NAME = "invmem-stderr"

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"


class _JSONFormatter(logging.Formatter):
    """One JSON object per line, with the traceback under ``exc``."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": record.created,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """Configure and return the root invmem logger.

    Safe to call repeatedly: each call applies *level* and *json_output*
    and rebinds the invmem stderr handler to the current ``sys.stderr``.
    Handlers installed by the host application are left alone.
    """
    logger = logging.getLogger("invmem")
    logger.setLevel(_resolve_level(level))

    for existing in list(logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    if json_output:
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))

    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the invmem namespace."""
    return logging.getLogger(f"invmem.{name}")

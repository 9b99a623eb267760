"""Logging setup for the ``chatsync`` logger tree."""

from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime
from typing import Any, Dict, Optional, TextIO

ROOT_LOGGER = "chatsync"

_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }
        extra = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS}
        if extra:
            log_data["extra"] = extra
        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_logging(
    level: str | int = "INFO",
    *,
    json_output: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Install a single stream handler on the ``chatsync`` logger.

    Calling it again replaces the handler instead of stacking another one.
    """

    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_chatsync_handler", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream)
    handler._chatsync_handler = True  # type: ignore[attr-defined]
    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.propagate = False
    return logger

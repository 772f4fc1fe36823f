from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any, MutableMapping, Optional



_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RESERVED = frozenset((
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "taskName", "thread", "threadName",
))

# Disabled sits above CRITICAL so nothing gets through.
_DISABLED = logging.CRITICAL + 10


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: MutableMapping[str, Any] = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for k, v in record.__dict__.items():
            if k not in _RESERVED:
                payload[k] = v

        return json.dumps(payload, ensure_ascii=False, default=str)


def level_for_verbosity(verbosity: int) -> int:
    """Map the 0..7 verbosity knob onto logging levels.

    0 silences everything, 1-2 only let critical failures through, 3 errors,
    4 warnings, 5 info and 6 or more debug.
    """

    if verbosity <= 0:
        return _DISABLED
    if verbosity <= 2:
        return logging.CRITICAL
    if verbosity == 3:
        return logging.ERROR
    if verbosity == 4:
        return logging.WARNING
    if verbosity == 5:
        return logging.INFO
    return logging.DEBUG


def init_logging(level: str = "INFO", *, verbosity: Optional[int] = None) -> None:
    root = logging.getLogger()

    # Idempotent: clear existing handlers to avoid duplication
    for h in list(root.handlers):
        root.removeHandler(h)

    if verbosity is not None:
        root.setLevel(level_for_verbosity(verbosity))
    else:
        root.setLevel(_LEVELS.get(level.upper(), logging.INFO))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name if name else __name__)

"""
Logging setup for the bot, the API and the CLI.

``LOG_FORMAT=text`` (default) writes one readable line per record,
``LOG_FORMAT=json`` one JSON object per line for log shippers.  Level
comes from ``LOG_LEVEL``.

Every record carries a correlation id: the API request id set by the
middleware, or the analysis id opened by ``analysis_context`` for bot and
CLI runs, so all lines of one analysis can be grepped together.
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from config import LOG_FORMAT, LOG_LEVEL

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(request_id)s) %(message)s"

# Third-party loggers that log every HTTP request / poll at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "telegram", "apscheduler")


def generate_request_id() -> str:
    """Short random id for one request or analysis."""
    return uuid.uuid4().hex[:12]


@contextmanager
def analysis_context() -> Iterator[str]:
    """Tag the enclosed log records with a fresh analysis id.

    An id already set by the caller (an API request) is kept as is.
    """
    current = request_id_ctx.get()
    if current != "-":
        yield current
        return
    analysis_id = generate_request_id()
    token = request_id_ctx.set(analysis_id)
    try:
        yield analysis_id
    finally:
        request_id_ctx.reset(token)


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get("-")  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": request_id_ctx.get("-"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json_mod.dumps(entry, default=str)


def setup_logging() -> None:
    """Replace the root handlers with one stdout handler per env settings."""
    handler = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, defaults={"request_id": "-"}))
    handler.addFilter(_RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

"""Logging setup: UTC timestamps, request ids on every line, rotating files."""
from __future__ import annotations

import contextvars
import logging
import logging.handlers
import os
import time

from spendsort.core.config import settings

LOG_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | rid=%(request_id)s | %(message)s"
IMPORT_LOGGER_NAME = "spendsort.imports"

# Set by RequestContextMiddleware for the lifetime of one request.
request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamp each record with the id of the request that produced it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        return True


def _rotating_file(filename: str, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(settings.LOG_DIR, filename),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    return handler


def setup_logging() -> None:
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    os.makedirs(settings.LOG_DIR, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    formatter.converter = time.gmtime

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.addFilter(RequestIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [_rotating_file("app.log", formatter), console]

    # Batch activity also lands in its own file; records still reach app.log.
    import_logger = logging.getLogger(IMPORT_LOGGER_NAME)
    import_logger.setLevel(log_level)
    import_logger.handlers = [_rotating_file("imports.log", formatter)]
    import_logger.propagate = True

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(log_level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)


__all__ = ["IMPORT_LOGGER_NAME", "RequestIdFilter", "request_id_ctx", "setup_logging"]

"""Process-wide logging: stdout plus an optional watched log file, tagged with the request id."""

import logging
import os
import sys
from contextvars import ContextVar
from logging.handlers import WatchedFileHandler
from typing import Optional

LOG_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)-5s] [%(name)-20s] [%(request_id)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that only matter when something is wrong
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")

# Set per request by the HTTP middleware; "-" outside a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


def _handler_exists(
    logger: logging.Logger, handler_type: type, *, filename: Optional[str] = None
) -> bool:
    for handler in logger.handlers:
        if type(handler) is not handler_type:
            continue
        if filename is None or getattr(handler, "baseFilename", None) == filename:
            return True
    return False


def _build_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(RequestIdFilter())
    return handler


def configure_logging(*, environment: str, log_level: str, log_path: str = "") -> int:
    """
    Install the root handlers once; safe to call again (e.g. from scripts).

    Returns the numeric level that was applied.
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    if not _handler_exists(root, logging.StreamHandler):
        root.addHandler(_build_handler(logging.StreamHandler(sys.stdout), level))

    log_path = (log_path or "").strip()
    if log_path:
        target = os.path.abspath(log_path)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            if not _handler_exists(root, WatchedFileHandler, filename=target):
                root.addHandler(_build_handler(WatchedFileHandler(target), level))
        except OSError as exc:
            root.warning("Could not open log file %s: %s", target, exc)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # uvicorn logs through our root handlers
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
        uv_logger.setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    # SQL echo only when debugging outside production
    sql_level = logging.INFO if environment != "production" and level <= logging.DEBUG else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sql_level)

    return level

"""Centralized logging setup."""

import logging
import os
import sys
from contextvars import ContextVar
from logging.handlers import WatchedFileHandler
from typing import Optional


request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)-5s] [%(name)-20s] [%(request_id)s] %(message)s"


class RequestIdFilter(logging.Filter):
    """Stamps every record with the id of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


def _handler_exists(
    logger: logging.Logger, handler_type: type, *, filename: Optional[str] = None
) -> bool:
    for handler in logger.handlers:
        if isinstance(handler, handler_type):
            if filename is None:
                return True
            if getattr(handler, "baseFilename", None) == filename:
                return True
    return False


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)


def configure_logging(*, environment: str, log_level: str) -> int:
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(level)

    if not _handler_exists(logger, logging.StreamHandler):
        _attach(logger, logging.StreamHandler(sys.stdout), level)

    app_log_path = os.getenv("APP_LOG_PATH", "").strip()
    if app_log_path:
        try:
            log_dir = os.path.dirname(app_log_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            if not _handler_exists(logger, WatchedFileHandler, filename=app_log_path):
                _attach(logger, WatchedFileHandler(app_log_path), level)
        except OSError as exc:
            logger.warning(
                "Failed to configure APP_LOG_PATH logging for %s: %s",
                app_log_path,
                exc,
            )

    # Stripe's SDK logs every request body at INFO when its own logger is enabled
    for noisy in ("urllib3", "httpx", "httpcore", "stripe", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
        uv_logger.setLevel(level)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.info("Logging configured | environment=%s | level=%s", environment, logging.getLevelName(level))
    return level

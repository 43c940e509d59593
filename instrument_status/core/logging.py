"""Loguru setup shared by the watcher and processor processes.

Both processes log to stdout and to a rotating file under ``LOG_DIR``.
ERROR records, which include every rejected broker message and every file
moved to the failed folder, can also be forwarded to a Slack webhook.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from instrument_status.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line} | {message}"
LOG_FILE_NAME = "instrument_status.log"

# Library loggers re-emitted through Loguru with their own name as component
INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "aio_pika", "aiormq", "alembic")

LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
KNOWN_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

_configured = False


class InterceptHandler(logging.Handler):
    """Forward stdlib records (aio-pika, alembic, uvicorn) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Any = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging-module frames so Loguru reports the library call site
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(name=record.name).log(level, record.getMessage())


def _post_to_slack(message: Any) -> None:
    record = message.record
    component = record["extra"].get("name", "instrument_status")
    text = f"[{record['level'].name}] {component}:{record['function']}:{record['line']}\n{record['message']}"
    try:
        httpx.post(settings.SLACK_WEBHOOK_URL, json={"text": text}, timeout=5.0)
    except httpx.HTTPError:
        # Logging here would feed the failure back into this sink
        pass


def resolve_level(raw: str | None, production: bool) -> str:
    """Normalize LOG_LEVEL; production never logs below INFO."""
    level = (raw or "INFO").strip().upper()
    level = LEVEL_ALIASES.get(level, level)
    if level not in KNOWN_LEVELS:
        return "INFO"
    if production and level in {"TRACE", "DEBUG"}:
        return "INFO"
    return level


def configure_logging() -> None:
    global _configured
    if _configured:
        return
    _configured = True

    level = resolve_level(settings.LOG_LEVEL, settings.is_production)
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"name": "instrument_status"})
    logger.add(sys.stdout, level=level, format=LOG_FORMAT, backtrace=False, diagnose=False)
    logger.add(
        log_dir / LOG_FILE_NAME,
        level=level,
        format=LOG_FORMAT,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )
    if settings.SLACK_WEBHOOK_URL:
        logger.add(_post_to_slack, level="ERROR", enqueue=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False


def get_logger(name: str) -> logger.__class__:
    """Logger bound to a component name shown in every record."""
    return logger.bind(name=name)


configure_logging()

from __future__ import annotations
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from ..config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Server loggers that should write through our handlers instead of their own
UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")


def resolve_level(level: Union[int, str, None]) -> int:
    """'debug' / 'INFO' / 20 -> logging level number; unknown names fall back to INFO."""
    if level is None:
        level = settings.LOG_LEVEL
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def _attach_library_loggers(handlers, level: int) -> None:
    for name in UVICORN_LOGGERS:
        lib = logging.getLogger(name)
        lib.handlers = list(handlers)
        lib.propagate = False
    # SQL statements are only wanted when the engine echoes them
    sql_level = logging.INFO if settings.SQLALCHEMY_ECHO else max(level, logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(sql_level)


def setup_logging(log_file: Optional[Path] = None, level: Union[int, str, None] = None) -> None:
    """Send sales-insights logs to the console and a rotating file under LOGS_DIR.

    Safe to call more than once; previous root handlers are replaced.
    """
    numeric = resolve_level(level)
    if log_file is None:
        log_file = settings.LOGS_DIR / "sales_insights.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT)
    file_handler = RotatingFileHandler(
        log_file, maxBytes=settings.LOG_MAX_BYTES, backupCount=settings.LOG_BACKUP_COUNT, encoding="utf-8"
    )
    stream_handler = logging.StreamHandler()
    for handler in (file_handler, stream_handler):
        handler.setLevel(numeric)
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(numeric)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)

    _attach_library_loggers(root.handlers, numeric)
    logging.getLogger("app").info(f"Logging at {logging.getLevelName(numeric)} to {log_file}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

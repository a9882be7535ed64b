"""Логирование бота напоминаний.

Уровень берётся из LOG_LEVEL, путь к файлу из LOG_FILE (файл с ротацией,
по умолчанию только stderr). Шумные логгеры HTTP-клиента, PTB и APScheduler
приглушаются до WARNING: каждое срабатывание job'а и так пишется в remindbot.*.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3
QUIET_LOGGERS = ("telegram", "telegram.ext", "apscheduler", "apscheduler.scheduler", "apscheduler.executors")
MUTED_LOGGERS = ("httpx", "httpcore")


def level_from_env(default: int = logging.INFO) -> int:
    name = (os.environ.get("LOG_LEVEL") or "").strip().upper()
    if not name:
        return default
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else default


def _stderr_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    return handler


def _file_handler(path: str, formatter: logging.Formatter) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(*, level: int | None = None, log_file: str | None = None) -> None:
    """Идемпотентно: повторный вызов заменяет обработчики корневого логгера."""
    resolved_level = level_from_env() if level is None else level
    target = log_file if log_file is not None else (os.environ.get("LOG_FILE") or "").strip()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers = [_stderr_handler(formatter)]
    file_error: OSError | None = None
    if target:
        try:
            handlers.append(_file_handler(target, formatter))
        except OSError as exc:
            file_error = exc

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(resolved_level)
    for handler in handlers:
        handler.setLevel(resolved_level)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name in MUTED_LOGGERS:
        muted = logging.getLogger(name)
        muted.disabled = True
        muted.propagate = False
    if file_error is not None:
        root.warning("Cannot open log file %s: %s; logging to stderr only", target, file_error)
    logging.getLogger(__name__).debug(
        "Logging configured: level=%s file=%s",
        logging.getLevelName(resolved_level),
        target or "-",
    )

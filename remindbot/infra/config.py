"""Конфигурация процесса из окружения (и .env через python-dotenv).

BOT_TOKEN               токен Bot API, обязателен вне DRY_RUN
BOT_DB_PATH             файл SQLite с напоминаниями и настройками
DEFAULT_TIMEZONE        пояс новых пользователей, по умолчанию Europe/Moscow
REMINDERS_ENABLED       0/false: бот работает, но job'ы при старте не восстанавливаются
REMINDER_MISFIRE_GRACE_SECONDS, INERTIA_DEFAULT_MINUTES, LIST_PAGE_SIZE
DRY_RUN                 собрать приложение и выйти, без polling
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

LOGGER = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data/reminders.db")
DEFAULT_TIMEZONE = "Europe/Moscow"
DRY_RUN_TOKEN = "000000:DRY_RUN_TOKEN"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    bot_token: str
    db_path: Path
    default_timezone: str
    reminders_enabled: bool
    misfire_grace_seconds: int
    inertia_default_minutes: int
    list_page_size: int
    dry_run: bool

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.default_timezone)


def load_settings() -> Settings:
    _load_dotenv()
    env = os.environ

    dry_run = _env_flag(env, "DRY_RUN", default=False)
    token = (env.get("BOT_TOKEN") or "").strip()
    if not token and not dry_run:
        raise RuntimeError("BOT_TOKEN is not set")

    db_path = Path(env.get("BOT_DB_PATH") or DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    return Settings(
        # В DRY_RUN настоящий токен не нужен, но Application.builder() требует непустую строку.
        bot_token=token or DRY_RUN_TOKEN,
        db_path=db_path,
        default_timezone=_env_timezone(env, "DEFAULT_TIMEZONE"),
        reminders_enabled=_env_flag(env, "REMINDERS_ENABLED", default=True),
        misfire_grace_seconds=_env_int(env, "REMINDER_MISFIRE_GRACE_SECONDS", 60),
        inertia_default_minutes=_env_int(env, "INERTIA_DEFAULT_MINUTES", 15),
        list_page_size=_env_int(env, "LIST_PAGE_SIZE", 10),
        dry_run=dry_run,
    )


def _load_dotenv() -> None:
    from dotenv import load_dotenv

    load_dotenv()


def _env_flag(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = (env.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in _TRUE_VALUES


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive")
    return value


def _env_timezone(env: Mapping[str, str], name: str) -> str:
    raw = (env.get(name) or "").strip() or DEFAULT_TIMEZONE
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning("Invalid %s=%s, using %s", name, raw, DEFAULT_TIMEZONE)
        return DEFAULT_TIMEZONE
    return raw

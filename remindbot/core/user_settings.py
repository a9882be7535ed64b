from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Moscow"
DEFAULT_MORNING_TIME = "08:00"
DEFAULT_EVENING_TIME = "18:00"
DEFAULT_AUTO_POSTPONE_MINUTES = 15
DEFAULT_POSTPONE_OPTIONS: tuple[str, ...] = ("30m", "1h", "3h", "am", "pm", "custom")


@dataclass(frozen=True)
class UserSettings:
    user_id: int
    timezone: str = DEFAULT_TIMEZONE
    morning_time: str = DEFAULT_MORNING_TIME
    evening_time: str = DEFAULT_EVENING_TIME
    auto_postpone_minutes: int = DEFAULT_AUTO_POSTPONE_MINUTES
    postpone_options: tuple[str, ...] = DEFAULT_POSTPONE_OPTIONS

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def morning(self) -> time:
        return _parse_clock(self.morning_time, DEFAULT_MORNING_TIME)

    @property
    def evening(self) -> time:
        return _parse_clock(self.evening_time, DEFAULT_EVENING_TIME)


def default_settings(
    user_id: int,
    *,
    timezone: str | None = None,
    auto_postpone_minutes: int | None = None,
) -> UserSettings:
    return UserSettings(
        user_id=user_id,
        timezone=_coerce_timezone(timezone, DEFAULT_TIMEZONE),
        auto_postpone_minutes=_coerce_positive_int(auto_postpone_minutes, DEFAULT_AUTO_POSTPONE_MINUTES),
    )


def apply_settings_patch(settings: UserSettings, patch: dict[str, Any]) -> UserSettings:
    """Применить частичное обновление; некорректные значения молча заменяются прежними."""
    updated = settings
    if "timezone" in patch:
        updated = replace(updated, timezone=_coerce_timezone(patch.get("timezone"), updated.timezone))
    if "morning_time" in patch:
        updated = replace(updated, morning_time=_coerce_clock(patch.get("morning_time"), updated.morning_time))
    if "evening_time" in patch:
        updated = replace(updated, evening_time=_coerce_clock(patch.get("evening_time"), updated.evening_time))
    if "auto_postpone_minutes" in patch:
        minutes = _coerce_positive_int(patch.get("auto_postpone_minutes"), updated.auto_postpone_minutes)
        updated = replace(updated, auto_postpone_minutes=minutes)
    if "postpone_options" in patch:
        options = patch.get("postpone_options")
        if isinstance(options, (list, tuple)) and options:
            updated = replace(updated, postpone_options=tuple(str(item) for item in options))
    return updated


def _parse_clock(value: str, fallback: str) -> time:
    try:
        hours, minutes = value.split(":", 1)
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError):
        LOGGER.warning("Invalid clock value in settings: value=%r fallback=%s", value, fallback)
        hours, minutes = fallback.split(":", 1)
        return time(int(hours), int(minutes))


def _coerce_timezone(value: Any, fallback: str) -> str:
    if not isinstance(value, str) or not value.strip():
        return fallback
    try:
        ZoneInfo(value.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return fallback
    return value.strip()


def _coerce_clock(value: Any, fallback: str) -> str:
    if not isinstance(value, str):
        return fallback
    try:
        hours, minutes = value.strip().split(":", 1)
        parsed = time(int(hours), int(minutes))
    except ValueError:
        return fallback
    return parsed.strftime("%H:%M")


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback

"""Доменные типы напоминаний: Reminder, ParsedRequest, Action."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

_SPACES_RE = re.compile(r"\s+")


def normalize_description(text: str) -> str:
    """Ключ сравнения описаний: регистр, ё→е, схлопнутые пробелы."""
    lowered = (text or "").lower().replace("ё", "е")
    return _SPACES_RE.sub(" ", lowered).strip()


@dataclass(frozen=True)
class Action:
    """Кнопка под сообщением: id уходит в callback data (лимит Telegram 64 байта)."""

    id: str
    label: str
    payload: dict[str, Any] = field(default_factory=dict)


Keyboard = list[list[Action]]


@dataclass(frozen=True)
class ParsedRequest:
    description: str
    trigger_at: datetime
    time_spec: str
    repeat: str | None = None


@dataclass(frozen=True)
class Reminder:
    id: str
    user_id: int
    chat_id: int
    description: str
    trigger_at: datetime
    repeat: str | None = None
    completed: bool = False
    postponed_count: int = 0
    message_id: int | None = None
    inertia_message_id: int | None = None
    inertia_instance: str | None = None
    initial_message_edited: bool = False
    postpone_base_at: datetime | None = None
    last_notified_at: datetime | None = None
    created_at: datetime | None = None
    version: int = 0

    @property
    def description_key(self) -> str:
        return normalize_description(self.description)

    @property
    def is_recurring(self) -> bool:
        return self.repeat is not None


def live_message_ids(reminder: Reminder) -> tuple[int, ...]:
    """Сообщения напоминания, на которых ещё могут висеть кнопки."""
    ids = (reminder.message_id, reminder.inertia_message_id)
    return tuple(message_id for message_id in dict.fromkeys(ids) if message_id is not None)

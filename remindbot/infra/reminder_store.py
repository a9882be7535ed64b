"""SQLite-хранилище напоминаний. Версия строки защищает от гонок: save() пишет только поверх ожидаемой версии."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from remindbot.core.errors import ConcurrentUpdate, DuplicateReminder, ReminderNotFound
from remindbot.core.models import Reminder, normalize_description

LOGGER = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "user_id",
    "chat_id",
    "description",
    "description_key",
    "trigger_at",
    "repeat",
    "completed",
    "postponed_count",
    "message_id",
    "inertia_message_id",
    "inertia_instance",
    "initial_message_edited",
    "postpone_base_at",
    "last_notified_at",
    "created_at",
    "version",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM reminders"


class ReminderStore:
    def __init__(self, db_path: Path | str) -> None:
        self._db_path = db_path
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS reminders (
                id TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                chat_id INTEGER NOT NULL,
                description TEXT NOT NULL,
                description_key TEXT NOT NULL,
                trigger_at TEXT NOT NULL,
                repeat TEXT,
                completed INTEGER NOT NULL DEFAULT 0,
                postponed_count INTEGER NOT NULL DEFAULT 0,
                message_id INTEGER,
                inertia_message_id INTEGER,
                inertia_instance TEXT,
                initial_message_edited INTEGER NOT NULL DEFAULT 0,
                postpone_base_at TEXT,
                last_notified_at TEXT,
                created_at TEXT NOT NULL,
                version INTEGER NOT NULL
            )
            """
        )
        # Одно активное напоминание на (пользователь, описание).
        self._connection.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS reminders_active_description
            ON reminders (user_id, description_key) WHERE completed = 0
            """
        )
        self._connection.execute(
            "CREATE INDEX IF NOT EXISTS reminders_user_trigger ON reminders (user_id, trigger_at)"
        )
        self._connection.commit()

    def add(self, reminder: Reminder) -> Reminder:
        created_at = reminder.created_at or datetime.now(timezone.utc)
        stored = replace(reminder, created_at=created_at, version=1)
        try:
            self._connection.execute(
                f"INSERT INTO reminders ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' for _ in _COLUMNS)})",
                _to_row(stored),
            )
            self._connection.commit()
        except sqlite3.IntegrityError as exc:
            self._connection.rollback()
            raise DuplicateReminder(reminder.id) from exc
        LOGGER.info(
            "Reminder stored: reminder_id=%s user_id=%s trigger_at=%s repeat=%s",
            stored.id,
            stored.user_id,
            stored.trigger_at.isoformat(),
            stored.repeat,
        )
        return stored

    def get(self, reminder_id: str) -> Reminder | None:
        row = self._connection.execute(f"{_SELECT} WHERE id = ?", (reminder_id,)).fetchone()
        return _from_row(row) if row is not None else None

    def save(self, reminder: Reminder) -> Reminder:
        """Записать изменения поверх reminder.version; ConcurrentUpdate, если строку уже поменяли."""
        updated = replace(reminder, version=reminder.version + 1)
        values = _to_row(updated)
        assignments = ", ".join(f"{column} = ?" for column in _COLUMNS[1:])
        cursor = self._connection.execute(
            f"UPDATE reminders SET {assignments} WHERE id = ? AND version = ?",
            (*values[1:], reminder.id, reminder.version),
        )
        self._connection.commit()
        if cursor.rowcount == 0:
            if self.get(reminder.id) is None:
                raise ReminderNotFound(reminder.id)
            LOGGER.warning("Reminder write lost race: reminder_id=%s version=%s", reminder.id, reminder.version)
            raise ConcurrentUpdate(reminder.id)
        return updated

    def delete(self, reminder_id: str) -> Reminder | None:
        existing = self.get(reminder_id)
        if existing is None:
            return None
        self._connection.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
        self._connection.commit()
        return existing

    def delete_for_user(self, user_id: int) -> list[Reminder]:
        removed = self.list_for_user(user_id, include_completed=True)
        self._connection.execute("DELETE FROM reminders WHERE user_id = ?", (user_id,))
        self._connection.commit()
        return removed

    def list_for_user(self, user_id: int, *, include_completed: bool = False) -> list[Reminder]:
        query = f"{_SELECT} WHERE user_id = ?"
        if not include_completed:
            query += " AND completed = 0"
        rows = self._connection.execute(f"{query} ORDER BY trigger_at, created_at", (user_id,)).fetchall()
        return [_from_row(row) for row in rows]

    def list_active(self) -> list[Reminder]:
        rows = self._connection.execute(f"{_SELECT} WHERE completed = 0 ORDER BY trigger_at").fetchall()
        return [_from_row(row) for row in rows]

    def find_active_by_description(self, user_id: int, description: str) -> Reminder | None:
        row = self._connection.execute(
            f"{_SELECT} WHERE user_id = ? AND description_key = ? AND completed = 0",
            (user_id, normalize_description(description)),
        ).fetchone()
        return _from_row(row) if row is not None else None

    def close(self) -> None:
        try:
            self._connection.close()
        except sqlite3.Error:
            LOGGER.exception("Failed to close reminders database connection")


def _to_row(reminder: Reminder) -> tuple[object, ...]:
    return (
        reminder.id,
        reminder.user_id,
        reminder.chat_id,
        reminder.description,
        reminder.description_key,
        _dump_dt(reminder.trigger_at),
        reminder.repeat,
        int(reminder.completed),
        reminder.postponed_count,
        reminder.message_id,
        reminder.inertia_message_id,
        reminder.inertia_instance,
        int(reminder.initial_message_edited),
        _dump_dt(reminder.postpone_base_at),
        _dump_dt(reminder.last_notified_at),
        _dump_dt(reminder.created_at),
        reminder.version,
    )


def _from_row(row: sqlite3.Row) -> Reminder:
    return Reminder(
        id=row["id"],
        user_id=row["user_id"],
        chat_id=row["chat_id"],
        description=row["description"],
        trigger_at=_load_dt(row["trigger_at"]),
        repeat=row["repeat"],
        completed=bool(row["completed"]),
        postponed_count=row["postponed_count"],
        message_id=row["message_id"],
        inertia_message_id=row["inertia_message_id"],
        inertia_instance=row["inertia_instance"],
        initial_message_edited=bool(row["initial_message_edited"]),
        postpone_base_at=_load_dt(row["postpone_base_at"]),
        last_notified_at=_load_dt(row["last_notified_at"]),
        created_at=_load_dt(row["created_at"]),
        version=row["version"],
    )


def _dump_dt(value: datetime | None) -> str | None:
    # UTC в хранилище: лексикографический порядок строк совпадает с хронологическим
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _load_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)

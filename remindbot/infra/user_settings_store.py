from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from remindbot.core.user_settings import UserSettings, apply_settings_patch, default_settings

LOGGER = logging.getLogger(__name__)

SETTINGS_SCHEMA_VERSION = 1


class UserSettingsStore:
    def __init__(
        self,
        db_path: Path | str,
        *,
        default_timezone: str | None = None,
        default_auto_postpone_minutes: int | None = None,
    ) -> None:
        self._db_path = db_path
        self._default_timezone = default_timezone
        self._default_auto_postpone_minutes = default_auto_postpone_minutes
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS user_settings (
                user_id INTEGER PRIMARY KEY,
                schema_version INTEGER NOT NULL,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._connection.commit()

    def get(self, user_id: int) -> UserSettings:
        row = self._connection.execute(
            "SELECT payload, schema_version FROM user_settings WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        defaults = default_settings(
            user_id,
            timezone=self._default_timezone,
            auto_postpone_minutes=self._default_auto_postpone_minutes,
        )
        if row is None:
            return defaults
        if row["schema_version"] > SETTINGS_SCHEMA_VERSION:
            LOGGER.warning(
                "Settings schema version newer than expected: user_id=%s version=%s",
                user_id,
                row["schema_version"],
            )
        try:
            payload = json.loads(row["payload"])
        except (TypeError, json.JSONDecodeError):
            LOGGER.warning("Broken settings payload, using defaults: user_id=%s", user_id)
            return defaults
        if not isinstance(payload, dict):
            return defaults
        return apply_settings_patch(defaults, payload)

    def close(self) -> None:
        try:
            self._connection.close()
        except sqlite3.Error:
            LOGGER.exception("Failed to close settings database connection")

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Literal

from remindbot.core import texts, time_parser
from remindbot.core.dispatch import ReminderDispatchScheduler
from remindbot.core.errors import (
    ConcurrentUpdate,
    DuplicateReminder,
    InvalidPostponeTarget,
    ParseError,
    ReminderNotFound,
)
from remindbot.core.models import ParsedRequest, Reminder, live_message_ids
from remindbot.core.postpone_presets import resolve_postpone

LOGGER = logging.getLogger(__name__)

CreateStatus = Literal["created", "duplicate", "parse_error"]

_WRITE_ATTEMPTS = 2


@dataclass(frozen=True)
class CreateResult:
    status: CreateStatus
    reminder: Reminder | None = None
    error: ParseError | None = None


@dataclass(frozen=True)
class PostponeResult:
    reminder: Reminder
    label: str
    # Сообщения, у которых до переноса были живые кнопки.
    released_message_ids: tuple[int, ...] = ()

    @property
    def ack_text(self) -> str:
        return texts.postpone_ack(self.label)


class ReminderLifecycleManager:
    """Создание, удаление, перенос и завершение напоминаний. Хранилище и job'ы меняются вместе."""

    def __init__(
        self,
        *,
        store: Any,
        dispatch: ReminderDispatchScheduler,
        settings_store: Any,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._dispatch = dispatch
        self._settings_store = settings_store
        self._clock = clock

    def create(
        self,
        user_id: int,
        chat_id: int,
        request: str | ParsedRequest,
        *,
        now: datetime | None = None,
    ) -> CreateResult:
        settings = self._settings_store.get(user_id)
        if isinstance(request, str):
            parsed = time_parser.parse_reminder(request, now=now or self._now(settings.zone), settings=settings)
            if isinstance(parsed, ParseError):
                return CreateResult(status="parse_error", error=parsed)
        else:
            parsed = request
        if self._store.find_active_by_description(user_id, parsed.description) is not None:
            LOGGER.info("Reminder duplicate rejected: user_id=%s", user_id)
            return CreateResult(status="duplicate")
        reminder = Reminder(
            id=uuid.uuid4().hex[:12],
            user_id=user_id,
            chat_id=chat_id,
            description=parsed.description,
            trigger_at=parsed.trigger_at,
            repeat=parsed.repeat,
        )
        try:
            stored = self._store.add(reminder)
        except DuplicateReminder:
            return CreateResult(status="duplicate")
        self._dispatch.schedule(stored)
        return CreateResult(status="created", reminder=stored)

    def delete(self, reminder_id: str) -> Reminder:
        self._dispatch.cancel(reminder_id)
        removed = self._store.delete(reminder_id)
        if removed is None:
            raise ReminderNotFound(reminder_id)
        LOGGER.info("Reminder deleted: reminder_id=%s user_id=%s", reminder_id, removed.user_id)
        return removed

    def delete_all(self, user_id: int) -> int:
        removed = self._store.delete_for_user(user_id)
        for reminder in removed:
            self._dispatch.cancel(reminder.id)
        LOGGER.info("Reminders deleted: user_id=%s count=%s", user_id, len(removed))
        return len(removed)

    def list(self, user_id: int) -> list[Reminder]:
        return self._store.list_for_user(user_id)

    def get(self, reminder_id: str) -> Reminder | None:
        return self._store.get(reminder_id)

    def postpone(self, reminder_id: str, delay: str, *, now: datetime | None = None) -> PostponeResult:
        """Перенести на пресет («30m», «am») или на свободный текст («2 часа»)."""
        label = ""
        released: tuple[int, ...] = ()

        def _change(reminder: Reminder) -> Reminder:
            nonlocal label, released
            settings = self._settings_store.get(reminder.user_id)
            current = (now or self._now(settings.zone)).astimezone(settings.zone)
            resolved = resolve_postpone(delay, now=current, settings=settings)
            if resolved is None or resolved.trigger_at <= current:
                raise InvalidPostponeTarget(reminder_id)
            label = resolved.label
            released = live_message_ids(reminder)
            base = (reminder.postpone_base_at or reminder.trigger_at) if reminder.is_recurring else None
            return replace(
                reminder,
                trigger_at=resolved.trigger_at,
                postponed_count=reminder.postponed_count + 1,
                initial_message_edited=False,
                inertia_message_id=None,
                inertia_instance=None,
                postpone_base_at=base,
            )

        saved = self._mutate(reminder_id, _change)
        self._dispatch.schedule(saved)
        LOGGER.info(
            "Reminder postponed: reminder_id=%s trigger_at=%s count=%s",
            reminder_id,
            saved.trigger_at.isoformat(),
            saved.postponed_count,
        )
        return PostponeResult(reminder=saved, label=label, released_message_ids=released)

    def mark_done(self, reminder_id: str) -> Reminder:
        saved = self._mutate(
            reminder_id,
            lambda reminder: replace(reminder, completed=True, inertia_instance=None),
        )
        LOGGER.info("Reminder done: reminder_id=%s", reminder_id)
        return saved

    async def release_controls(self, reminder: Reminder, message_ids: tuple[int, ...] | list[int]) -> None:
        """Снять кнопки с сообщений напоминания после переноса или «Готово»."""
        await self._dispatch.release_controls(reminder, message_ids)

    def restore_all(self) -> int:
        restored = 0
        for reminder in self._store.list_active():
            try:
                if self._dispatch.restore(reminder) is not None:
                    restored += 1
            except Exception:
                LOGGER.exception("Failed to restore reminder: reminder_id=%s", reminder.id)
        LOGGER.info("Reminders restored: count=%s", restored)
        return restored

    def _mutate(self, reminder_id: str, change: Callable[[Reminder], Reminder]) -> Reminder:
        """Снять job'ы и записать изменение; при гонке с доставкой перечитать и повторить."""
        for attempt in range(1, _WRITE_ATTEMPTS + 1):
            reminder = self._store.get(reminder_id)
            if reminder is None or reminder.completed:
                raise ReminderNotFound(reminder_id)
            updated = change(reminder)
            self._dispatch.cancel(reminder_id)
            try:
                return self._store.save(updated)
            except ConcurrentUpdate:
                if attempt == _WRITE_ATTEMPTS:
                    raise
                LOGGER.info("Retrying reminder write: reminder_id=%s attempt=%s", reminder_id, attempt)
        raise ConcurrentUpdate(reminder_id)

    def _now(self, tz: Any) -> datetime:
        if self._clock is not None:
            return self._clock().astimezone(tz)
        return datetime.now(tz)

"""Доставка напоминаний и цикл инерции.

Состояния одноразового напоминания: запланировано → доставлено (цикл инерции)
→ отложено/выполнено. Пока пользователь не нажал кнопку, каждые
auto_postpone_minutes уходит новый «пинок», а кнопки снимаются с предыдущего:
активным остаётся одно сообщение. Повторяющиеся напоминания после каждой
доставки сдвигаются на следующее срабатывание.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable

from remindbot.core import texts
from remindbot.core.errors import ConcurrentUpdate, ReminderNotFound
from remindbot.core.job_registry import DELIVERY, INERTIA, JobKey, JobKind, JobRegistry
from remindbot.core.models import Reminder
from remindbot.core.postpone_presets import build_postpone_actions
from remindbot.core.recurrence import next_occurrence, to_scheduler_interval
from remindbot.core.user_settings import UserSettings

LOGGER = logging.getLogger(__name__)

# Повторное срабатывание того же job'а (at-least-once) не должно слать второе сообщение.
_EARLY_TOLERANCE = timedelta(seconds=5)

Clock = Callable[[], datetime]


class ReminderDispatchScheduler:
    def __init__(
        self,
        *,
        store: Any,
        messenger: Any,
        registry: JobRegistry,
        settings_store: Any,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._registry = registry
        self._settings_store = settings_store
        self._clock = clock
        registry.register_handler(DELIVERY, self._on_delivery_job)
        registry.register_handler(INERTIA, self._on_inertia_job)

    def schedule(self, reminder: Reminder) -> JobKey | None:
        """Поставить job доставки. Повторяющиеся без переноса идут периодическим job'ом."""
        if reminder.completed:
            return None
        key = JobKey(reminder.id, DELIVERY)
        if reminder.is_recurring and reminder.postpone_base_at is None:
            return self._registry.run_every(
                key,
                to_scheduler_interval(reminder.repeat or ""),
                start_at=reminder.trigger_at,
            )
        return self._registry.run_once(key, reminder.trigger_at)

    def restore(self, reminder: Reminder) -> JobKey | None:
        """Восстановить job'ы после рестарта: цикл инерции продолжается с того же места."""
        if reminder.completed:
            return None
        if not reminder.is_recurring and reminder.inertia_instance:
            settings = self._settings_for(reminder)
            key = JobKey(reminder.id, INERTIA, reminder.inertia_instance)
            now = self._now(settings)
            start_at = reminder.trigger_at if reminder.trigger_at > now else now
            return self._registry.run_every(key, f"{settings.auto_postpone_minutes} minutes", start_at=start_at)
        if reminder.is_recurring and reminder.trigger_at <= self._now(self._settings_for(reminder)):
            # Пропущенный за время простоя повтор доставляется один раз сразу; после доставки
            # _deliver_recurring ставит периодический job от следующего календарного срабатывания.
            LOGGER.info(
                "Missed recurring occurrence: reminder_id=%s missed_at=%s",
                reminder.id,
                reminder.trigger_at.isoformat(),
            )
            return self._registry.run_once(JobKey(reminder.id, DELIVERY), reminder.trigger_at)
        return self.schedule(reminder)

    def cancel(self, reminder_id: str, kind: JobKind | None = None, instance: str | None = None) -> int:
        return self._registry.cancel(reminder_id, kind, instance)

    async def release_controls(self, reminder: Reminder, message_ids: tuple[int, ...] | list[int]) -> None:
        for message_id in dict.fromkeys(message_ids):
            await self._strip_quietly(reminder, message_id)

    async def handle_delivery(self, reminder_id: str) -> None:
        reminder = self._store.get(reminder_id)
        if reminder is None or reminder.completed:
            removed = self._registry.cancel(reminder_id)
            LOGGER.info(
                "Delivery skipped: reminder_id=%s reason=%s jobs_removed=%s",
                reminder_id,
                "missing" if reminder is None else "completed",
                removed,
            )
            return
        settings = self._settings_for(reminder)
        fired_at = self._now(settings)
        if reminder.trigger_at > fired_at + _EARLY_TOLERANCE:
            LOGGER.info(
                "Delivery skipped: reminder_id=%s reason=not_due trigger_at=%s",
                reminder_id,
                reminder.trigger_at.isoformat(),
            )
            return
        if reminder.is_recurring:
            await self._deliver_recurring(reminder, settings, fired_at)
        else:
            await self._deliver_once(reminder, settings, fired_at)

    async def handle_inertia(self, reminder_id: str, instance: str) -> None:
        reminder = self._store.get(reminder_id)
        if (
            reminder is None
            or reminder.completed
            or reminder.is_recurring
            or reminder.inertia_instance != instance
        ):
            removed = self._registry.cancel(reminder_id, INERTIA, instance)
            LOGGER.info(
                "Inertia stopped: reminder_id=%s instance=%s jobs_removed=%s",
                reminder_id,
                instance,
                removed,
            )
            return
        settings = self._settings_for(reminder)
        now = self._now(settings)
        current = reminder
        if not current.initial_message_edited and current.message_id is not None:
            await self._edit_quietly(current, current.message_id, texts.postponed_marker_text(current))
            current = replace(current, initial_message_edited=True)
        elif current.inertia_message_id is not None:
            await self._strip_quietly(current, current.inertia_message_id)

        message_id: int | None = None
        try:
            message_id = await self._messenger.send(
                current.chat_id,
                texts.nudge_text(current),
                build_postpone_actions(current.id, settings.postpone_options),
            )
        finally:
            # Даже если отправка упала, время следующего пинка должно сдвинуться.
            current = replace(
                current,
                trigger_at=now + timedelta(minutes=settings.auto_postpone_minutes),
                inertia_message_id=message_id if message_id is not None else current.inertia_message_id,
                initial_message_edited=True,
                last_notified_at=now,
            )
            saved = self._save(current)
            if saved is None and message_id is not None:
                await self._strip_quietly(current, message_id)
        LOGGER.info("Inertia nudge sent: reminder_id=%s instance=%s message_id=%s", reminder_id, instance, message_id)

    async def _deliver_once(self, reminder: Reminder, settings: UserSettings, fired_at: datetime) -> None:
        delay = settings.auto_postpone_minutes
        instance = uuid.uuid4().hex[:8]
        self._registry.cancel(reminder.id, INERTIA)
        message_id: int | None = None
        try:
            message_id = await self._messenger.send(
                reminder.chat_id,
                texts.delivery_text(reminder, settings.zone),
                build_postpone_actions(reminder.id, settings.postpone_options),
            )
        finally:
            updated = replace(
                reminder,
                trigger_at=fired_at + timedelta(minutes=delay),
                message_id=message_id,
                inertia_message_id=None,
                inertia_instance=instance,
                initial_message_edited=False,
                last_notified_at=fired_at,
            )
            saved = self._save(updated)
            if saved is None:
                if message_id is not None:
                    await self._strip_quietly(updated, message_id)
            else:
                # Первый тик сразу после доставки пропускается: пинок через delay минут.
                self._registry.run_every(
                    JobKey(reminder.id, INERTIA, instance),
                    f"{delay} minutes",
                    start_at=fired_at,
                    skip_first=True,
                )
        LOGGER.info(
            "Reminder delivered: reminder_id=%s message_id=%s inertia_instance=%s delay_minutes=%s",
            reminder.id,
            message_id,
            instance,
            delay,
        )

    async def _deliver_recurring(self, reminder: Reminder, settings: UserSettings, fired_at: datetime) -> None:
        tz = settings.zone
        repeat = reminder.repeat or ""
        if reminder.postpone_base_at is not None:
            next_at = reminder.postpone_base_at
        else:
            next_at = next_occurrence(reminder.trigger_at, repeat, tz)
        while next_at <= fired_at:
            next_at = next_occurrence(next_at, repeat, tz)
        if reminder.message_id is not None:
            await self._strip_quietly(reminder, reminder.message_id)
        message_id: int | None = None
        try:
            message_id = await self._messenger.send(
                reminder.chat_id,
                texts.delivery_text(reminder, tz),
                build_postpone_actions(reminder.id, settings.postpone_options),
            )
        finally:
            updated = replace(
                reminder,
                trigger_at=next_at,
                message_id=message_id if message_id is not None else reminder.message_id,
                postpone_base_at=None,
                last_notified_at=fired_at,
            )
            saved = self._save(updated)
            if saved is not None and not self._registry.reanchor(JobKey(reminder.id, DELIVERY), next_at):
                self.schedule(saved)
        LOGGER.info(
            "Recurring reminder delivered: reminder_id=%s message_id=%s next_at=%s",
            reminder.id,
            message_id,
            next_at.isoformat(),
        )

    async def _on_delivery_job(self, key: JobKey) -> None:
        await self.handle_delivery(key.reminder_id)

    async def _on_inertia_job(self, key: JobKey) -> None:
        await self.handle_inertia(key.reminder_id, key.instance or "")

    def _save(self, reminder: Reminder) -> Reminder | None:
        try:
            return self._store.save(reminder)
        except (ConcurrentUpdate, ReminderNotFound) as exc:
            LOGGER.warning(
                "Dispatch state not saved: reminder_id=%s reason=%s",
                reminder.id,
                type(exc).__name__,
            )
            return None

    async def _strip_quietly(self, reminder: Reminder, message_id: int) -> None:
        try:
            await self._messenger.edit_controls(reminder.chat_id, message_id, None)
        except Exception:
            LOGGER.warning(
                "Failed to strip controls: reminder_id=%s message_id=%s",
                reminder.id,
                message_id,
                exc_info=True,
            )

    async def _edit_quietly(self, reminder: Reminder, message_id: int, text: str) -> None:
        try:
            await self._messenger.edit_text(reminder.chat_id, message_id, text, None)
        except Exception:
            LOGGER.warning(
                "Failed to edit delivered message: reminder_id=%s message_id=%s",
                reminder.id,
                message_id,
                exc_info=True,
            )

    def _settings_for(self, reminder: Reminder) -> UserSettings:
        return self._settings_store.get(reminder.user_id)

    def _now(self, settings: UserSettings) -> datetime:
        if self._clock is not None:
            return self._clock().astimezone(settings.zone)
        return datetime.now(settings.zone)

from __future__ import annotations

from datetime import datetime
from typing import Final
from zoneinfo import ZoneInfo

from remindbot.core import recurrence
from remindbot.core.errors import DuplicateReminder, InvalidPostponeTarget, ReminderNotFound
from remindbot.core.models import Reminder

DONE_CONFIRMATION: Final[str] = "Отмечено как выполненное."
DUPLICATE_TEXT: Final[str] = DuplicateReminder.user_message
NOT_FOUND_TEXT: Final[str] = ReminderNotFound.user_message
DELETED_TEXT: Final[str] = "Напоминание удалено."
DELETED_ALL_TEXT: Final[str] = "Все уведомления и связанные задачи удалены."
CUSTOM_POSTPONE_PROMPT: Final[str] = "Введите, на сколько отложить:"
POSTPONE_FAILED_TEXT: Final[str] = InvalidPostponeTarget.user_message
SERVER_ERROR_TEXT: Final[str] = "Ошибка на сервере. Попробуйте ещё раз."
START_TEXT: Final[str] = (
    "Привет! Напишите, о чём напомнить, например:\n"
    "• завтра в 10:15 уборка\n"
    "• через 2 часа позвонить маме\n"
    "• каждый день в 9 зарядка\n"
    "• каждый месяц 15 числа оплатить счета\n\n"
    "/list — список напоминаний, /deleteall — удалить все."
)


def format_clock(value: datetime, tz: ZoneInfo) -> str:
    return value.astimezone(tz).strftime("%H:%M")


def format_date(value: datetime, tz: ZoneInfo) -> str:
    local = value.astimezone(tz)
    return f"{local.day} {recurrence.MONTHS_GENITIVE[local.month - 1]} {local.year}"


def format_datetime(value: datetime, tz: ZoneInfo) -> str:
    return f"{format_clock(value, tz)}, {format_date(value, tz)}"


def delivery_text(reminder: Reminder, tz: ZoneInfo) -> str:
    if reminder.is_recurring:
        return f"📌 {reminder.description}\n🕒 {format_datetime(reminder.trigger_at, tz)}"
    return f"🔔 {reminder.description}\n🕒 {format_clock(reminder.trigger_at, tz)}"


def nudge_text(reminder: Reminder) -> str:
    return f"🔔 Напоминаю: {reminder.description}"


def postponed_marker_text(reminder: Reminder) -> str:
    return f"⏳ Отложено: {reminder.description}"


def confirmation_text(reminder: Reminder, tz: ZoneInfo) -> str:
    return (
        "Напоминание сохранено:\n"
        f"📌 {reminder.description}\n"
        f"🕒 {format_datetime(reminder.trigger_at, tz)}\n"
        f"🔁 Повтор: {recurrence.describe(reminder.repeat)}"
    )


def parse_error_text(message: str) -> str:
    return f"❌ Ошибка: {message}"


def postpone_ack(label: str) -> str:
    return f"Отложено на {label}"

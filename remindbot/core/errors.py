"""Ошибки разбора и жизненного цикла напоминаний."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal

ParseErrorKind = Literal[
    "InvalidRecurrenceUnit",
    "InvalidCalendarDate",
    "InvalidClockTime",
    "NonPositiveDuration",
    "AmbiguousConstruction",
    "PastTime",
    "UnrecognizedFormat",
]

# Порядок важен: при нескольких нарушениях пользователю показывается первое из списка.
PARSE_ERROR_PRIORITY: Final[tuple[ParseErrorKind, ...]] = (
    "InvalidRecurrenceUnit",
    "InvalidCalendarDate",
    "InvalidClockTime",
    "NonPositiveDuration",
    "AmbiguousConstruction",
    "PastTime",
    "UnrecognizedFormat",
)

PARSE_ERROR_MESSAGES: Final[dict[str, str]] = {
    "InvalidRecurrenceUnit": "Неподдерживаемый интервал повтора",
    "InvalidCalendarDate": "Некорректная дата",
    "InvalidClockTime": "Некорректное время",
    "NonPositiveDuration": "Продолжительность должна быть положительной",
    "AmbiguousConstruction": "Сложная временная конструкция",
    "PastTime": "Указанное время уже прошло",
    "UnrecognizedFormat": "Не удалось распознать формат",
}


@dataclass(frozen=True)
class ParseError:
    kind: ParseErrorKind
    detail: str | None = None

    @property
    def message(self) -> str:
        return self.detail or PARSE_ERROR_MESSAGES[self.kind]

    @property
    def priority(self) -> int:
        return PARSE_ERROR_PRIORITY.index(self.kind)


def most_relevant(errors: list[ParseError]) -> ParseError | None:
    if not errors:
        return None
    return min(errors, key=lambda error: error.priority)


class ReminderError(Exception):
    """Базовая ошибка операций над напоминаниями."""

    user_message = "Не удалось выполнить действие."

    def __init__(self, reminder_id: str | None = None, message: str | None = None) -> None:
        self.reminder_id = reminder_id
        super().__init__(message or self.user_message)


class DuplicateReminder(ReminderError):
    user_message = "⚠ Такое напоминание уже существует."


class ReminderNotFound(ReminderError):
    user_message = "Не найдено."


class InvalidPostponeTarget(ReminderError):
    user_message = "Не получилось отложить. Пример: «30 минут» или «2 часа»."


class ConcurrentUpdate(ReminderError):
    user_message = "Напоминание изменилось, попробуйте ещё раз."

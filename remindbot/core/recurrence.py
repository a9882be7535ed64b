"""Правила повтора: канонические фразы, следующее срабатывание, интервал для APScheduler.

Канонические фразы хранятся в напоминании как есть:
«каждый час», «каждое утро», «каждый вечер», «каждый день», «каждые N минут»,
«каждый месяц D числа», «каждый год D <месяца>».
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Literal
from zoneinfo import ZoneInfo

RepeatKind = Literal["hourly", "daily", "minutes", "monthly", "yearly"]
IntervalUnit = Literal["minute", "hour", "day", "month", "year"]

REPEAT_HOURLY = "каждый час"
REPEAT_MORNING = "каждое утро"
REPEAT_EVENING = "каждый вечер"
REPEAT_DAILY = "каждый день"

MONTHS_GENITIVE = (
    "января",
    "февраля",
    "марта",
    "апреля",
    "мая",
    "июня",
    "июля",
    "августа",
    "сентября",
    "октября",
    "ноября",
    "декабря",
)
MONTH_BY_NAME = {name: index for index, name in enumerate(MONTHS_GENITIVE, start=1)}

_MINUTES_RE = re.compile(r"^каждые (\d+) минут$")
_MONTHLY_RE = re.compile(r"^каждый месяц (\d{1,2}) числа$")
_YEARLY_RE = re.compile(rf"^каждый год (\d{{1,2}}) ({'|'.join(MONTHS_GENITIVE)})$")
_INTERVAL_RE = re.compile(r"^\s*(\d+)\s+(minute|hour|day|month|year)s?\s*$")

# APScheduler не умеет календарные месяцы: ставим грубый интервал и перепривязываем job после срабатывания.
_COARSE_DAYS = {"month": 30, "year": 365}


@dataclass(frozen=True)
class RepeatRule:
    kind: RepeatKind
    phrase: str
    minutes: int | None = None
    day: int | None = None
    month: int | None = None


@dataclass(frozen=True)
class IntervalSpec:
    amount: int
    unit: IntervalUnit

    @property
    def is_calendar(self) -> bool:
        return self.unit in _COARSE_DAYS

    def as_timedelta(self) -> timedelta:
        if self.unit == "minute":
            return timedelta(minutes=self.amount)
        if self.unit == "hour":
            return timedelta(hours=self.amount)
        if self.unit == "day":
            return timedelta(days=self.amount)
        return timedelta(days=_COARSE_DAYS[self.unit] * self.amount)

    def __str__(self) -> str:
        return f"{self.amount} {self.unit}s"


def every_minutes_phrase(minutes: int) -> str:
    return f"каждые {minutes} минут"


def monthly_phrase(day: int) -> str:
    return f"каждый месяц {day} числа"


def yearly_phrase(day: int, month: int) -> str:
    return f"каждый год {day} {MONTHS_GENITIVE[month - 1]}"


def parse_repeat(phrase: str) -> RepeatRule:
    """Разобрать каноническую фразу; ValueError для всего остального."""
    normalized = " ".join((phrase or "").lower().split())
    if normalized == REPEAT_HOURLY:
        return RepeatRule(kind="hourly", phrase=normalized)
    if normalized in {REPEAT_MORNING, REPEAT_EVENING, REPEAT_DAILY}:
        return RepeatRule(kind="daily", phrase=normalized)
    match = _MINUTES_RE.match(normalized)
    if match:
        minutes = int(match.group(1))
        if minutes <= 0:
            raise ValueError(f"non-positive repeat interval: {phrase!r}")
        return RepeatRule(kind="minutes", phrase=normalized, minutes=minutes)
    match = _MONTHLY_RE.match(normalized)
    if match:
        day = int(match.group(1))
        if not 1 <= day <= 31:
            raise ValueError(f"day of month out of range: {phrase!r}")
        return RepeatRule(kind="monthly", phrase=normalized, day=day)
    match = _YEARLY_RE.match(normalized)
    if match:
        day = int(match.group(1))
        month = MONTH_BY_NAME[match.group(2)]
        # 2000 високосный: 29 февраля допустимо
        date(2000, month, day)
        return RepeatRule(kind="yearly", phrase=normalized, day=day, month=month)
    raise ValueError(f"unsupported repeat phrase: {phrase!r}")


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + months
    return total // 12, total % 12 + 1


def clamp_day(year: int, month: int, day: int) -> int:
    return min(day, calendar.monthrange(year, month)[1])


def next_occurrence(previous: datetime, repeat: str, tz: ZoneInfo) -> datetime:
    """Следующее срабатывание после previous; время суток сохраняется по локальным часам tz."""
    rule = parse_repeat(repeat)
    if rule.kind == "hourly":
        return (previous + timedelta(hours=1)).astimezone(tz)
    if rule.kind == "minutes":
        return (previous + timedelta(minutes=rule.minutes or 0)).astimezone(tz)
    local = previous.astimezone(tz)
    clock = local.time()
    if rule.kind == "daily":
        target = local.date() + timedelta(days=1)
    elif rule.kind == "monthly":
        year, month = add_months(local.year, local.month, 1)
        target = date(year, month, clamp_day(year, month, rule.day or local.day))
    else:
        year = local.year + 1
        month = rule.month or local.month
        target = date(year, month, clamp_day(year, month, rule.day or local.day))
    return datetime.combine(target, clock, tzinfo=tz)


def to_scheduler_interval(repeat: str) -> str:
    rule = parse_repeat(repeat)
    if rule.kind == "hourly":
        return "1 hour"
    if rule.kind == "minutes":
        return f"{rule.minutes} minutes"
    if rule.kind == "daily":
        return "1 day"
    if rule.kind == "monthly":
        return "1 month"
    return "1 year"


def parse_interval(text: str) -> IntervalSpec:
    match = _INTERVAL_RE.match(text or "")
    if not match:
        raise ValueError(f"invalid interval: {text!r}")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError(f"non-positive interval: {text!r}")
    return IntervalSpec(amount=amount, unit=match.group(2))  # type: ignore[arg-type]


def describe(repeat: str | None) -> str:
    if not repeat:
        return "нет"
    return parse_repeat(repeat).phrase

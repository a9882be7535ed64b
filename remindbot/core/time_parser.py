"""Разбор русских фраз напоминаний: «завтра в 10:15 уборка», «через 2 часа позвонить», «каждый день в 9 зарядка».

Правила применяются по очереди (повтор → относительный сдвиг → дата → время суток),
каждое совпадение вырезается из текста; остаток становится описанием.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from remindbot.core import recurrence
from remindbot.core.errors import ParseError, most_relevant
from remindbot.core.models import ParsedRequest
from remindbot.core.user_settings import UserSettings, default_settings

LOGGER = logging.getLogger(__name__)

_MONTHS = "|".join(recurrence.MONTHS_GENITIVE)

_TRIGGER_RE = re.compile(
    r"^\s*напомни(?:те)?(?:\s+мне)?(?:\s+(?:что|чтобы|о|об|про))?\s+",
    re.IGNORECASE,
)

_REPEAT_MINUTES_RE = re.compile(r"\bкаждые\s+(-?\d+)\s*(?:минуты|минут|мин)\b", re.IGNORECASE)
_REPEAT_MINUTE_RE = re.compile(r"\bкаждую\s+минуту\b", re.IGNORECASE)
_REPEAT_HOURLY_RE = re.compile(r"\bкаждый\s+час\b", re.IGNORECASE)
_REPEAT_DAILY_RE = re.compile(r"\b(каждое\s+утро|каждый\s+вечер|каждый\s+день)\b", re.IGNORECASE)
_REPEAT_MONTHLY_RE = re.compile(
    r"\bкаждый\s+месяц\b(?:\s+(\d{1,2})(?:-?го)?(?:\s+числа\b)?)?",
    re.IGNORECASE,
)
_REPEAT_YEARLY_RE = re.compile(rf"\bкаждый\s+год\b(?:\s+(\d{{1,2}})\s+({_MONTHS})\b)?", re.IGNORECASE)
_REPEAT_ANY_RE = re.compile(r"\bкажд(?:ый|ая|ое|ую|ые)\s+\S+", re.IGNORECASE)

_UNIT_ALIASES = {
    "минута": "minutes",
    "минуты": "minutes",
    "минуту": "minutes",
    "минут": "minutes",
    "мин": "minutes",
    "час": "hours",
    "часа": "hours",
    "часов": "hours",
    "день": "days",
    "дня": "days",
    "дней": "days",
    "неделя": "weeks",
    "неделю": "weeks",
    "недели": "weeks",
    "недель": "weeks",
    "месяц": "months",
    "месяца": "months",
    "месяцев": "months",
    "год": "years",
    "года": "years",
    "лет": "years",
    "полчаса": "half_hours",
}
_UNITS = "|".join(sorted(_UNIT_ALIASES, key=len, reverse=True))
_DURATION_ITEM = rf"(?:-?\d+\s*)?(?:{_UNITS})\b"
_DURATION_PART_RE = re.compile(rf"(?:(-?\d+)\s*)?({_UNITS})\b", re.IGNORECASE)
_RELATIVE_RE = re.compile(
    rf"\bчерез\s+({_DURATION_ITEM}(?:\s*(?:,|\bи\b)\s*{_DURATION_ITEM})*)",
    re.IGNORECASE,
)
_BARE_DURATION_RE = re.compile(
    rf"^\s*(?:через\s+)?({_DURATION_ITEM}(?:\s*(?:,|\bи\b)\s*{_DURATION_ITEM})*)\s*$",
    re.IGNORECASE,
)

_DAY_WORDS = {"сегодня": 0, "завтра": 1, "послезавтра": 2}
_DAY_WORD_RE = re.compile(r"\b(сегодня|послезавтра|завтра)\b", re.IGNORECASE)
_DATE_RE = re.compile(
    rf"\b(\d{{1,2}})\s+({_MONTHS})\b(?:\s+(\d{{4}})(?:\s*(?:года|г\.?)(?=\s|$))?)?",
    re.IGNORECASE,
)
_WEEKDAYS = {
    "понедельник": 0,
    "вторник": 1,
    "среду": 2,
    "четверг": 3,
    "пятницу": 4,
    "субботу": 5,
    "воскресенье": 6,
}
_WEEKDAY_RE = re.compile(rf"\bв[о]?\s+({'|'.join(_WEEKDAYS)})\b", re.IGNORECASE)

_NOON_RE = re.compile(r"\bв\s+(полдень|полночь)\b", re.IGNORECASE)
_CLOCK_RE = re.compile(
    r"\bв\s+(\d{1,4})(?::(\d{2}))?(?![\d:])(?:\s*(?:часов|часа|час)\b)?(?:\s+(утра|дня|вечера|ночи)\b)?",
    re.IGNORECASE,
)
_BARE_CLOCK_RE = re.compile(r"(?<![\d:])(\d{1,2}):(\d{2})(?![\d:])")
_DAYPART_RE = re.compile(r"\b(утром|вечером|утро|вечер)\b", re.IGNORECASE)
_EVENING_DAYPARTS = {"вечером", "вечер"}

_DESCRIPTION_STRIP = " \t,.;:-—"


@dataclass(frozen=True)
class _Duration:
    months: int
    delta: timedelta
    positive: bool


class _Scan:
    """Рабочая копия текста: каждое совпадение вырезается, остаток станет описанием."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.matched = False

    def take(self, pattern: re.Pattern[str]) -> re.Match[str] | None:
        match = pattern.search(self.text)
        if match is None:
            return None
        self.text = f"{self.text[:match.start()]} {self.text[match.end():]}"
        self.matched = True
        return match

    def has(self, pattern: re.Pattern[str]) -> bool:
        return pattern.search(self.text) is not None

    def remainder(self) -> str:
        return " ".join(self.text.split()).strip(_DESCRIPTION_STRIP)


def parse_reminder(
    text: str,
    *,
    now: datetime | None = None,
    settings: UserSettings | None = None,
) -> ParsedRequest | ParseError:
    """Разобрать фразу пользователя. Возвращает ParsedRequest или ParseError (без исключений)."""
    settings = settings or default_settings(0)
    tz = settings.zone
    current = (now or datetime.now(tz)).astimezone(tz)
    floor = current.replace(second=0, microsecond=0)
    raw = " ".join((text or "").split())
    scan = _Scan(_TRIGGER_RE.sub("", raw, count=1))
    errors: list[ParseError] = []
    spec_parts: list[str] = []

    repeat, repeat_day, repeat_month = _take_repeat(scan, current, errors)
    if repeat:
        spec_parts.append(repeat)

    duration: _Duration | None = None
    relative = scan.take(_RELATIVE_RE)
    if relative is not None:
        duration = _duration_from(relative.group(1))
        spec_parts.append(f"через {' '.join(relative.group(1).lower().split())}")
        if not duration.positive:
            errors.append(ParseError("NonPositiveDuration"))

    date_qualifiers = 0
    day_offset: int | None = None
    explicit: tuple[int, int, int | None] | None = None
    weekday: int | None = None
    match = scan.take(_DAY_WORD_RE)
    if match is not None:
        date_qualifiers += 1
        day_offset = _DAY_WORDS[match.group(1).lower()]
        spec_parts.append(match.group(1).lower())
    match = scan.take(_DATE_RE)
    if match is not None:
        date_qualifiers += 1
        explicit = _explicit_date(match, errors)
        spec_parts.append(" ".join(match.group(0).lower().split()))
    match = scan.take(_WEEKDAY_RE)
    if match is not None:
        date_qualifiers += 1
        weekday = _WEEKDAYS[match.group(1).lower()]
        spec_parts.append(" ".join(match.group(0).lower().split()))
    if date_qualifiers > 1 or scan.has(_DAY_WORD_RE) or scan.has(_DATE_RE):
        errors.append(ParseError("AmbiguousConstruction"))

    clock = _take_clock(scan, errors)
    daypart_match = scan.take(_DAYPART_RE)
    daypart = daypart_match.group(1).lower() if daypart_match else None
    if scan.has(_CLOCK_RE) or scan.has(_BARE_CLOCK_RE):
        errors.append(ParseError("AmbiguousConstruction"))
    evening = daypart in _EVENING_DAYPARTS or repeat == recurrence.REPEAT_EVENING
    if clock is not None and evening and 0 < clock.hour < 12:
        clock = clock.replace(hour=clock.hour + 12)
    if clock is None and daypart is not None:
        clock = settings.evening if daypart in _EVENING_DAYPARTS else settings.morning
    if clock is not None:
        spec_parts.append(f"в {clock.hour}:{clock.minute:02d}")

    if not scan.matched:
        return ParseError("UnrecognizedFormat")

    has_absolute = clock is not None or date_qualifiers > 0
    if duration is not None and (has_absolute or repeat is not None):
        errors.append(ParseError("AmbiguousConstruction"))
    if repeat is not None and date_qualifiers > 0:
        errors.append(ParseError("AmbiguousConstruction"))
    if repeat is not None and clock is not None and not _repeat_takes_clock(repeat):
        errors.append(ParseError("AmbiguousConstruction"))

    description = scan.remainder()
    error = most_relevant(errors)
    if error is not None:
        LOGGER.info("Reminder text rejected: kind=%s candidates=%s", error.kind, len(errors))
        return error

    if repeat is not None:
        trigger_at = _first_repeat_occurrence(repeat, repeat_day, repeat_month, clock, floor, settings)
    elif duration is not None:
        trigger_at = _apply_duration(current, duration)
    elif explicit is not None:
        trigger_at = _resolve_explicit(explicit, clock or floor.time(), current)
    elif day_offset is not None:
        target = current.date() + timedelta(days=day_offset)
        trigger_at = datetime.combine(target, clock or settings.morning, tzinfo=tz)
    elif weekday is not None:
        target = current.date() + timedelta(days=(weekday - current.weekday()) % 7)
        trigger_at = datetime.combine(target, clock or settings.morning, tzinfo=tz)
        if trigger_at <= current:
            trigger_at += timedelta(days=7)
    else:
        trigger_at = datetime.combine(current.date(), clock or settings.morning, tzinfo=tz)
        if trigger_at <= current:
            trigger_at = datetime.combine(current.date() + timedelta(days=1), trigger_at.time(), tzinfo=tz)

    if trigger_at is None or trigger_at <= current:
        return ParseError("PastTime")
    if not description:
        return ParseError("UnrecognizedFormat", "Не указан текст напоминания")
    return ParsedRequest(
        description=description,
        trigger_at=trigger_at,
        time_spec=" ".join(spec_parts),
        repeat=repeat,
    )


def parse_relative(text: str, *, now: datetime) -> datetime | ParseError | None:
    """«2 часа», «через 30 минут», «1 час и 15 минут» → now + сдвиг. None, если это не длительность."""
    match = _BARE_DURATION_RE.match(" ".join((text or "").split()))
    if match is None:
        return None
    duration = _duration_from(match.group(1))
    if not duration.positive:
        return ParseError("NonPositiveDuration")
    return _apply_duration(now, duration)


def _take_repeat(
    scan: _Scan,
    current: datetime,
    errors: list[ParseError],
) -> tuple[str | None, int | None, int | None]:
    match = scan.take(_REPEAT_MINUTES_RE)
    if match is not None:
        minutes = int(match.group(1))
        if minutes <= 0:
            errors.append(ParseError("NonPositiveDuration"))
            return None, None, None
        return recurrence.every_minutes_phrase(minutes), None, None
    if scan.take(_REPEAT_MINUTE_RE) is not None:
        return recurrence.every_minutes_phrase(1), None, None
    if scan.take(_REPEAT_HOURLY_RE) is not None:
        return recurrence.REPEAT_HOURLY, None, None
    match = scan.take(_REPEAT_DAILY_RE)
    if match is not None:
        return " ".join(match.group(1).lower().split()), None, None
    match = scan.take(_REPEAT_MONTHLY_RE)
    if match is not None:
        day = int(match.group(1)) if match.group(1) else current.day
        if not 1 <= day <= 31:
            errors.append(ParseError("InvalidCalendarDate"))
            return None, None, None
        return recurrence.monthly_phrase(day), day, None
    match = scan.take(_REPEAT_YEARLY_RE)
    if match is not None:
        if match.group(1):
            day = int(match.group(1))
            month = recurrence.MONTH_BY_NAME[match.group(2).lower()]
        else:
            day, month = current.day, current.month
        try:
            date(2000, month, day)
        except ValueError:
            errors.append(ParseError("InvalidCalendarDate"))
            return None, None, None
        return recurrence.yearly_phrase(day, month), day, month
    if scan.take(_REPEAT_ANY_RE) is not None:
        errors.append(ParseError("InvalidRecurrenceUnit"))
    return None, None, None


def _repeat_takes_clock(repeat: str) -> bool:
    return recurrence.parse_repeat(repeat).kind in {"daily", "monthly", "yearly"}


def _duration_from(fragment: str) -> _Duration:
    months = 0
    delta = timedelta()
    for match in _DURATION_PART_RE.finditer(fragment):
        quantity = int(match.group(1)) if match.group(1) else 1
        unit = _UNIT_ALIASES[match.group(2).lower()]
        if unit == "months":
            months += quantity
        elif unit == "years":
            months += 12 * quantity
        elif unit == "half_hours":
            delta += timedelta(minutes=30 * quantity)
        else:
            delta += timedelta(**{unit: quantity})
    # Знак определяет сумма: «2 часа и 0 минут» допустимо. Месяц считается за 30 дней.
    total = timedelta(days=30 * months) + delta
    return _Duration(months=months, delta=delta, positive=total > timedelta())


def _apply_duration(start: datetime, duration: _Duration) -> datetime:
    shifted = start
    if duration.months:
        year, month = recurrence.add_months(start.year, start.month, duration.months)
        shifted = start.replace(year=year, month=month, day=recurrence.clamp_day(year, month, start.day))
    return shifted + duration.delta


def _explicit_date(match: re.Match[str], errors: list[ParseError]) -> tuple[int, int, int | None] | None:
    day = int(match.group(1))
    month = recurrence.MONTH_BY_NAME[match.group(2).lower()]
    year = int(match.group(3)) if match.group(3) else None
    try:
        date(year or 2000, month, day)
    except ValueError:
        errors.append(ParseError("InvalidCalendarDate"))
        return None
    return day, month, year


def _resolve_explicit(parts: tuple[int, int, int | None], clock: time, current: datetime) -> datetime | None:
    day, month, year = parts
    tz = current.tzinfo
    if year is not None:
        return datetime.combine(date(year, month, day), clock, tzinfo=tz)
    for candidate_year in range(current.year, current.year + 9):
        try:
            candidate = datetime.combine(date(candidate_year, month, day), clock, tzinfo=tz)
        except ValueError:
            continue
        if candidate > current:
            return candidate
    return None


def _take_clock(scan: _Scan, errors: list[ParseError]) -> time | None:
    match = scan.take(_NOON_RE)
    if match is not None:
        return time(12, 0) if match.group(1).lower() == "полдень" else time(0, 0)
    match = scan.take(_CLOCK_RE)
    if match is not None:
        digits, minute_text, period = match.group(1), match.group(2), match.group(3)
        if minute_text is None and len(digits) >= 3:
            hour, minute = int(digits[:-2]), int(digits[-2:])
        else:
            hour, minute = int(digits), int(minute_text or 0)
        if period:
            hour = _apply_period(hour, period.lower())
        return _clock_or_error(hour, minute, errors)
    match = scan.take(_BARE_CLOCK_RE)
    if match is not None:
        return _clock_or_error(int(match.group(1)), int(match.group(2)), errors)
    return None


def _apply_period(hour: int, period: str) -> int:
    if period in {"дня", "вечера"} and hour < 12:
        return hour + 12
    if period in {"ночи", "утра"} and hour == 12:
        return 0
    return hour


def _clock_or_error(hour: int, minute: int, errors: list[ParseError]) -> time | None:
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        errors.append(ParseError("InvalidClockTime"))
        return None
    return time(hour, minute)


def _first_repeat_occurrence(
    repeat: str,
    day: int | None,
    month: int | None,
    clock: time | None,
    floor: datetime,
    settings: UserSettings,
) -> datetime:
    rule = recurrence.parse_repeat(repeat)
    tz = settings.zone
    if rule.kind == "minutes":
        return floor + timedelta(minutes=rule.minutes or 0)
    if rule.kind == "hourly":
        return floor + timedelta(hours=1)
    if clock is None:
        clock = settings.evening if repeat == recurrence.REPEAT_EVENING else settings.morning
    today = floor.date()
    if rule.kind == "daily":
        candidate = datetime.combine(today, clock, tzinfo=tz)
    elif rule.kind == "monthly":
        target_day = recurrence.clamp_day(today.year, today.month, day or today.day)
        candidate = datetime.combine(today.replace(day=target_day), clock, tzinfo=tz)
    else:
        target_month = month or today.month
        target_day = recurrence.clamp_day(today.year, target_month, day or today.day)
        candidate = datetime.combine(date(today.year, target_month, target_day), clock, tzinfo=tz)
    if candidate <= floor:
        candidate = recurrence.next_occurrence(candidate, repeat, tz)
    return candidate

"""Пресеты «Отложить» для напоминаний. Один источник правды для ключей, подписей и сдвигов."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from remindbot.core import time_parser
from remindbot.core.errors import ParseError
from remindbot.core.models import Action, Keyboard
from remindbot.core.user_settings import UserSettings

# Callback data в Telegram ограничена 64 байтами: «postpone|<ключ>|<id>» укладывается с запасом.
POSTPONE_OP = "postpone"
DONE_OP = "done"
CUSTOM_OPTION = "custom"
MORNING_OPTION = "am"
EVENING_OPTION = "pm"

POSTPONE_DELTAS: dict[str, timedelta] = {
    "5m": timedelta(minutes=5),
    "10m": timedelta(minutes=10),
    "15m": timedelta(minutes=15),
    "20m": timedelta(minutes=20),
    "30m": timedelta(minutes=30),
    "1h": timedelta(hours=1),
    "2h": timedelta(hours=2),
    "3h": timedelta(hours=3),
    "4h": timedelta(hours=4),
    "1d": timedelta(days=1),
    "2d": timedelta(days=2),
    "3d": timedelta(days=3),
    "7d": timedelta(days=7),
}
POSTPONE_LABELS: dict[str, str] = {
    "5m": "5 мин",
    "10m": "10 мин",
    "15m": "15 мин",
    "20m": "20 мин",
    "30m": "30 мин",
    "1h": "1 час",
    "2h": "2 часа",
    "3h": "3 часа",
    "4h": "4 часа",
    "1d": "1 день",
    "2d": "2 дня",
    "3d": "3 дня",
    "7d": "7 дней",
    MORNING_OPTION: "утро",
    EVENING_OPTION: "вечер",
    CUSTOM_OPTION: "…",
}
DONE_LABEL = "✅ Готово"
_ROW_SIZE = 3


@dataclass(frozen=True)
class ResolvedPostpone:
    trigger_at: datetime
    label: str


@dataclass(frozen=True)
class CallbackCommand:
    op: str
    reminder_id: str
    option: str | None = None


def build_postpone_actions(reminder_id: str, options: tuple[str, ...] | list[str]) -> Keyboard:
    """Кнопки под доставленным напоминанием: пресеты из настроек по 3 в ряд + «Готово»."""
    buttons = [
        Action(
            id=f"{POSTPONE_OP}|{option}|{reminder_id}",
            label=POSTPONE_LABELS[option],
            payload={"op": POSTPONE_OP, "option": option, "reminder_id": reminder_id},
        )
        for option in options
        if option in POSTPONE_LABELS
    ]
    rows = [buttons[index : index + _ROW_SIZE] for index in range(0, len(buttons), _ROW_SIZE)]
    rows.append(
        [Action(id=f"{DONE_OP}|{reminder_id}", label=DONE_LABEL, payload={"op": DONE_OP, "reminder_id": reminder_id})]
    )
    return rows


def parse_callback(data: str | None) -> CallbackCommand | None:
    parts = (data or "").split("|")
    if len(parts) == 3 and parts[0] == POSTPONE_OP and parts[1] in POSTPONE_LABELS and parts[2]:
        return CallbackCommand(op=POSTPONE_OP, option=parts[1], reminder_id=parts[2])
    if len(parts) == 2 and parts[0] == DONE_OP and parts[1]:
        return CallbackCommand(op=DONE_OP, reminder_id=parts[1])
    return None


def resolve_postpone(spec: str, *, now: datetime, settings: UserSettings) -> ResolvedPostpone | None:
    """Ключ пресета («30m», «am») или свободный текст («2 часа») → новое время срабатывания."""
    key = (spec or "").strip()
    tz = settings.zone
    local_now = now.astimezone(tz)
    if key in POSTPONE_DELTAS:
        return ResolvedPostpone(trigger_at=local_now + POSTPONE_DELTAS[key], label=POSTPONE_LABELS[key])
    if key in {MORNING_OPTION, EVENING_OPTION}:
        clock = settings.morning if key == MORNING_OPTION else settings.evening
        target = datetime.combine(local_now.date(), clock, tzinfo=tz)
        if target <= local_now:
            target += timedelta(days=1)
        return ResolvedPostpone(trigger_at=target, label=POSTPONE_LABELS[key])
    if key == CUSTOM_OPTION or not key:
        return None
    resolved = time_parser.parse_relative(key, now=local_now)
    if resolved is None or isinstance(resolved, ParseError):
        return None
    return ResolvedPostpone(trigger_at=resolved, label=" ".join(key.lower().split()).removeprefix("через "))

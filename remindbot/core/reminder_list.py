"""Постраничный список напоминаний с кнопками навигации и удаления."""

from __future__ import annotations

import math
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from remindbot.core import recurrence, texts
from remindbot.core.models import Action, Keyboard, Reminder

DEFAULT_PAGE_SIZE = 10
LIST_PAGE_OP = "list_page"
LIST_DELETE_MODE_OP = "list_delmode"
LIST_DELETE_OP = "list_del"
LIST_CLOSE_OP = "list_close"
EMPTY_TEXT = "У вас нет предстоящих уведомлений."


@dataclass(frozen=True)
class ListPage:
    text: str
    controls: Keyboard
    page: int
    total_pages: int


@dataclass(frozen=True)
class ListCommand:
    op: str
    page: int = 0
    reminder_id: str | None = None


def render_page(
    reminders: list[Reminder],
    page: int,
    tz: ZoneInfo,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    delete_mode: bool = False,
) -> ListPage:
    if not reminders:
        return ListPage(text=EMPTY_TEXT, controls=[], page=0, total_pages=0)
    total_pages = max(1, math.ceil(len(reminders) / page_size))
    page = min(max(page, 0), total_pages - 1)
    start = page * page_size
    chunk = reminders[start : start + page_size]
    lines = [f"📋 Ваши напоминания ({len(reminders)}):", ""]
    for index, reminder in enumerate(chunk, start=start + 1):
        line = f"{index}. {reminder.description} — {texts.format_datetime(reminder.trigger_at, tz)}"
        if reminder.is_recurring:
            line += f" 🔁 {recurrence.describe(reminder.repeat)}"
        lines.append(line)
    if total_pages > 1:
        lines.extend(["", f"📄 Страница {page + 1} из {total_pages}"])

    controls: Keyboard = []
    if delete_mode:
        for index, reminder in enumerate(chunk, start=start + 1):
            label = f"❌ {index}. {reminder.description}"[:60]
            controls.append([Action(id=f"{LIST_DELETE_OP}|{page}|{reminder.id}", label=label)])
    mode = int(delete_mode)
    navigation: list[Action] = []
    if page > 0:
        if page > 1:
            navigation.append(Action(id=f"{LIST_PAGE_OP}|0|{mode}", label="⏮"))
        navigation.append(Action(id=f"{LIST_PAGE_OP}|{page - 1}|{mode}", label="⬅️"))
    if page < total_pages - 1:
        navigation.append(Action(id=f"{LIST_PAGE_OP}|{page + 1}|{mode}", label="➡️"))
        if page < total_pages - 2:
            navigation.append(Action(id=f"{LIST_PAGE_OP}|{total_pages - 1}|{mode}", label="⏭"))
    if navigation:
        controls.append(navigation)
    if delete_mode:
        controls.append([Action(id=f"{LIST_PAGE_OP}|{page}|0", label="Готово")])
    else:
        controls.append([Action(id=f"{LIST_DELETE_MODE_OP}|{page}", label="🗑 Удалить")])
    controls.append([Action(id=LIST_CLOSE_OP, label="Закрыть")])
    return ListPage(text="\n".join(lines), controls=controls, page=page, total_pages=total_pages)


def parse_list_callback(data: str | None) -> ListCommand | None:
    parts = (data or "").split("|")
    op = parts[0]
    try:
        if op == LIST_CLOSE_OP and len(parts) == 1:
            return ListCommand(op=op)
        if op == LIST_PAGE_OP and len(parts) == 3:
            return ListCommand(op=LIST_DELETE_MODE_OP if parts[2] == "1" else op, page=int(parts[1]))
        if op == LIST_DELETE_MODE_OP and len(parts) == 2:
            return ListCommand(op=op, page=int(parts[1]))
        if op == LIST_DELETE_OP and len(parts) == 3 and parts[2]:
            return ListCommand(op=op, page=int(parts[1]), reminder_id=parts[2])
    except ValueError:
        return None
    return None

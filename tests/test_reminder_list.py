from __future__ import annotations

from datetime import timedelta

from remindbot.core.models import Reminder
from remindbot.core.reminder_list import EMPTY_TEXT, parse_list_callback, render_page

from conftest import BASE_NOW, MOSCOW_TZ


def _reminders(count: int) -> list[Reminder]:
    return [
        Reminder(
            id=f"r{index}",
            user_id=1,
            chat_id=10,
            description=f"дело {index}",
            trigger_at=BASE_NOW + timedelta(hours=index),
            repeat="каждый день" if index == 1 else None,
        )
        for index in range(1, count + 1)
    ]


def test_empty_list() -> None:
    page = render_page([], 0, MOSCOW_TZ)

    assert page.text == EMPTY_TEXT
    assert page.controls == []


def test_single_page_has_no_navigation() -> None:
    page = render_page(_reminders(2), 0, MOSCOW_TZ)

    assert page.text.splitlines()[0] == "📋 Ваши напоминания (2):"
    assert "1. дело 1 — 12:00, 7 марта 2025 🔁 каждый день" in page.text
    assert "Страница" not in page.text
    assert [action.id for row in page.controls for action in row] == ["list_delmode|0", "list_close"]


def test_pagination_by_ten() -> None:
    items = _reminders(23)

    first = render_page(items, 0, MOSCOW_TZ)
    last = render_page(items, 5, MOSCOW_TZ)

    assert first.total_pages == 3
    assert "📄 Страница 1 из 3" in first.text
    assert "10. дело 10" in first.text
    assert "11. дело 11" not in first.text
    assert last.page == 2
    assert "21. дело 21" in last.text
    assert [action.id for action in first.controls[0]] == ["list_page|1|0", "list_page|2|0"]
    assert [action.id for action in last.controls[0]] == ["list_page|0|0", "list_page|1|0"]


def test_delete_mode_lists_buttons() -> None:
    page = render_page(_reminders(3), 0, MOSCOW_TZ, delete_mode=True)

    ids = [row[0].id for row in page.controls[:3]]
    assert ids == ["list_del|0|r1", "list_del|0|r2", "list_del|0|r3"]
    assert page.controls[-2][0].id == "list_page|0|0"


def test_parse_list_callback() -> None:
    assert parse_list_callback("list_page|2|0").op == "list_page"
    assert parse_list_callback("list_page|2|1").op == "list_delmode"
    command = parse_list_callback("list_del|1|r5")
    assert (command.op, command.page, command.reminder_id) == ("list_del", 1, "r5")
    assert parse_list_callback("list_close").op == "list_close"
    assert parse_list_callback("list_page|x|0") is None
    assert parse_list_callback("done|r1") is None

from __future__ import annotations

from datetime import datetime

from remindbot.core.postpone_presets import (
    POSTPONE_LABELS,
    build_postpone_actions,
    parse_callback,
    resolve_postpone,
)
from remindbot.core.user_settings import default_settings

from conftest import BASE_NOW, MOSCOW_TZ


def test_labels_cover_all_options() -> None:
    assert POSTPONE_LABELS["5m"] == "5 мин"
    assert POSTPONE_LABELS["1h"] == "1 час"
    assert POSTPONE_LABELS["2h"] == "2 часа"
    assert POSTPONE_LABELS["7d"] == "7 дней"
    assert POSTPONE_LABELS["custom"] == "…"


def test_keyboard_follows_settings_and_ends_with_done() -> None:
    rows = build_postpone_actions("abc", ("30m", "1h", "3h", "am", "pm", "custom"))

    assert [[action.label for action in row] for row in rows] == [
        ["30 мин", "1 час", "3 часа"],
        ["утро", "вечер", "…"],
        ["✅ Готово"],
    ]
    assert rows[0][0].id == "postpone|30m|abc"
    assert rows[-1][0].id == "done|abc"
    assert all(len(action.id.encode("utf-8")) <= 64 for row in rows for action in row)


def test_unknown_options_are_skipped() -> None:
    rows = build_postpone_actions("abc", ["5m", "bogus"])

    assert [action.id for action in rows[0]] == ["postpone|5m|abc"]


def test_parse_callback() -> None:
    postpone = parse_callback("postpone|15m|abc")
    done = parse_callback("done|abc")

    assert (postpone.op, postpone.option, postpone.reminder_id) == ("postpone", "15m", "abc")
    assert (done.op, done.reminder_id) == ("done", "abc")
    assert parse_callback("postpone|99m|abc") is None
    assert parse_callback("list_page|1|0") is None
    assert parse_callback(None) is None


def test_resolve_presets() -> None:
    settings = default_settings(1)

    assert resolve_postpone("1d", now=BASE_NOW, settings=settings).trigger_at == datetime(
        2025, 3, 8, 11, 0, tzinfo=MOSCOW_TZ
    )
    morning = resolve_postpone("am", now=BASE_NOW, settings=settings)
    assert morning.trigger_at == datetime(2025, 3, 8, 8, 0, tzinfo=MOSCOW_TZ)
    assert morning.label == "утро"


def test_resolve_free_text() -> None:
    resolved = resolve_postpone("через 1 час и 15 минут", now=BASE_NOW, settings=default_settings(1))

    assert resolved.trigger_at == datetime(2025, 3, 7, 12, 15, tzinfo=MOSCOW_TZ)
    assert resolved.label == "1 час и 15 минут"
    assert resolve_postpone("custom", now=BASE_NOW, settings=default_settings(1)) is None

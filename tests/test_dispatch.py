from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from remindbot.core.job_registry import DELIVERY, JobKey

from conftest import MOSCOW_TZ


def _create(lifecycle, text: str):
    result = lifecycle.create(1, 10, text)
    assert result.status == "created", result
    return result.reminder


def test_create_schedules_single_delivery_job(lifecycle, registry) -> None:
    reminder = _create(lifecycle, "через 10 минут чай")

    assert registry.job_ids(reminder.id) == {f"delivery:{reminder.id}"}
    job = registry.jobs[f"delivery:{reminder.id}"]
    assert job["type"] == "once"
    assert job["at"] == datetime(2025, 3, 7, 11, 10, tzinfo=MOSCOW_TZ)


def test_delivery_sends_message_and_starts_inertia(lifecycle, dispatch, registry, messenger, reminder_store, clock) -> None:
    reminder = _create(lifecycle, "через 10 минут чай")
    clock.advance(minutes=10)

    asyncio.run(dispatch.handle_delivery(reminder.id))

    assert len(messenger.sent) == 1
    chat_id, text, controls = messenger.sent[0]
    assert chat_id == 10
    assert text == "🔔 чай\n🕒 11:10"
    assert controls[-1][0].id == f"done|{reminder.id}"
    stored = reminder_store.get(reminder.id)
    assert stored.message_id == 101
    assert stored.trigger_at == datetime(2025, 3, 7, 11, 25, tzinfo=MOSCOW_TZ)
    assert stored.inertia_instance
    inertia_id = f"inertia:{reminder.id}:{stored.inertia_instance}"
    assert registry.jobs[inertia_id]["interval"] == "15 minutes"
    assert registry.jobs[inertia_id]["skip_first"] is True
    assert registry.jobs[inertia_id]["start_at"] == datetime(2025, 3, 7, 11, 10, tzinfo=MOSCOW_TZ)


def test_repeated_delivery_firing_is_ignored(lifecycle, dispatch, messenger, clock) -> None:
    reminder = _create(lifecycle, "через 10 минут чай")
    clock.advance(minutes=10)

    asyncio.run(dispatch.handle_delivery(reminder.id))
    asyncio.run(dispatch.handle_delivery(reminder.id))

    assert len(messenger.sent) == 1


def test_inertia_keeps_single_actionable_message(lifecycle, dispatch, messenger, reminder_store, clock) -> None:
    reminder = _create(lifecycle, "через 10 минут чай")
    clock.advance(minutes=10)
    asyncio.run(dispatch.handle_delivery(reminder.id))
    instance = reminder_store.get(reminder.id).inertia_instance

    clock.advance(minutes=15)
    asyncio.run(dispatch.handle_inertia(reminder.id, instance))

    assert messenger.edited_text == [(10, 101, "⏳ Отложено: чай", None)]
    assert len(messenger.sent) == 2
    assert messenger.sent[1][2] is not None
    first_nudge = reminder_store.get(reminder.id)
    assert first_nudge.initial_message_edited is True
    assert first_nudge.inertia_message_id == 102
    assert first_nudge.trigger_at == datetime(2025, 3, 7, 11, 40, tzinfo=MOSCOW_TZ)

    clock.advance(minutes=15)
    asyncio.run(dispatch.handle_inertia(reminder.id, instance))

    assert messenger.edited_controls == [(10, 102, None)]
    assert len(messenger.edited_text) == 1
    assert reminder_store.get(reminder.id).inertia_message_id == 103


def test_stale_inertia_instance_is_cancelled(lifecycle, dispatch, registry, messenger, clock) -> None:
    reminder = _create(lifecycle, "через 10 минут чай")
    clock.advance(minutes=10)
    asyncio.run(dispatch.handle_delivery(reminder.id))
    registry.run_every(JobKey(reminder.id, "inertia", "old"), "15 minutes")

    asyncio.run(dispatch.handle_inertia(reminder.id, "old"))

    assert f"inertia:{reminder.id}:old" not in registry.jobs
    assert len(messenger.sent) == 1


def test_delivery_of_missing_reminder_cancels_jobs(dispatch, registry, messenger) -> None:
    registry.run_once(JobKey("ghost", DELIVERY), datetime(2025, 3, 7, 12, 0, tzinfo=MOSCOW_TZ))

    asyncio.run(dispatch.handle_delivery("ghost"))

    assert registry.job_ids("ghost") == set()
    assert messenger.sent == []


def test_failed_send_still_leaves_one_inertia_job(lifecycle, dispatch, registry, messenger, reminder_store, clock) -> None:
    reminder = _create(lifecycle, "через 10 минут чай")
    clock.advance(minutes=10)
    messenger.fail_send = True

    with pytest.raises(RuntimeError):
        asyncio.run(dispatch.handle_delivery(reminder.id))

    stored = reminder_store.get(reminder.id)
    assert stored.message_id is None
    assert stored.trigger_at == datetime(2025, 3, 7, 11, 25, tzinfo=MOSCOW_TZ)
    inertia_jobs = [job_id for job_id in registry.job_ids(reminder.id) if job_id.startswith("inertia:")]
    assert inertia_jobs == [f"inertia:{reminder.id}:{stored.inertia_instance}"]


def test_recurring_delivery_advances_and_reanchors(lifecycle, dispatch, registry, messenger, reminder_store, clock) -> None:
    reminder = _create(lifecycle, "каждый день в 9 зарядка")
    job = registry.jobs[f"delivery:{reminder.id}"]
    assert job["type"] == "every"
    assert job["interval"] == "1 day"
    clock.now = datetime(2025, 3, 8, 9, 0, tzinfo=MOSCOW_TZ)

    asyncio.run(dispatch.handle_delivery(reminder.id))

    assert messenger.sent[0][1] == "📌 зарядка\n🕒 09:00, 8 марта 2025"
    stored = reminder_store.get(reminder.id)
    next_at = datetime(2025, 3, 9, 9, 0, tzinfo=MOSCOW_TZ)
    assert stored.trigger_at == next_at
    assert registry.reanchored == [(f"delivery:{reminder.id}", next_at)]
    assert not any(job_id.startswith("inertia:") for job_id in registry.job_ids(reminder.id))


def test_recurring_postpone_returns_to_schedule(lifecycle, dispatch, registry, messenger, reminder_store, clock) -> None:
    reminder = _create(lifecycle, "каждый день в 9 зарядка")
    clock.now = datetime(2025, 3, 8, 9, 0, tzinfo=MOSCOW_TZ)
    asyncio.run(dispatch.handle_delivery(reminder.id))
    clock.now = datetime(2025, 3, 8, 9, 1, tzinfo=MOSCOW_TZ)

    postponed = lifecycle.postpone(reminder.id, "30m").reminder

    assert postponed.trigger_at == datetime(2025, 3, 8, 9, 31, tzinfo=MOSCOW_TZ)
    assert postponed.postpone_base_at == datetime(2025, 3, 9, 9, 0, tzinfo=MOSCOW_TZ)
    assert registry.jobs[f"delivery:{reminder.id}"]["type"] == "once"

    clock.now = datetime(2025, 3, 8, 9, 31, tzinfo=MOSCOW_TZ)
    registry.jobs.pop(f"delivery:{reminder.id}")
    asyncio.run(dispatch.handle_delivery(reminder.id))

    stored = reminder_store.get(reminder.id)
    assert len(messenger.sent) == 2
    assert stored.trigger_at == datetime(2025, 3, 9, 9, 0, tzinfo=MOSCOW_TZ)
    assert stored.postpone_base_at is None
    job = registry.jobs[f"delivery:{reminder.id}"]
    assert job["type"] == "every"
    assert job["start_at"] == datetime(2025, 3, 9, 9, 0, tzinfo=MOSCOW_TZ)


def test_restore_resumes_inertia_cycle(lifecycle, dispatch, registry, reminder_store, clock) -> None:
    reminder = _create(lifecycle, "через 10 минут чай")
    clock.advance(minutes=10)
    asyncio.run(dispatch.handle_delivery(reminder.id))
    registry.jobs.clear()

    assert lifecycle.restore_all() == 1

    stored = reminder_store.get(reminder.id)
    job = registry.jobs[f"inertia:{reminder.id}:{stored.inertia_instance}"]
    assert job["start_at"] == stored.trigger_at
    assert job["interval"] == "15 minutes"


def test_restore_delivers_missed_monthly_once_then_follows_calendar(
    lifecycle, dispatch, registry, messenger, reminder_store, clock
) -> None:
    reminder = _create(lifecycle, "каждый месяц 31 числа оплатить счета")
    assert reminder.trigger_at == datetime(2025, 3, 31, 8, 0, tzinfo=MOSCOW_TZ)
    registry.jobs.clear()
    clock.now = datetime(2025, 4, 2, 10, 0, tzinfo=MOSCOW_TZ)

    assert lifecycle.restore_all() == 1
    assert registry.jobs[f"delivery:{reminder.id}"]["type"] == "once"

    registry.jobs.pop(f"delivery:{reminder.id}")
    asyncio.run(dispatch.handle_delivery(reminder.id))

    stored = reminder_store.get(reminder.id)
    assert len(messenger.sent) == 1
    assert stored.trigger_at == datetime(2025, 4, 30, 8, 0, tzinfo=MOSCOW_TZ)
    job = registry.jobs[f"delivery:{reminder.id}"]
    assert job["type"] == "every"
    assert job["start_at"] == datetime(2025, 4, 30, 8, 0, tzinfo=MOSCOW_TZ)

import sys
from datetime import datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from remindbot.core.user_settings import UserSettings, apply_settings_patch, default_settings  # noqa: E402

MOSCOW_TZ = ZoneInfo("Europe/Moscow")
BASE_NOW = datetime(2025, 3, 7, 11, 0, tzinfo=MOSCOW_TZ)


class DummyMessenger:
    """Мок Telegram: запоминает отправки и правки, выдаёт возрастающие message_id."""

    def __init__(self, *, fail_send: bool = False) -> None:
        self.fail_send = fail_send
        self.sent: list[tuple[int, str, object]] = []
        self.edited_text: list[tuple[int, int, str, object]] = []
        self.edited_controls: list[tuple[int, int, object]] = []
        self.answers: list[tuple[str, str | None]] = []
        self._next_id = 100

    async def send(self, chat_id: int, text: str, controls=None) -> int:
        if self.fail_send:
            raise RuntimeError("telegram is down")
        self._next_id += 1
        self.sent.append((chat_id, text, controls))
        return self._next_id

    async def edit_text(self, chat_id: int, message_id: int, text: str, controls=None) -> None:
        self.edited_text.append((chat_id, message_id, text, controls))

    async def edit_controls(self, chat_id: int, message_id: int, controls) -> None:
        self.edited_controls.append((chat_id, message_id, controls))

    async def answer(self, callback_id: str, text: str | None = None) -> None:
        self.answers.append((callback_id, text))


class DummyJobRegistry:
    """Мок реестра job'ов: хранит активные ключи по job_id, без APScheduler."""

    def __init__(self) -> None:
        self.jobs: dict[str, dict] = {}
        self.handlers: dict[str, object] = {}
        self.reanchored: list[tuple[str, datetime]] = []

    def register_handler(self, kind, handler) -> None:
        self.handlers[kind] = handler

    def run_once(self, key, at):
        self.jobs[key.job_id] = {"key": key, "type": "once", "at": at}
        return key

    def run_every(self, key, interval, *, start_at=None, skip_first=False):
        self.jobs[key.job_id] = {
            "key": key,
            "type": "every",
            "interval": interval,
            "start_at": start_at,
            "skip_first": skip_first,
        }
        return key

    def reanchor(self, key, next_run) -> bool:
        if key.job_id not in self.jobs:
            return False
        self.reanchored.append((key.job_id, next_run))
        return True

    def cancel(self, reminder_id, kind=None, instance=None) -> int:
        removed = 0
        for job_id, job in list(self.jobs.items()):
            key = job["key"]
            if key.reminder_id != reminder_id:
                continue
            if kind is not None and key.kind != kind:
                continue
            if instance is not None and key.instance != instance:
                continue
            del self.jobs[job_id]
            removed += 1
        return removed

    def job_ids(self, reminder_id: str) -> set[str]:
        return {job_id for job_id, job in self.jobs.items() if job["key"].reminder_id == reminder_id}


class DummySettingsStore:
    def __init__(self, **patch) -> None:
        self._patch = patch

    def get(self, user_id: int) -> UserSettings:
        return apply_settings_patch(default_settings(user_id), self._patch)


class FrozenClock:
    def __init__(self, now: datetime = BASE_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def messenger() -> DummyMessenger:
    return DummyMessenger()


@pytest.fixture
def registry() -> DummyJobRegistry:
    return DummyJobRegistry()


@pytest.fixture
def settings_store() -> DummySettingsStore:
    return DummySettingsStore()


@pytest.fixture
def reminder_store(tmp_path):
    from remindbot.infra.reminder_store import ReminderStore

    store = ReminderStore(tmp_path / "reminders.db")
    yield store
    store.close()


@pytest.fixture
def dispatch(reminder_store, messenger, registry, settings_store, clock):
    from remindbot.core.dispatch import ReminderDispatchScheduler

    return ReminderDispatchScheduler(
        store=reminder_store,
        messenger=messenger,
        registry=registry,
        settings_store=settings_store,
        clock=clock,
    )


@pytest.fixture
def lifecycle(reminder_store, dispatch, settings_store, clock):
    from remindbot.core.lifecycle import ReminderLifecycleManager

    return ReminderLifecycleManager(
        store=reminder_store,
        dispatch=dispatch,
        settings_store=settings_store,
        clock=clock,
    )

from __future__ import annotations

import logging

import pytest

from remindbot.infra.logging_config import configure_logging


@pytest.fixture
def root_snapshot():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_repeated_calls_do_not_duplicate_handlers(root_snapshot) -> None:
    configure_logging(level=logging.DEBUG)
    configure_logging(level=logging.DEBUG)

    assert len(root_snapshot.handlers) == 1
    assert root_snapshot.level == logging.DEBUG
    assert logging.getLogger("apscheduler").level == logging.WARNING


def test_log_file_handler(root_snapshot, tmp_path) -> None:
    log_file = tmp_path / "logs" / "bot.log"

    configure_logging(level=logging.INFO, log_file=str(log_file))
    logging.getLogger("remindbot.test").info("Reminder created: reminder_id=%s", "abc")
    for handler in root_snapshot.handlers:
        handler.flush()

    assert len(root_snapshot.handlers) == 2
    assert "Reminder created: reminder_id=abc" in log_file.read_text(encoding="utf-8")


def test_level_from_env(root_snapshot, monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.delenv("LOG_FILE", raising=False)

    configure_logging()

    assert root_snapshot.level == logging.WARNING

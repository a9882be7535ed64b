"""Реестр job'ов поверх настоящего AsyncIOScheduler внутри event loop."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

from remindbot.core.job_registry import DELIVERY, INERTIA, JobKey, JobRegistry

from conftest import MOSCOW_TZ


def test_job_key_ids() -> None:
    assert JobKey("r1", DELIVERY).job_id == "delivery:r1"
    assert JobKey("r1", INERTIA, "abc").job_id == "inertia:r1:abc"


def test_schedule_reanchor_and_cancel() -> None:
    async def scenario() -> None:
        registry = JobRegistry(timezone=MOSCOW_TZ)
        registry.start()
        try:
            now = datetime.now(MOSCOW_TZ)
            future = now + timedelta(hours=1)
            registry.run_once(JobKey("r1", DELIVERY), future)
            registry.run_every(JobKey("r1", INERTIA, "abc"), "15 minutes", start_at=now, skip_first=True)
            registry.run_once(JobKey("r2", DELIVERY), future)

            ids = {job.id for job in registry.scheduler.get_jobs()}
            assert ids == {"delivery:r1", "inertia:r1:abc", "delivery:r2"}
            inertia_job = registry.scheduler.get_job("inertia:r1:abc")
            assert inertia_job.next_run_time >= now + timedelta(minutes=14)

            moved = future + timedelta(days=1)
            assert registry.reanchor(JobKey("r1", DELIVERY), moved) is True
            assert registry.scheduler.get_job("delivery:r1").next_run_time == moved

            assert registry.cancel("r1", INERTIA) == 1
            assert registry.cancel("r1") == 1
            assert registry.cancel("r1") == 0
            assert {job.id for job in registry.scheduler.get_jobs()} == {"delivery:r2"}
            assert registry.reanchor(JobKey("r1", DELIVERY), moved) is False
        finally:
            registry.shutdown(wait=False)

    asyncio.run(scenario())


def test_same_key_replaces_existing_job() -> None:
    async def scenario() -> None:
        registry = JobRegistry(timezone=MOSCOW_TZ)
        registry.start()
        try:
            now = datetime.now(MOSCOW_TZ)
            registry.run_once(JobKey("r1", DELIVERY), now + timedelta(hours=1))
            registry.run_once(JobKey("r1", DELIVERY), now + timedelta(hours=2))

            jobs = registry.scheduler.get_jobs()
            assert len(jobs) == 1
            assert jobs[0].next_run_time == now + timedelta(hours=2)
            assert registry.keys_for("r1") == [JobKey("r1", DELIVERY)]
        finally:
            registry.shutdown(wait=False)

    asyncio.run(scenario())


def test_past_run_once_fires_handler() -> None:
    fired: list[JobKey] = []

    async def handler(key: JobKey) -> None:
        fired.append(key)

    async def scenario() -> None:
        registry = JobRegistry(timezone=MOSCOW_TZ)
        registry.register_handler(DELIVERY, handler)
        registry.start()
        try:
            registry.run_once(JobKey("r1", DELIVERY), datetime.now(MOSCOW_TZ) - timedelta(minutes=5))
            for _ in range(50):
                if fired:
                    break
                await asyncio.sleep(0.05)
            assert registry.keys_for("r1") == []
        finally:
            registry.shutdown(wait=False)

    asyncio.run(scenario())

    assert fired == [JobKey("r1", DELIVERY)]

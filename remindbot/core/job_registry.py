"""Реестр job'ов на APScheduler: доставка и цикл инерции, ключи вида kind:reminder_id[:instance]."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Literal
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from remindbot.core.recurrence import parse_interval

LOGGER = logging.getLogger(__name__)

JobKind = Literal["delivery", "inertia"]
DELIVERY: JobKind = "delivery"
INERTIA: JobKind = "inertia"

DEFAULT_MISFIRE_GRACE_SECONDS = 60


@dataclass(frozen=True)
class JobKey:
    reminder_id: str
    kind: JobKind
    instance: str | None = None

    @property
    def job_id(self) -> str:
        if self.instance:
            return f"{self.kind}:{self.reminder_id}:{self.instance}"
        return f"{self.kind}:{self.reminder_id}"


JobHandler = Callable[[JobKey], Awaitable[None]]


class JobRegistry:
    """Единый реестр отложенных задач. Не больше одного job'а на ключ: add_job(replace_existing=True)."""

    def __init__(
        self,
        *,
        timezone: ZoneInfo,
        misfire_grace_seconds: int = DEFAULT_MISFIRE_GRACE_SECONDS,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._timezone = timezone
        self._misfire_grace_seconds = misfire_grace_seconds
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._handlers: dict[str, JobHandler] = {}
        self._keys: dict[str, set[JobKey]] = {}

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def register_handler(self, kind: JobKind, handler: JobHandler) -> None:
        self._handlers[kind] = handler

    def start(self) -> None:
        if self._scheduler.running:
            LOGGER.info("JobRegistry already started, skipping")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
        self._scheduler._eventloop = loop
        self._scheduler.start()
        LOGGER.info("JobRegistry (APScheduler) started")

    def shutdown(self, wait: bool = True) -> None:
        if not self._scheduler.running:
            return
        try:
            self._scheduler.shutdown(wait=wait)
            LOGGER.info("JobRegistry shutdown")
        except Exception:
            LOGGER.exception("JobRegistry shutdown error")

    def run_once(self, key: JobKey, at: datetime) -> JobKey:
        """Одноразовый job на at; время в прошлом запускается сразу, а не теряется как пропущенное."""
        now = datetime.now(self._timezone)
        run_date = at if at > now else now
        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=run_date, timezone=self._timezone),
            id=key.job_id,
            replace_existing=True,
            misfire_grace_time=self._misfire_grace_seconds,
            kwargs={"key": key},
        )
        self._remember(key)
        LOGGER.info("Job scheduled: job_id=%s run_at=%s", key.job_id, run_date.isoformat())
        return key

    def run_every(
        self,
        key: JobKey,
        interval: str,
        *,
        start_at: datetime | None = None,
        skip_first: bool = False,
    ) -> JobKey:
        """Периодический job. skip_first: первое срабатывание через interval после start_at."""
        spec = parse_interval(interval)
        start = start_at or datetime.now(self._timezone)
        if skip_first:
            start = start + spec.as_timedelta()
        self._scheduler.add_job(
            self._fire,
            trigger=IntervalTrigger(
                seconds=int(spec.as_timedelta().total_seconds()),
                start_date=start,
                timezone=self._timezone,
            ),
            id=key.job_id,
            replace_existing=True,
            misfire_grace_time=self._misfire_grace_seconds,
            coalesce=True,
            kwargs={"key": key},
        )
        self._remember(key)
        LOGGER.info(
            "Periodic job scheduled: job_id=%s interval=%s start_at=%s calendar=%s",
            key.job_id,
            spec,
            start.isoformat(),
            spec.is_calendar,
        )
        return key

    def reanchor(self, key: JobKey, next_run: datetime) -> bool:
        """Сдвинуть следующее срабатывание периодического job'а (календарные месяцы/годы, DST)."""
        job = self._scheduler.get_job(key.job_id)
        if job is None:
            self._forget(key)
            return False
        job.modify(next_run_time=next_run)
        LOGGER.info("Job reanchored: job_id=%s next_run=%s", key.job_id, next_run.isoformat())
        return True

    def cancel(self, reminder_id: str, kind: JobKind | None = None, instance: str | None = None) -> int:
        """Снять job'ы напоминания: все, все одного вида или один конкретный. Синхронно."""
        removed = 0
        candidates = set(self._keys.get(reminder_id, ()))
        if kind is not None and (instance is not None or kind == DELIVERY):
            candidates.add(JobKey(reminder_id, kind, instance))
        for key in candidates:
            if kind is not None and key.kind != kind:
                continue
            if instance is not None and key.instance != instance:
                continue
            try:
                self._scheduler.remove_job(key.job_id)
                removed += 1
            except JobLookupError:
                LOGGER.debug("Job already gone: job_id=%s", key.job_id)
            self._forget(key)
        if removed:
            LOGGER.info(
                "Jobs cancelled: reminder_id=%s kind=%s instance=%s removed=%s",
                reminder_id,
                kind,
                instance,
                removed,
            )
        return removed

    def keys_for(self, reminder_id: str) -> list[JobKey]:
        return sorted(self._keys.get(reminder_id, ()), key=lambda item: item.job_id)

    async def _fire(self, key: JobKey) -> None:
        if self._scheduler.get_job(key.job_id) is None:
            self._forget(key)
        handler = self._handlers.get(key.kind)
        if handler is None:
            LOGGER.warning("No handler for job: job_id=%s", key.job_id)
            return
        try:
            await handler(key)
        except Exception:
            LOGGER.exception("Job failed: job_id=%s", key.job_id)

    def _remember(self, key: JobKey) -> None:
        self._keys.setdefault(key.reminder_id, set()).add(key)

    def _forget(self, key: JobKey) -> None:
        keys = self._keys.get(key.reminder_id)
        if not keys:
            return
        keys.discard(key)
        if not keys:
            self._keys.pop(key.reminder_id, None)

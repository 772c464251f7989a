"""
Recurring callback scheduling.

Consumers only see ``schedule_recurring`` and the handle it returns, so tests
can swap in a deterministic scheduler. The running service uses APScheduler's
AsyncIOScheduler; every job runs on the event loop thread.
"""

from __future__ import annotations

import inspect
import logging
from datetime import timezone
from typing import Any, Callable, Protocol
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


class ScheduledHandle(Protocol):
    @property
    def cancelled(self) -> bool:
        ...

    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def schedule_recurring(self, interval_seconds: float, callback: Callback, name: str = "") -> ScheduledHandle:
        ...


class _JobHandle:
    def __init__(self, scheduler: AsyncIOScheduler, job_id: str):
        self._scheduler = scheduler
        self._job_id = job_id
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            logger.debug("Job %s already removed", self._job_id)


class ApschedulerScheduler:
    def __init__(self) -> None:
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started")

    def shutdown(self) -> None:
        """Stop the scheduler; ``running`` only flips after the next loop iteration."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shut down")

    def schedule_recurring(self, interval_seconds: float, callback: Callback, name: str = "") -> ScheduledHandle:
        self.start()
        job_id = f"{name or 'job'}:{uuid4().hex}"

        # Plain functions would go to APScheduler's thread pool; keep them on the loop.
        async def _run() -> None:
            result = callback()
            if inspect.isawaitable(result):
                await result

        self._scheduler.add_job(
            _run,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            name=name or job_id,
            max_instances=1,
            coalesce=True,
        )
        return _JobHandle(self._scheduler, job_id)

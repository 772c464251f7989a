import asyncio
import inspect
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from crash_console.api.routes import health, market_crash
from crash_console.core.errors import CrashConsoleError, RemoteError
from crash_console.domain.models import (
    BranchCrashState,
    BranchSummary,
    CrashActionResult,
    Notification,
)
from crash_console.domain.services.config_engine import ConfigEngine, CrashOptions
from crash_console.domain.services.crash_workflow import BranchCrashWorkflow
from crash_console.realtime.crash_broadcast import GlobalCrashBroadcast
from crash_console.services.notification_service import NotificationFeed

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
T0 = datetime(2024, 3, 1, 18, 0, 0, tzinfo=timezone.utc)


async def settle(rounds: int = 5) -> None:
    """Let pending tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeJob:
    def __init__(self, interval_seconds: float, callback: Callable[[], Any], name: str):
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.name = name
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Recurring jobs that only run when a test calls ``tick``."""

    def __init__(self):
        self.jobs: List[FakeJob] = []

    def schedule_recurring(self, interval_seconds, callback, name=""):
        job = FakeJob(interval_seconds, callback, name)
        self.jobs.append(job)
        return job

    def active(self, prefix: str = "") -> List[FakeJob]:
        return [job for job in self.jobs if not job.cancelled and job.name.startswith(prefix)]

    async def tick(self, prefix: str = "", times: int = 1) -> None:
        for _ in range(times):
            for job in self.active(prefix):
                if job.cancelled:
                    continue
                result = job.callback()
                if inspect.isawaitable(result):
                    await result


class FakeBackend:
    """
    In-memory branch directory + pricing service.

    ``fail_next[op]`` raises once for that operation; ``hold(op)`` blocks the
    next call of that operation until the returned event is set.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.branches: Dict[str, BranchCrashState] = {}
        self.calls: List[tuple] = []
        self.fail_next: Dict[str, CrashConsoleError] = {}
        self.reset_count: Optional[int] = None
        self._holds: Dict[str, asyncio.Event] = {}

    def add_branch(self, branch_id: str, name: str, active: bool = False, **fields) -> BranchCrashState:
        state = BranchCrashState(branch_id=branch_id, name=name, active=active, **fields)
        self.branches[branch_id] = state
        return state

    def update_branch(self, branch_id: str, **fields) -> BranchCrashState:
        self.branches[branch_id] = replace(self.branches[branch_id], **fields)
        return self.branches[branch_id]

    def hold(self, op: str) -> asyncio.Event:
        event = asyncio.Event()
        self._holds[op] = event
        return event

    def count(self, op: str) -> int:
        return sum(1 for call in self.calls if call[0] == op)

    async def _enter(self, op: str, *args) -> None:
        self.calls.append((op,) + args)
        event = self._holds.pop(op, None)
        if event is not None:
            await event.wait()
        error = self.fail_next.pop(op, None)
        if error is not None:
            raise error

    def _require(self, branch_id: str) -> BranchCrashState:
        if branch_id not in self.branches:
            raise RemoteError("Branch not found", status_code=404)
        return self.branches[branch_id]

    async def list_branches(self) -> List[BranchSummary]:
        await self._enter("list_branches")
        return [branch.to_summary() for branch in self.branches.values()]

    async def get_branch(self, branch_id: str) -> BranchCrashState:
        await self._enter("get_branch", branch_id)
        return self._require(branch_id)

    async def trigger_crash(self, branch_id: str, intensity_percent: int, duration_minutes: int) -> CrashActionResult:
        await self._enter("trigger_crash", branch_id, intensity_percent, duration_minutes)
        branch = self._require(branch_id)
        if branch.active:
            raise RemoteError("Market crash is already active for this branch", status_code=400)
        now = self.clock()
        self.update_branch(
            branch_id,
            active=True,
            start_time=now,
            end_time=now + timedelta(minutes=duration_minutes),
            duration_minutes=duration_minutes,
            intensity_percent=intensity_percent,
        )
        return CrashActionResult(message="Market crash triggered successfully")

    async def end_crash(self, branch_id: str) -> CrashActionResult:
        await self._enter("end_crash", branch_id)
        branch = self._require(branch_id)
        if not branch.active:
            raise RemoteError("No active market crash for this branch", status_code=400)
        self.update_branch(branch_id, active=False, end_time=self.clock())
        data = {"resetCount": self.reset_count} if self.reset_count is not None else None
        return CrashActionResult(
            message="Market crash ended successfully",
            data=data,
            reset_count=self.reset_count,
        )


class RecordingSink:
    def __init__(self):
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def titles(self) -> List[str]:
        return [n.title for n in self.notifications]

    @property
    def last(self) -> Optional[Notification]:
        return self.notifications[-1] if self.notifications else None


@pytest.fixture(name="settle")
def settle_fixture():
    return settle


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def backend(clock) -> FakeBackend:
    return FakeBackend(clock)


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture(scope="session")
def options() -> CrashOptions:
    engine = ConfigEngine(CONFIG_DIR)
    engine.load_all()
    return engine.crash_options


@pytest.fixture()
def broadcast(backend, scheduler, clock) -> GlobalCrashBroadcast:
    return GlobalCrashBroadcast(backend, scheduler, poll_interval_seconds=10.0, clock=clock)


@pytest.fixture()
def workflow(backend, broadcast, sink, scheduler, options, clock) -> BranchCrashWorkflow:
    return BranchCrashWorkflow(
        directory=backend,
        pricing=backend,
        broadcast=broadcast,
        notifier=sink,
        scheduler=scheduler,
        options=options,
        clock=clock,
    )


@pytest.fixture()
def feed() -> NotificationFeed:
    return NotificationFeed()


@pytest.fixture()
async def app(backend, broadcast, feed, scheduler, options, clock) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(market_crash.router, prefix="/api/v1/market-crash", tags=["Market Crash"])

    workflow = BranchCrashWorkflow(
        directory=backend,
        pricing=backend,
        broadcast=broadcast,
        notifier=feed,
        scheduler=scheduler,
        options=options,
        clock=clock,
    )
    app.state.broadcast = broadcast
    app.state.workflow = workflow
    app.state.notification_feed = feed

    yield app

    await workflow.dispose()
    await broadcast.dispose()


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

import asyncio
from typing import Optional

import pytest

from timetable_sync.constants import DAYS
from timetable_sync.json.schedule_parser import copy_schedule_map
from timetable_sync.models.model import FetchResult, ScheduleGrid, ScheduleMap
from timetable_sync.remote.remote_store import RemoteScheduleStore
from timetable_sync.sql.local_cache import LocalCache
from timetable_sync.sync.engine import SyncEngine


class FakeStore(RemoteScheduleStore):
    """In-memory remote store; saves can be held open with ``save_gate``."""

    name = "fake"

    def __init__(self, schedules: Optional[ScheduleMap] = None, version: Optional[str] = "v1"):
        self.schedules = copy_schedule_map(schedules or {})
        self.version = version
        self.fetch_error: Optional[Exception] = None
        self.save_error: Optional[Exception] = None
        self.save_gate: Optional[asyncio.Event] = None
        self.saves = []
        self.blocking_saves = []
        self.deliveries: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self._counter = 1

    def _write(self, schedules: ScheduleMap) -> str:
        self.schedules = copy_schedule_map(schedules)
        self._counter += 1
        self.version = f"v{self._counter}"
        return self.version

    async def fetch_all(self) -> FetchResult:
        if self.fetch_error is not None:
            raise self.fetch_error
        return FetchResult(schedules=copy_schedule_map(self.schedules), version=self.version)

    async def save_all(self, schedules: ScheduleMap) -> Optional[str]:
        if self.save_gate is not None:
            await self.save_gate.wait()
        if self.save_error is not None:
            raise self.save_error
        self.saves.append(copy_schedule_map(schedules))
        return self._write(schedules)

    def save_all_blocking(self, schedules: ScheduleMap) -> Optional[str]:
        if self.save_error is not None:
            raise self.save_error
        self.blocking_saves.append(copy_schedule_map(schedules))
        return self._write(schedules)

    async def snapshots(self):
        while True:
            yield await self.deliveries.get()

    async def aclose(self) -> None:
        self.closed = True


class FakeScheduler:
    """Records armed jobs; tests fire them explicitly instead of waiting."""

    def __init__(self):
        self.jobs = {}
        self.armed = []
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def arm(self, job_id, delay, func, *args):
        self.jobs[job_id] = (func, args)
        self.armed.append(job_id)

    def cancel(self, job_id):
        self.jobs.pop(job_id, None)

    def is_armed(self, job_id):
        return job_id in self.jobs

    def shutdown(self):
        self.jobs.clear()
        self.stopped = True

    async def fire(self, job_id):
        func, args = self.jobs.pop(job_id)
        result = func(*args)
        if asyncio.iscoroutine(result):
            await result


@pytest.fixture
def grid():
    return ScheduleGrid(days=list(DAYS), start_hour=8, end_hour=10, teachers=["Alice", "Bob"])


@pytest.fixture
def local_cache(tmp_path):
    cache = LocalCache(str(tmp_path / "cache.db"))
    yield cache
    cache.close()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
async def engine(store, local_cache, grid, scheduler):
    engine = SyncEngine(store, local_cache, grid=grid, scheduler=scheduler)
    await engine.init()
    yield engine
    await engine.dispose()

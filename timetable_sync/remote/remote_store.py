import abc
from typing import AsyncIterator, Optional

from timetable_sync.models.model import FetchResult, ScheduleMap


class RemoteScheduleStore(abc.ABC):
    """
    Contract the sync engine expects from a shared backend.

    Every schedule is read and written together as one ScheduleMap. Failures
    surface as StoreError subclasses; "unconfigured" (StoreUnconfigured) is
    distinct from "empty" (a FetchResult with no schedules).
    """

    name: str = "remote"

    @abc.abstractmethod
    async def fetch_all(self) -> FetchResult:
        ...

    @abc.abstractmethod
    async def save_all(self, schedules: ScheduleMap) -> Optional[str]:
        """Write the full snapshot and return the new version."""

    @abc.abstractmethod
    def save_all_blocking(self, schedules: ScheduleMap) -> Optional[str]:
        """Synchronous save for process exit, when no event loop iteration can be relied on."""

    @abc.abstractmethod
    def snapshots(self) -> AsyncIterator[FetchResult]:
        """Stream of remote snapshots; cancelling the consumer tears the source down."""

    async def aclose(self) -> None:
        return None

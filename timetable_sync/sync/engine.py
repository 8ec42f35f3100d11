"""
Sync engine: the single owner of the roster-wide ScheduleMap.

The UI layer reads and edits schedules only through this object. Edits land
in a detached working copy of the current teacher's schedule, are flushed
into the map straight away and persisted by a debounced, serialized save.
Remote snapshots (polled or pushed) are reconciled without clobbering edits
that have not reached the store yet.
"""
import asyncio
from typing import Callable, Dict, List, Optional, Union

from timetable_sync.constants import (
    SAVE_DEBOUNCE,
    SAVE_JOB_ID,
    SELF_WRITE_GRACE,
    SELF_WRITE_JOB_ID,
    STATUS_RESET_DELAY,
    STATUS_RESET_JOB_ID,
)
from timetable_sync.helper.slot_helper import iter_slot_keys, slot_key, summarize_state
from timetable_sync.json.schedule_parser import canonical_schedules, copy_schedule_map
from timetable_sync.models.model import (
    STATE_CYCLE,
    FetchResult,
    Schedule,
    ScheduleGrid,
    ScheduleMap,
    SlotState,
    StatusEvent,
    SyncStatus,
)
from timetable_sync.remote.remote_store import RemoteScheduleStore
from timetable_sync.remote.store_errors import StoreError, StoreUnconfigured, StoreUnreachable
from timetable_sync.scheduler.sync_scheduler import SyncScheduler
from timetable_sync.sql.local_cache import LocalCache
from timetable_sync.sync.save_state import SaveAction, SaveEvent, SaveStateMachine
from timetable_sync.utils.logging_config import get_sync_logger, log_sync_operation

logger = get_sync_logger()

OFFLINE_MESSAGE = "Offline mode (local storage only)"
ACTIVE_MESSAGE = "Cloud sync active"

StatusListener = Callable[[StatusEvent], None]
RemoteUpdateListener = Callable[[List[str]], None]


class SyncEngine:

    def __init__(
        self,
        store: Optional[RemoteScheduleStore],
        local_cache: LocalCache,
        grid: Optional[ScheduleGrid] = None,
        scheduler: Optional[SyncScheduler] = None,
        save_debounce: float = SAVE_DEBOUNCE,
        self_write_grace: float = SELF_WRITE_GRACE,
        status_reset_delay: float = STATUS_RESET_DELAY,
    ):
        """
        Args:
            store: Remote adapter, or None when no backend is configured
            local_cache: Durable fallback holding the last known ScheduleMap
            grid: Days, hours and roster; defaults to the built-in constants
            scheduler: Timer source; a fresh AsyncIOScheduler-backed one by default
            save_debounce: Seconds of quiet before an edit is saved
            self_write_grace: Seconds an acknowledged write is still treated as our own
            status_reset_delay: Seconds before a transient status falls back to "active"
        """
        self.store = store
        self.local_cache = local_cache
        self.grid = grid or ScheduleGrid()
        self.scheduler = scheduler or SyncScheduler()
        self.save_debounce = save_debounce
        self.self_write_grace = self_write_grace
        self.status_reset_delay = status_reset_delay

        self.schedules: ScheduleMap = {}
        self.current_teacher: Optional[str] = None
        self.working_schedule: Schedule = {}
        self.last_known_version: Optional[str] = None

        self.status = SyncStatus.SYNCING
        self.status_message = ""
        self.local_only = store is None

        self._save_state = SaveStateMachine()
        self._self_write_payload: Optional[str] = None
        self._snapshot_task: Optional[asyncio.Task] = None
        self._status_listeners: List[StatusListener] = []
        self._remote_update_listeners: List[RemoteUpdateListener] = []

    # Lifecycle

    async def init(self):
        self.scheduler.start()
        await self.fetch_remote()
        self._ensure_roster()

        if not self.local_only and self.store is not None:
            self._snapshot_task = asyncio.create_task(self._consume_snapshots())

        log_sync_operation(
            logger, "init",
            details=f"teachers={len(self.schedules)}, mode={'local-only' if self.local_only else 'cloud'}"
        )

    async def dispose(self):
        if self._snapshot_task is not None:
            self._snapshot_task.cancel()
            try:
                await self._snapshot_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Snapshot task had already failed: {e}")
            self._snapshot_task = None

        self.scheduler.shutdown()
        if self.store is not None:
            await self.store.aclose()
        self.local_cache.close()
        log_sync_operation(logger, "dispose")

    # Observers

    def on_status(self, listener: StatusListener):
        self._status_listeners.append(listener)

    def on_remote_update(self, listener: RemoteUpdateListener):
        self._remote_update_listeners.append(listener)

    @property
    def save_in_flight(self) -> bool:
        return self._save_state.save_in_flight

    @property
    def pending_save(self) -> bool:
        return self._save_state.pending_save

    @property
    def save_state(self):
        return self._save_state.state

    # Reads

    def get_slot(self, day: str, hour: int) -> SlotState:
        return SlotState(self.working_schedule.get(slot_key(day, hour), SlotState.NONE.value))

    def schedule_for(self, teacher: str) -> Schedule:
        """Detached copy of a teacher's schedule, including unsaved edits of the current teacher."""
        if teacher == self.current_teacher:
            return dict(self.working_schedule)
        return dict(self.schedules.get(teacher, {}))

    def summary(self, state: Union[SlotState, str] = SlotState.AVAILABLE) -> Dict[str, List[str]]:
        return summarize_state(self.working_schedule, self.grid, SlotState(state))

    # Edits

    def select_teacher(self, teacher: str):
        if teacher not in self.grid.teachers and teacher not in self.schedules:
            raise ValueError(f"Unknown teacher: {teacher}")

        if self.current_teacher is not None:
            self._flush_working_schedule()
            self.schedule_save()

        self.current_teacher = teacher
        self.working_schedule = dict(self.schedules.setdefault(teacher, {}))
        log_sync_operation(logger, "select", teacher=teacher, details=f"slots={len(self.working_schedule)}")

    def set_slot(self, day: str, hour: int, state: Union[SlotState, str, None]):
        if self.current_teacher is None:
            logger.debug(f"Ignoring edit of {day}-{hour}: no teacher selected")
            return

        self._check_slot(day, hour)
        if self._apply_slot(slot_key(day, hour), SlotState(state or SlotState.NONE)):
            self._flush_working_schedule()
            self.schedule_save()

    def cycle_slot(self, day: str, hour: int) -> SlotState:
        """Advance none -> available -> unavailable -> none. A colour category cycles back to none."""
        current = self.get_slot(day, hour)
        if current in STATE_CYCLE:
            next_state = STATE_CYCLE[(STATE_CYCLE.index(current) + 1) % len(STATE_CYCLE)]
        else:
            next_state = SlotState.NONE
        self.set_slot(day, hour, next_state)
        return next_state

    def bulk_set(self, state: Union[SlotState, str, None]):
        if self.current_teacher is None:
            logger.debug("Ignoring bulk edit: no teacher selected")
            return

        state = SlotState(state or SlotState.NONE)
        changed = False
        for key in iter_slot_keys(self.grid):
            changed = self._apply_slot(key, state) or changed

        log_sync_operation(logger, "bulk_set", teacher=self.current_teacher, details=f"state={state.value}")
        if changed:
            self._flush_working_schedule()
            self.schedule_save()

    def select_all(self):
        self.bulk_set(SlotState.AVAILABLE)

    def clear_all(self):
        self.bulk_set(SlotState.NONE)

    def _check_slot(self, day: str, hour: int):
        if day not in self.grid.days:
            raise ValueError(f"Unknown day: {day}")
        if hour not in self.grid.hours:
            raise ValueError(f"Hour {hour} outside [{self.grid.start_hour}, {self.grid.end_hour})")

    def _apply_slot(self, key: str, state: SlotState) -> bool:
        previous = self.working_schedule.get(key)
        if state is SlotState.NONE:
            self.working_schedule.pop(key, None)
            return previous is not None
        self.working_schedule[key] = state.value
        return previous != state.value

    def _flush_working_schedule(self):
        if self.current_teacher is not None:
            self.schedules[self.current_teacher] = dict(self.working_schedule)

    def _ensure_roster(self):
        for teacher in self.grid.teachers:
            self.schedules.setdefault(teacher, {})

    # Remote reads

    async def fetch_remote(self) -> bool:
        """
        Seed the map from the remote store, or from the local cache when the
        store is missing or failing. Never raises a store error.

        Returns:
            bool: True when the remote copy was used
        """
        if self.store is None:
            self._fall_back_to_local(OFFLINE_MESSAGE)
            return False

        self._set_status(SyncStatus.SYNCING, "Syncing with cloud...")
        try:
            result = await self.store.fetch_all()
        except StoreUnconfigured as e:
            logger.warning(f"Remote store not configured: {e}")
            self._fall_back_to_local(f"{self.store.name} not configured - using local storage")
            return False
        except StoreUnreachable as e:
            logger.error(f"Error loading schedules from {self.store.name}: {e}")
            self._fall_back_to_local(OFFLINE_MESSAGE)
            return False
        except StoreError as e:
            logger.error(f"Error loading schedules from {self.store.name}: {e}")
            self._fall_back_to_local(f"{e} - using local storage")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error loading schedules from {self.store.name}: {e}")
            self._fall_back_to_local(f"{e} - using local storage")
            return False

        self._merge_remote(result.schedules)
        self.last_known_version = result.version
        self.local_only = False
        self._set_status(SyncStatus.SYNCED, ACTIVE_MESSAGE)
        log_sync_operation(
            logger, "fetch",
            details=f"teachers={len(result.schedules)}, lastUpdated={result.version}"
        )
        return True

    def _fall_back_to_local(self, message: str):
        self.local_only = True
        cached = self.local_cache.load()
        if cached:
            self._merge_remote(cached)
        self._set_status(SyncStatus.LOCAL_ONLY, message)

    def _merge_remote(self, remote: ScheduleMap) -> List[str]:
        """Replace each teacher present in ``remote`` wholesale; returns the teachers that changed."""
        changed = [
            teacher for teacher, schedule in remote.items()
            if self.schedules.get(teacher, {}) != schedule
        ]
        self.schedules.update(copy_schedule_map(remote))
        if self.current_teacher is not None:
            self.working_schedule = dict(self.schedules.get(self.current_teacher, {}))
        return changed

    async def _consume_snapshots(self):
        try:
            async for result in self.store.snapshots():
                self.apply_remote_snapshot(result)
        except StoreError as e:
            logger.error(f"Remote subscription ended: {e}")
            self._set_status(SyncStatus.LOCAL_ONLY, f"{e} - using local storage")
        except Exception as e:
            logger.exception(f"Remote subscription crashed: {e}")
            self._set_status(SyncStatus.LOCAL_ONLY, f"{e} - using local storage")

    def apply_remote_snapshot(self, result: FetchResult) -> bool:
        """
        Reconcile one inbound snapshot.

        Applied only when the version moved AND the data differs from both the
        local map and our own last write. Deliveries are ignored while a save
        is pending or in flight; our write lands afterwards and wins.

        Returns:
            bool: True when the remote data replaced local schedules
        """
        if self._save_state.busy:
            logger.debug(f"Skipping remote snapshot while save is {self._save_state.state.value}")
            return False

        if not result.version or result.version == self.last_known_version:
            return False

        remote_payload = canonical_schedules(result.schedules)
        if remote_payload == self._self_write_payload:
            logger.debug(f"Own write echoed back, lastUpdated={result.version}")
            self.last_known_version = result.version
            return False

        self._flush_working_schedule()
        if remote_payload == canonical_schedules(self.schedules):
            logger.debug(f"Version changed, data unchanged, lastUpdated={result.version}")
            self.last_known_version = result.version
            return False

        changed = self._merge_remote(result.schedules)
        self._ensure_roster()
        self.last_known_version = result.version
        self.local_cache.save(self.schedules)

        log_sync_operation(
            logger, "reconcile",
            details=f"changed={', '.join(changed) or '-'}, lastUpdated={result.version}"
        )
        self._set_status(SyncStatus.SYNCED, "Updated from cloud")
        self.scheduler.arm(STATUS_RESET_JOB_ID, self.status_reset_delay, self._reset_status)

        for listener in self._remote_update_listeners:
            try:
                listener(changed)
            except Exception as e:
                logger.exception(f"Remote update listener failed: {e}")
        return True

    # Saves

    def schedule_save(self):
        """Debounced save: repeated calls collapse; edits during a save queue exactly one more."""
        action = self._save_state.handle(SaveEvent.EDIT)
        if action is SaveAction.ARM_TIMER:
            self.scheduler.arm(SAVE_JOB_ID, self.save_debounce, self.save_now)
        else:
            logger.debug(f"Save queued behind in-flight save ({self._save_state.state.value})")

    async def save_now(self):
        """Run the pending save immediately (the debounce timer calls this)."""
        self.scheduler.cancel(SAVE_JOB_ID)
        if self._save_state.save_in_flight:
            self._save_state.handle(SaveEvent.EDIT)
            return
        if not self._save_state.busy:
            self._save_state.handle(SaveEvent.EDIT)
        self._save_state.handle(SaveEvent.TIMER_FIRES)

        self._flush_working_schedule()
        snapshot = copy_schedule_map(self.schedules)

        if self.store is None:
            self.local_cache.save(snapshot)
            self._finish_save(SaveEvent.SAVE_ACKED)
            return

        self._self_write_payload = canonical_schedules(snapshot)
        self.scheduler.cancel(SELF_WRITE_JOB_ID)
        self._set_status(SyncStatus.SYNCING, "Saving to cloud...")

        try:
            version = await self.store.save_all(snapshot)
        except StoreError as e:
            logger.error(f"Error saving to {self.store.name}: {e}")
            self._save_failed(snapshot, e)
            return
        except Exception as e:
            logger.exception(f"Unexpected error saving to {self.store.name}: {e}")
            self._save_failed(snapshot, e)
            return

        if version:
            self.last_known_version = version
        self.local_cache.save(snapshot)
        self.local_only = False
        self.scheduler.arm(SELF_WRITE_JOB_ID, self.self_write_grace, self._clear_self_write)
        log_sync_operation(logger, "save", details=f"teachers={len(snapshot)}, lastUpdated={version}")

        self._finish_save(SaveEvent.SAVE_ACKED)
        self._set_status(SyncStatus.SYNCED, "Saved to cloud")
        self.scheduler.arm(STATUS_RESET_JOB_ID, self.status_reset_delay, self._reset_status)

    def _save_failed(self, snapshot: ScheduleMap, error: Exception):
        self._self_write_payload = None
        self.local_cache.save(snapshot)
        self.local_only = True
        self._finish_save(SaveEvent.SAVE_FAILED)
        self._set_status(SyncStatus.LOCAL_ONLY, f"{error} - using local storage")

    def _finish_save(self, event: SaveEvent):
        if self._save_state.handle(event) is SaveAction.ARM_TIMER:
            logger.debug("Edits arrived during save; arming one more")
            self.scheduler.arm(SAVE_JOB_ID, self.save_debounce, self.save_now)

    def flush_and_save_sync(self):
        """
        Best-effort synchronous save for process exit. Does not wait for the
        debounce timer, which may never fire.
        """
        self.scheduler.cancel(SAVE_JOB_ID)
        self._flush_working_schedule()
        snapshot = copy_schedule_map(self.schedules)
        self.local_cache.save(snapshot)

        if self.store is None:
            return
        try:
            version = self.store.save_all_blocking(snapshot)
        except StoreError as e:
            logger.error(f"Final save to {self.store.name} failed: {e}")
            return
        except Exception as e:
            logger.exception(f"Unexpected error in final save to {self.store.name}: {e}")
            return
        if version:
            self.last_known_version = version
        log_sync_operation(logger, "flush", details=f"teachers={len(snapshot)}, lastUpdated={version}")

    def _clear_self_write(self):
        self._self_write_payload = None

    # Status

    def _reset_status(self):
        if self.status is SyncStatus.SYNCED:
            self._set_status(SyncStatus.SYNCED, ACTIVE_MESSAGE)

    def _set_status(self, status: SyncStatus, message: str):
        # Keep "Saving" visible until the save itself reports back
        if self._save_state.save_in_flight and status is not SyncStatus.SYNCING:
            return
        self.status = status
        self.status_message = message
        event = StatusEvent(status, message)
        for listener in self._status_listeners:
            try:
                listener(event)
            except Exception as e:
                logger.exception(f"Status listener failed: {e}")

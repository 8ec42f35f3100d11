# model.py
import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from timetable_sync.constants import DAYS, END_HOUR, START_HOUR, TEACHERS

# { "Monday-8": "available", ... }
Schedule = Dict[str, str]
# { teacher: Schedule }
ScheduleMap = Dict[str, Schedule]


class SlotState(str, enum.Enum):
    NONE = "none"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    NAVY = "navy"
    CYAN = "cyan"
    MAGENTA = "magenta"
    SALMON = "salmon"


# Left-click cycle; colour categories are only reachable through set_slot
STATE_CYCLE = [SlotState.NONE, SlotState.AVAILABLE, SlotState.UNAVAILABLE]

STATE_LABELS = {
    SlotState.AVAILABLE: "Available",
    SlotState.UNAVAILABLE: "Unavailable",
    SlotState.NAVY: "Home Teachers",
    SlotState.CYAN: "Home Teachers (extra)",
    SlotState.MAGENTA: "SpeakOn",
    SlotState.SALMON: "SpeakOn (extra)",
}


class SyncStatus(str, enum.Enum):
    SYNCING = "syncing"
    SYNCED = "synced"
    LOCAL_ONLY = "local-only"


@dataclass(frozen=True)
class StatusEvent:
    status: SyncStatus
    message: str


@dataclass
class FetchResult:
    schedules: ScheduleMap = field(default_factory=dict)
    version: Optional[str] = None


@dataclass
class ScheduleGrid:
    days: List[str] = field(default_factory=lambda: list(DAYS))
    start_hour: int = START_HOUR
    end_hour: int = END_HOUR
    teachers: List[str] = field(default_factory=lambda: list(TEACHERS))

    def __post_init__(self):
        if self.start_hour >= self.end_hour:
            raise ValueError(f"start_hour ({self.start_hour}) must be before end_hour ({self.end_hour})")

    @property
    def hours(self) -> range:
        return range(self.start_hour, self.end_hour)

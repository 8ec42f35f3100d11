import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

from timetable_sync.helper.slot_helper import parse_slot_key
from timetable_sync.models.model import ScheduleMap, SlotState

_STORED_STATES = {state.value for state in SlotState if state is not SlotState.NONE}


class ScheduleMapJson(RootModel[Dict[str, Dict[str, Optional[str]]]]):
    """Pydantic model for the roster-wide { teacher: { "Day-Hour": state } } map"""

    @field_validator("root")
    @classmethod
    def normalize_states(cls, value: Dict[str, Dict[str, Optional[str]]]) -> Dict[str, Dict[str, Optional[str]]]:
        normalized = {}
        for teacher, schedule in value.items():
            slots = {}
            for key, state in schedule.items():
                parse_slot_key(key)
                # Cleared slots may arrive as null or "none"; absence means none
                if state is None or state == SlotState.NONE.value:
                    continue
                if state not in _STORED_STATES:
                    raise ValueError(f"Unknown slot state {state!r} for {teacher}/{key}")
                slots[key] = state
            normalized[teacher] = slots
        return normalized


class SchedulesRequestJson(BaseModel):
    """Pydantic model for the POST /api/schedules body"""
    schedules: ScheduleMapJson


class SchedulesResponseJson(BaseModel):
    """Pydantic model for API responses (GET and POST share the envelope)"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    schedules: Optional[ScheduleMapJson] = None
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")
    error: Optional[str] = None
    details: Optional[str] = None
    message: Optional[str] = None


class ScheduleDocumentJson(BaseModel):
    """Pydantic model for the Firestore document holding every schedule"""
    model_config = ConfigDict(populate_by_name=True)

    schedules: ScheduleMapJson = Field(default_factory=lambda: ScheduleMapJson({}))
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")


def parse_schedule_map(raw_data: Any) -> ScheduleMap:
    """
    Validate and normalize a raw schedule map.

    Args:
        raw_data: Decoded JSON (dict) from the API, Firestore or the local cache

    Returns:
        ScheduleMap: Map with only stored states left

    Raises:
        pydantic.ValidationError: if the data is not a schedule map
    """
    return ScheduleMapJson.model_validate(raw_data).root


def parse_schedules_response(raw_data: dict) -> SchedulesResponseJson:
    return SchedulesResponseJson.model_validate(raw_data)


def parse_schedule_document(raw_data: dict) -> ScheduleDocumentJson:
    return ScheduleDocumentJson.model_validate(raw_data)


def copy_schedule_map(schedules: ScheduleMap) -> ScheduleMap:
    return {teacher: dict(schedule) for teacher, schedule in schedules.items()}


def canonical_schedules(schedules: ScheduleMap) -> str:
    """
    Serialize a schedule map for change detection.
    Key order, empty schedules and cleared slots do not affect the result.
    """
    compact = {}
    for teacher, schedule in schedules.items():
        slots = {key: state for key, state in schedule.items() if state and state != SlotState.NONE.value}
        if slots:
            compact[teacher] = slots
    return json.dumps(compact, sort_keys=True, separators=(",", ":"))


def dump_schedules(schedules: ScheduleMap) -> str:
    return json.dumps(schedules, separators=(",", ":"))

from typing import Dict, Iterator, List, Tuple

from timetable_sync.constants import DAYS
from timetable_sync.models.model import STATE_LABELS, Schedule, ScheduleGrid, SlotState


def slot_key(day: str, hour: int) -> str:
    return f"{day}-{hour}"


def parse_slot_key(key: str) -> Tuple[str, int]:
    """
    Split a canonical "<Day>-<Hour>" key.

    Raises:
        ValueError: if the key is not in canonical form, names an unknown
            day or an hour outside 0-23
    """
    day, sep, hour = key.rpartition("-")
    if not sep or day not in DAYS or not hour.isdigit() or int(hour) > 23:
        raise ValueError(f"Invalid slot key: {key!r}")
    return day, int(hour)


def iter_slot_keys(grid: ScheduleGrid) -> Iterator[str]:
    for hour in grid.hours:
        for day in grid.days:
            yield slot_key(day, hour)


def format_hour(hour: int) -> str:
    """Format an hour for display (8 -> "8:00 AM", 13 -> "1:00 PM")."""
    period = "PM" if hour >= 12 else "AM"
    if hour > 12:
        display_hour = hour - 12
    elif hour == 0:
        display_hour = 12
    else:
        display_hour = hour
    return f"{display_hour}:00 {period}"


def group_consecutive_hours(hours: List[int]) -> List[Tuple[int, int]]:
    """Group hours into inclusive (start, end) runs: [8, 9, 10, 13] -> [(8, 10), (13, 13)]."""
    if not hours:
        return []

    sorted_hours = sorted(hours)
    ranges = []
    start = end = sorted_hours[0]

    for hour in sorted_hours[1:]:
        if hour == end + 1:
            end = hour
        else:
            ranges.append((start, end))
            start = end = hour

    ranges.append((start, end))
    return ranges


def format_range(start: int, end: int) -> str:
    # End hour is shown exclusive: hours 8..9 read "8:00 AM - 10:00 AM"
    if start == end:
        return format_hour(start)
    return f"{format_hour(start)} - {format_hour(end + 1)}"


def hours_by_day(schedule: Schedule, grid: ScheduleGrid, state: SlotState) -> Dict[str, List[int]]:
    """Collect, per day, the grid hours painted with ``state``. Days without any are omitted."""
    result: Dict[str, List[int]] = {}
    for day in grid.days:
        hours = [hour for hour in grid.hours if schedule.get(slot_key(day, hour)) == state.value]
        if hours:
            result[day] = hours
    return result


def summarize_state(schedule: Schedule, grid: ScheduleGrid, state: SlotState) -> Dict[str, List[str]]:
    """
    Build the per-day summary shown for one state.

    Args:
        schedule: A teacher's schedule
        grid: Grid whose days and hours are considered
        state: The state to summarise

    Returns:
        Dict[str, List[str]]: day -> formatted consecutive ranges, in grid day order
    """
    return {
        day: [format_range(start, end) for start, end in group_consecutive_hours(hours)]
        for day, hours in hours_by_day(schedule, grid, state).items()
    }


def summarize_schedule(schedule: Schedule, grid: ScheduleGrid) -> Dict[str, Dict[str, List[str]]]:
    """Summaries for every painted state, keyed by the state's display label."""
    summary = {}
    for state, label in STATE_LABELS.items():
        per_day = summarize_state(schedule, grid, state)
        if per_day:
            summary[label] = per_day
    return summary

"""
Helpers for the stream schedule descriptor.

A schedule descriptor is stored as JSON text on the stream row::

    {
        "type": "once" | "daily" | "weekly" | "manual",
        "schedules": [{"id": "...", "startTime": "HH:MM", "duration": 60, "weekdays": [1, 3]}],
        "date": "YYYY-MM-DD"
    }

Weekdays follow the browser convention (0 = Sunday). All datetimes handled
here are naive UTC.
"""
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from streamcraft.exceptions import MalformedSchedule

logger = logging.getLogger(__name__)

SCHEDULE_TYPES = ("manual", "once", "daily", "weekly")
DEFAULT_SLOT_DURATION = 60  # minutes


def to_utc_naive(value: Any) -> Optional[datetime]:
    """
    Coerce a datetime or ISO-8601 string into a naive UTC datetime.

    Naive input is assumed to already be UTC. Empty values return None.

    Raises:
        ValueError: string is not ISO-8601
    """
    if value is None or value == "":
        return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)

    if not isinstance(value, datetime):
        raise ValueError(f"Unsupported datetime value: {value!r}")

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_iso_instant(value: Optional[datetime]) -> Optional[str]:
    """Format a UTC datetime as 2024-01-01T09:00:00.000Z"""
    if value is None:
        return None
    value = to_utc_naive(value)
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_schedule(raw: Any) -> Dict:
    """
    Parse a stored schedule value into a dict.

    Raises:
        MalformedSchedule: invalid JSON, not an object, or `schedules` not a list
    """
    if isinstance(raw, dict):
        data = dict(raw)
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MalformedSchedule(str(e)) from e

    if not isinstance(data, dict):
        raise MalformedSchedule(f"Schedule must be an object, got {type(data).__name__}")

    slots = data.get("schedules")
    if slots is not None and not isinstance(slots, list):
        raise MalformedSchedule("'schedules' must be a list")

    return data


def _date_of(start: Optional[datetime]) -> str:
    return start.date().isoformat() if start else ""


def normalize_schedule(
    raw: Any,
    legacy_type: Optional[str] = None,
    scheduled_start_time: Optional[datetime] = None,
    stream_id: Optional[int] = None
) -> Dict:
    """
    Always return a usable schedule descriptor for a stream row.

    - JSON blob present: missing `type` -> "manual", missing `schedules` -> [],
      missing `date` -> date of scheduled_start_time.
    - No blob but a legacy scheduled_start_time: a single 60 minute "once" slot.
    - Malformed blob: empty schedule, type inferred from the legacy `type` column.
    - Nothing at all: empty manual schedule.
    """
    start = to_utc_naive(scheduled_start_time) if scheduled_start_time else None

    if raw not in (None, ""):
        try:
            schedule = parse_schedule(raw)
        except MalformedSchedule as e:
            logger.error(f"Error parsing schedule for stream {stream_id}: {e}")
            return {
                "type": "daily" if legacy_type == "scheduled" else "manual",
                "schedules": [],
                "date": _date_of(start)
            }

        if not schedule.get("type"):
            schedule["type"] = "manual"
        if not schedule.get("schedules"):
            schedule["schedules"] = []
        if not schedule.get("date"):
            schedule["date"] = _date_of(start)
        return schedule

    if start:
        return {
            "type": "once",
            "schedules": [{
                "id": f"default_{int(time.time() * 1000)}",
                "startTime": start.strftime("%H:%M"),
                "duration": DEFAULT_SLOT_DURATION
            }],
            "date": _date_of(start)
        }

    return {"type": "manual", "schedules": [], "date": ""}


def time_to_minutes(value: str) -> int:
    """'HH:MM' -> minutes after midnight"""
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"


def find_slot_conflicts(slots: List[Dict]) -> List[str]:
    """
    Report overlapping time slots.

    Slots are sorted by start time; slot i conflicts with slot i+1 when it
    ends after slot i+1 starts. Touching slots (end == next start) are fine.
    """
    if len(slots) < 2:
        return []

    ordered = sorted(slots, key=lambda s: time_to_minutes(s["startTime"]))
    conflicts = []

    for i in range(len(ordered) - 1):
        current, following = ordered[i], ordered[i + 1]
        end = time_to_minutes(current["startTime"]) + int(current.get("duration") or 0)
        if end > time_to_minutes(following["startTime"]):
            conflicts.append(
                f"Slot {i + 1} (ends at {minutes_to_time(end)}) overlaps with "
                f"Slot {i + 2} (starts at {following['startTime']})"
            )

    return conflicts


def _slot_window(day: datetime, slot: Dict) -> Tuple[datetime, datetime]:
    start = day + timedelta(minutes=time_to_minutes(slot["startTime"]))
    return start, start + timedelta(minutes=int(slot.get("duration") or 0))


def next_window(schedule: Dict, now: Optional[datetime] = None) -> Optional[Tuple[datetime, datetime]]:
    """
    Next (start, end) UTC window described by a schedule, or None.

    The first slot whose end lies after `now` wins. Manual schedules and
    schedules without slots never produce a window.
    """
    now = to_utc_naive(now) or datetime.utcnow()
    schedule_type = schedule.get("type")
    slots = sorted(schedule.get("schedules") or [], key=lambda s: time_to_minutes(s["startTime"]))

    if schedule_type == "manual" or not slots:
        return None

    if schedule_type == "once":
        if not schedule.get("date"):
            return None
        day = datetime.strptime(schedule["date"], "%Y-%m-%d")
        candidates = [(day, slot) for slot in slots]
    elif schedule_type == "daily":
        today = datetime(now.year, now.month, now.day)
        candidates = [(today + timedelta(days=offset), slot) for offset in range(2) for slot in slots]
    elif schedule_type == "weekly":
        today = datetime(now.year, now.month, now.day)
        candidates = []
        for offset in range(8):
            day = today + timedelta(days=offset)
            js_weekday = (day.weekday() + 1) % 7
            candidates.extend((day, slot) for slot in slots if js_weekday in (slot.get("weekdays") or []))
    else:
        logger.warning(f"Unknown schedule type: {schedule_type}")
        return None

    for day, slot in candidates:
        start, end = _slot_window(day, slot)
        if end > now:
            return start, end

    return None

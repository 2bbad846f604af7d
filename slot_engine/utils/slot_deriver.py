"""
Slot Deriver: turn a workspace's recurring weekly availability into the
concrete, bookable interview windows of one calendar date.

Pure functions only - no session, no clock unless one is passed in.

All arithmetic happens in the workspace timezone. A window's absolute
instant is the local date + local time resolved through zoneinfo at that
date, so DST shifts are honored instead of applying a fixed UTC offset.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from slot_engine.services.availability_config import AvailabilityConfig

# Index matches date.weekday() (Monday=0)
WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

WEEKDAY_ALIASES: Dict[str, str] = {name: name for name in WEEKDAY_NAMES}
WEEKDAY_ALIASES.update(
    {
        "lunes": "monday",
        "martes": "tuesday",
        "miercoles": "wednesday",
        "miércoles": "wednesday",
        "jueves": "thursday",
        "viernes": "friday",
        "sabado": "saturday",
        "sábado": "saturday",
        "domingo": "sunday",
    }
)


def weekday_key(name: Optional[str]) -> Optional[str]:
    """Canonical English weekday for an English/Spanish name, or None."""
    if not name:
        return None
    return WEEKDAY_ALIASES.get(str(name).strip().lower())


@dataclass(frozen=True)
class TimeWindow:
    """One bookable window. location is None until the window is bound to a place."""

    day: date
    start_time: time
    end_time: time
    start_at: datetime  # zoned, workspace timezone
    end_at: datetime
    location: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        delta = self.end_at.astimezone(timezone.utc) - self.start_at.astimezone(timezone.utc)
        return int(delta.total_seconds() // 60)

    @property
    def weekday(self) -> str:
        return WEEKDAY_NAMES[self.day.weekday()]

    def at(self, location: str) -> "TimeWindow":
        return replace(self, location=location)

    def to_dict(self):
        return {
            "day": self.day.isoformat(),
            "weekday": self.weekday,
            "time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "start_at": self.start_at.isoformat(),
            "end_at": self.end_at.isoformat(),
            "location": self.location,
        }


def _to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def _local_time_exists(local: datetime) -> bool:
    """False for wall-clock times skipped by a DST jump (e.g. 00:30 on a spring-forward midnight)."""
    round_trip = local.astimezone(timezone.utc).astimezone(local.tzinfo)
    return round_trip.replace(tzinfo=None) == local.replace(tzinfo=None)


def derive_slots(config: "AvailabilityConfig", day: date) -> List[TimeWindow]:
    """
    Ordered bookable windows for `day`.

    - Exception dates yield nothing.
    - Each weekly interval is cut into consecutive slot_minutes windows that
      fit entirely inside it; a partial trailing window is dropped.
    - Sorted by start time.
    """
    if config.is_exception(day):
        return []

    tz = config.tz
    slot_minutes = config.slot_minutes
    step = timedelta(minutes=slot_minutes)
    windows: List[TimeWindow] = []

    for interval in config.intervals_for(day):
        cursor = _to_minutes(interval.start)
        end = _to_minutes(interval.end)
        while cursor + slot_minutes <= end:
            start_time = _from_minutes(cursor)
            start_at = datetime.combine(day, start_time, tzinfo=tz)
            if _local_time_exists(start_at):
                end_at = (start_at.astimezone(timezone.utc) + step).astimezone(tz)
                windows.append(
                    TimeWindow(
                        day=day,
                        start_time=start_time,
                        end_time=_from_minutes(cursor + slot_minutes),
                        start_at=start_at,
                        end_at=end_at,
                    )
                )
            cursor += slot_minutes

    windows.sort(key=lambda w: w.start_time)
    return windows


def find_slot(config: "AvailabilityConfig", day: date, start_time: time) -> Optional[TimeWindow]:
    """The derived window starting exactly at start_time on day, if any."""
    wanted = start_time.replace(second=0, microsecond=0)
    for window in derive_slots(config, day):
        if window.start_time == wanted:
            return window
    return None


def next_occurrence(
    config: "AvailabilityConfig",
    weekday: str,
    start_time: time,
    now: Optional[datetime] = None,
) -> Optional[date]:
    """
    Resolve a weekday name + local time to the next date it happens strictly
    after `now` (today counts if the time is still ahead).

    Returns None when the weekday name is not recognized.
    """
    key = weekday_key(weekday)
    if key is None:
        return None

    tz = config.tz
    now_local = (now or datetime.now(timezone.utc)).astimezone(tz)
    today = now_local.date()
    diff = (WEEKDAY_NAMES.index(key) - today.weekday()) % 7
    target = today + timedelta(days=diff)
    if datetime.combine(target, start_time, tzinfo=tz) <= now_local:
        target += timedelta(days=7)
    return target

"""
Availability Configuration: the per-workspace description of when and where
interviews can happen.

The stored form is JSON-shaped (weekly availability, exceptions, locations);
AvailabilityConfig is the typed, immutable value object every engine call
receives. Shape and business rules are validated once here, at the
configuration boundary, and an update replaces the whole structure or
nothing.
"""

import logging
import os
from datetime import date, datetime, time, timezone
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session, select

from slot_engine.models.workspace_availability import WorkspaceAvailability
from slot_engine.utils.locations import match_location_label, normalize_location_label
from slot_engine.utils.slot_deriver import WEEKDAY_NAMES, weekday_key

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = os.getenv("DEFAULT_WORKSPACE_TIMEZONE", "America/Santiago")
DEFAULT_SLOT_MINUTES = 30
MIN_SLOT_MINUTES = 5
MAX_SLOT_MINUTES = 240
DEFAULT_LOCATION_LABEL = "Online"

DEFAULT_WEEKLY_AVAILABILITY: Dict[str, List[Dict[str, str]]] = {
    name: [{"start": "09:00", "end": "18:00"}] for name in WEEKDAY_NAMES[:5]
}


class AvailabilityInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: time
    end: time

    @model_validator(mode="after")
    def validate_order(self):
        if self.end <= self.start:
            raise ValueError(f"interval end {self.end:%H:%M} must be after start {self.start:%H:%M}")
        return self

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}


class LocationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    exact_address: Optional[str] = None
    instructions: Optional[str] = None

    @field_validator("label", mode="before")
    @classmethod
    def validate_label(cls, v):
        label = normalize_location_label(v) if isinstance(v, str) else None
        if not label:
            raise ValueError("location label is required")
        return label

    @field_validator("exact_address", "instructions", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class AvailabilityConfig(BaseModel):
    """
    Validated availability for one workspace.

    Weekday keys accept English or Spanish names and are normalized to
    English lowercase. Exceptions accept "YYYY-MM-DD" strings or
    {"date": "YYYY-MM-DD"} objects. Locations accept plain strings or
    {label, exact_address?, instructions?} objects.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    timezone: str = DEFAULT_TIMEZONE
    slot_minutes: int = DEFAULT_SLOT_MINUTES
    weekly_availability: Dict[str, Tuple[AvailabilityInterval, ...]] = DEFAULT_WEEKLY_AVAILABILITY
    exceptions: FrozenSet[date] = frozenset()
    locations: Tuple[LocationConfig, ...] = (LocationConfig(label=DEFAULT_LOCATION_LABEL),)
    version: int = 1

    @field_validator("timezone", mode="before")
    @classmethod
    def validate_timezone(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("timezone is required")
        v = v.strip()
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone '{v}'")
        return v

    @field_validator("slot_minutes")
    @classmethod
    def validate_slot_minutes(cls, v):
        if v < MIN_SLOT_MINUTES or v > MAX_SLOT_MINUTES:
            raise ValueError(f"slot_minutes must be between {MIN_SLOT_MINUTES} and {MAX_SLOT_MINUTES}")
        return v

    @field_validator("weekly_availability", mode="before")
    @classmethod
    def normalize_weekdays(cls, v):
        if not isinstance(v, dict):
            raise ValueError("weekly_availability must be an object keyed by weekday")
        normalized: Dict[str, Any] = {}
        for raw_key, intervals in v.items():
            key = weekday_key(raw_key)
            if key is None:
                raise ValueError(f"unknown weekday '{raw_key}'")
            if key in normalized:
                raise ValueError(f"weekday '{key}' given more than once")
            if not isinstance(intervals, (list, tuple)):
                raise ValueError(f"availability for '{raw_key}' must be a list of intervals")
            normalized[key] = intervals
        return normalized

    @field_validator("weekly_availability")
    @classmethod
    def validate_no_overlap(cls, v):
        ordered = {}
        for key, intervals in v.items():
            sorted_intervals = tuple(sorted(intervals, key=lambda i: i.start))
            for prev, cur in zip(sorted_intervals, sorted_intervals[1:]):
                if cur.start < prev.end:
                    raise ValueError(
                        f"{key}: interval {cur.start:%H:%M}-{cur.end:%H:%M} overlaps "
                        f"{prev.start:%H:%M}-{prev.end:%H:%M}"
                    )
            ordered[key] = sorted_intervals
        return ordered

    @field_validator("exceptions", mode="before")
    @classmethod
    def normalize_exceptions(cls, v):
        if v is None:
            return frozenset()
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError("exceptions must be a list of dates")
        out = []
        for entry in v:
            if isinstance(entry, dict):
                entry = entry.get("date")
            if isinstance(entry, str):
                entry = entry.strip()
            if not entry:
                raise ValueError("exception entries must be dates (YYYY-MM-DD)")
            out.append(entry)
        return out

    @field_validator("locations", mode="before")
    @classmethod
    def normalize_locations(cls, v):
        if not isinstance(v, (list, tuple)):
            raise ValueError("locations must be a list")
        return [{"label": item} if isinstance(item, str) else item for item in v]

    @field_validator("locations")
    @classmethod
    def validate_locations(cls, v):
        if not v:
            raise ValueError("at least one location is required")
        seen = set()
        for loc in v:
            key = loc.label.lower()
            if key in seen:
                raise ValueError(f"duplicate location label '{loc.label}'")
            seen.add(key)
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def location_labels(self) -> List[str]:
        return [loc.label for loc in self.locations]

    @property
    def default_location(self) -> str:
        return self.locations[0].label

    def is_exception(self, day: date) -> bool:
        return day in self.exceptions

    def intervals_for(self, day: date) -> Tuple[AvailabilityInterval, ...]:
        return self.weekly_availability.get(WEEKDAY_NAMES[day.weekday()], ())

    def resolve_location(self, label: Optional[str]) -> Optional[str]:
        """Configured label for `label` (case/space-insensitive), or None if unknown."""
        return match_location_label(label, self.location_labels)

    def find_location(self, label: Optional[str]) -> Optional[LocationConfig]:
        resolved = self.resolve_location(label)
        if resolved is None:
            return None
        for loc in self.locations:
            if loc.label == resolved:
                return loc
        return None

    def to_storage(self) -> Dict[str, Any]:
        """JSON-ready representation (the shape persisted and served over HTTP)."""
        return {
            "timezone": self.timezone,
            "slot_minutes": self.slot_minutes,
            "weekly_availability": {
                key: [i.to_dict() for i in self.weekly_availability[key]]
                for key in WEEKDAY_NAMES
                if key in self.weekly_availability
            },
            "exceptions": sorted(d.isoformat() for d in self.exceptions),
            "locations": [loc.model_dump() for loc in self.locations],
            "version": self.version,
        }


def default_availability_config() -> AvailabilityConfig:
    return AvailabilityConfig()


def config_from_row(row: WorkspaceAvailability) -> AvailabilityConfig:
    return AvailabilityConfig(
        timezone=row.timezone,
        slot_minutes=row.slot_minutes,
        weekly_availability=row.weekly_availability or {},
        exceptions=row.exceptions or [],
        locations=row.locations or [DEFAULT_LOCATION_LABEL],
        version=row.version,
    )


def get_availability_config(session: Session, workspace_id: str) -> AvailabilityConfig:
    """Stored config for the workspace, or the defaults if none was ever saved."""
    row = session.exec(
        select(WorkspaceAvailability).where(WorkspaceAvailability.workspace_id == workspace_id)
    ).first()
    if row is None:
        return default_availability_config()
    return config_from_row(row)


def update_availability_config(session: Session, workspace_id: str, payload: Any) -> AvailabilityConfig:
    """
    Replace a workspace's availability config.

    The payload is validated as a whole before anything is written, so a bad
    update raises pydantic.ValidationError and leaves the stored config as it
    was. Any version in the payload is ignored; the stored version is bumped.
    """
    if isinstance(payload, AvailabilityConfig):
        validated = payload
    else:
        validated = AvailabilityConfig.model_validate(payload)

    row = session.exec(
        select(WorkspaceAvailability).where(WorkspaceAvailability.workspace_id == workspace_id)
    ).first()
    next_version = (row.version + 1) if row else 1
    stored = validated.to_storage()

    if row is None:
        row = WorkspaceAvailability(workspace_id=workspace_id, timezone=validated.timezone)
    row.timezone = stored["timezone"]
    row.slot_minutes = stored["slot_minutes"]
    row.weekly_availability = stored["weekly_availability"]
    row.exceptions = stored["exceptions"]
    row.locations = stored["locations"]
    row.version = next_version
    row.updated_at = datetime.now(timezone.utc)

    session.add(row)
    session.commit()
    session.refresh(row)

    logger.info("Availability config for workspace %s updated to version %d", workspace_id, next_version)
    return validated.model_copy(update={"version": next_version})

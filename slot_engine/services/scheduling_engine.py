"""
Scheduling Engine: turn a structured (day, time, location) request into a
booking, or into ranked alternatives when the slot is gone.

Pipeline for attempt_schedule():
1. Validate against the derived slots, configured locations and the clock
2. Same slot already held by this conversation -> UNCHANGED (no write)
3. Different slot held -> atomic reschedule (release old + claim new)
4. Nothing held -> fresh claim
5. Lost the race -> Conflict + alternatives

The engine is stateless: the availability config is passed in on every call
and all mutual exclusion is delegated to the ReservationStore.
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Optional

from slot_engine.models.reservation import InterviewReservation
from slot_engine.services.availability_config import AvailabilityConfig
from slot_engine.services.errors import SlotValidationError
from slot_engine.services.reservation_store import Conflict, ReservationStore
from slot_engine.utils.slot_deriver import TimeWindow, derive_slots, find_slot, next_occurrence

logger = logging.getLogger(__name__)

KIND_SCHEDULED = "SCHEDULED"
KIND_RESCHEDULED = "RESCHEDULED"
KIND_UNCHANGED = "UNCHANGED"

REASON_MISSING = "MISSING"
REASON_BAD_INPUT = "BAD_INPUT"
REASON_UNKNOWN_LOCATION = "UNKNOWN_LOCATION"
REASON_OUTSIDE_AVAILABILITY = "OUTSIDE_AVAILABILITY"
REASON_PAST = "PAST"
REASON_CONFLICT = "CONFLICT"

VALIDATION_REASONS = (
    REASON_MISSING,
    REASON_BAD_INPUT,
    REASON_UNKNOWN_LOCATION,
    REASON_OUTSIDE_AVAILABILITY,
    REASON_PAST,
)

SEARCH_HORIZON_DAYS = 14  # requested day + the next 13
DEFAULT_ALTERNATIVES_LIMIT = 3


@dataclass
class ScheduleResult:
    ok: bool
    kind: Optional[str] = None  # SCHEDULED | RESCHEDULED | UNCHANGED
    reservation_id: Optional[int] = None
    previous_reservation_id: Optional[int] = None
    slot: Optional[TimeWindow] = None
    reason: Optional[str] = None  # MISSING | BAD_INPUT | UNKNOWN_LOCATION | OUTSIDE_AVAILABILITY | PAST | CONFLICT
    message: Optional[str] = None
    alternatives: List[TimeWindow] = field(default_factory=list)

    @property
    def is_validation_error(self) -> bool:
        return not self.ok and self.reason in VALIDATION_REASONS

    @property
    def is_conflict(self) -> bool:
        return not self.ok and self.reason == REASON_CONFLICT

    def to_dict(self):
        if self.ok:
            return {
                "ok": True,
                "kind": self.kind,
                "reservation_id": self.reservation_id,
                "previous_reservation_id": self.previous_reservation_id,
                "day": self.slot.day.isoformat(),
                "time": self.slot.start_time.strftime("%H:%M"),
                "location": self.slot.location,
                "start_at": self.slot.start_at.isoformat(),
                "end_at": self.slot.end_at.isoformat(),
                "timezone": getattr(self.slot.start_at.tzinfo, "key", None),
            }
        return {
            "ok": False,
            "reason": self.reason,
            "message": self.message,
            "alternatives": [w.to_dict() for w in self.alternatives],
        }


# ============================================================================
# Validation
# ============================================================================


def validate_request(
    config: AvailabilityConfig,
    day: Optional[date],
    start_time: Optional[time],
    location: Optional[str],
    now: Optional[datetime] = None,
) -> TimeWindow:
    """
    Resolve a request to a concrete window bound to a configured location.

    Raises:
        SlotValidationError: missing fields, unknown location, slot not
        derivable (includes exception days), or start not in the future.
    """
    if day is None or start_time is None:
        raise SlotValidationError(REASON_MISSING, "Both a day and a time are required to schedule.")

    resolved_location = config.default_location if location is None else config.resolve_location(location)
    if resolved_location is None:
        raise SlotValidationError(
            REASON_UNKNOWN_LOCATION,
            f"Unknown location '{location}'. Options: {', '.join(config.location_labels)}",
        )

    window = find_slot(config, day, start_time)
    if window is None:
        raise SlotValidationError(
            REASON_OUTSIDE_AVAILABILITY,
            f"{day.isoformat()} {start_time:%H:%M} is outside the configured availability.",
        )

    now_local = (now or datetime.now(timezone.utc)).astimezone(config.tz)
    if window.start_at <= now_local:
        raise SlotValidationError(REASON_PAST, f"{day.isoformat()} {start_time:%H:%M} is already in the past.")

    return window.at(resolved_location)


def _same_slot(reservation: InterviewReservation, window: TimeWindow) -> bool:
    return (
        reservation.day == window.day
        and reservation.start_time == window.start_time
        and reservation.location == window.location
    )


# ============================================================================
# Alternatives
# ============================================================================


def _iter_alternatives(
    store: ReservationStore,
    config: AvailabilityConfig,
    requested_day: date,
    requested_time: time,
    locations: List[str],
    now_local: datetime,
) -> Iterator[TimeWindow]:
    """Lazily yield free windows day by day; occupancy is only read for days actually reached."""
    requested_minutes = requested_time.hour * 60 + requested_time.minute

    for offset in range(SEARCH_HORIZON_DAYS):
        day = requested_day + timedelta(days=offset)
        windows = [w for w in derive_slots(config, day) if w.start_at > now_local]
        if not windows:
            continue

        windows.sort(
            key=lambda w: (abs(w.start_time.hour * 60 + w.start_time.minute - requested_minutes), w.start_time)
        )
        occupied = store.list_occupied(day)
        for window in windows:
            for label in locations:
                if (window.start_time, label) not in occupied:
                    yield window.at(label)


def suggest_alternatives(
    store: ReservationStore,
    config: AvailabilityConfig,
    requested_day: date,
    requested_time: time,
    location: Optional[str] = None,
    exclude_location: Optional[str] = None,
    limit: int = DEFAULT_ALTERNATIVES_LIMIT,
    now: Optional[datetime] = None,
) -> List[TimeWindow]:
    """
    Up to `limit` free windows near the requested slot.

    Search covers the requested day and the next 13 days in date order. Within
    a day candidates are ranked by distance from the requested time (earlier
    wins ties), then by configured location order. `location` restricts the
    search to that location; otherwise every configured location except
    `exclude_location` is considered.
    """
    if limit <= 0:
        return []

    if location is not None:
        resolved = config.resolve_location(location)
        locations = [resolved] if resolved else []
    else:
        excluded = config.resolve_location(exclude_location) if exclude_location else None
        locations = [label for label in config.location_labels if label != excluded]
    if not locations:
        return []

    now_local = (now or datetime.now(timezone.utc)).astimezone(config.tz)
    candidates = _iter_alternatives(store, config, requested_day, requested_time, locations, now_local)
    return list(itertools.islice(candidates, limit))


# ============================================================================
# Main entry point
# ============================================================================


def attempt_schedule(
    store: ReservationStore,
    conversation_id: str,
    contact_id: str,
    day: Optional[date],
    start_time: Optional[time],
    location: Optional[str],
    config: AvailabilityConfig,
    now: Optional[datetime] = None,
    alternatives_limit: int = DEFAULT_ALTERNATIVES_LIMIT,
) -> ScheduleResult:
    """
    Book (or rebook) the requested slot for a conversation.

    Validation failures and conflicts come back as ok=False results; only a
    StoreFailure escapes. Nothing is retried here.
    """
    try:
        window = validate_request(config, day, start_time, location, now=now)
    except SlotValidationError as exc:
        logger.info(f"Schedule request rejected for conversation {conversation_id}: {exc.reason}")
        return ScheduleResult(ok=False, reason=exc.reason, message=exc.message)

    existing = store.find_active_for(conversation_id)
    if existing is not None and _same_slot(existing, window):
        return ScheduleResult(
            ok=True,
            kind=KIND_UNCHANGED,
            reservation_id=existing.id,
            previous_reservation_id=None,
            slot=window,
        )

    if existing is not None:
        outcome = store.claim_replacing(
            existing.id, window.day, window.start_time, window.location, conversation_id, contact_id, window
        )
    else:
        outcome = store.try_claim(window.day, window.start_time, window.location, conversation_id, contact_id, window)

    if isinstance(outcome, Conflict):
        return _conflict_result(store, config, conversation_id, window, outcome, now, alternatives_limit)

    # A row released elsewhere since the read above is not replaced; the claim is fresh.
    previous_id = outcome.previous_reservation_id
    kind = KIND_RESCHEDULED if previous_id is not None else KIND_SCHEDULED

    return ScheduleResult(
        ok=True,
        kind=kind,
        reservation_id=outcome.id,
        previous_reservation_id=previous_id,
        slot=window,
    )


def _conflict_result(
    store: ReservationStore,
    config: AvailabilityConfig,
    conversation_id: str,
    window: TimeWindow,
    conflict: Conflict,
    now: Optional[datetime],
    limit: int,
) -> ScheduleResult:
    # A concurrent request for this conversation may have won with this same
    # slot; the database can report that as either constraint.
    winner = store.find_active_for(conversation_id)
    if winner is not None and _same_slot(winner, window):
        logger.info(f"Conversation {conversation_id} already holds {window.day} {window.start_time:%H:%M}")
        return ScheduleResult(
            ok=True,
            kind=KIND_UNCHANGED,
            reservation_id=winner.id,
            previous_reservation_id=None,
            slot=window,
        )

    alternatives = suggest_alternatives(
        store,
        config,
        window.day,
        window.start_time,
        location=window.location,
        limit=limit,
        now=now,
    )
    return ScheduleResult(
        ok=False,
        reason=REASON_CONFLICT,
        message=conflict.message,
        alternatives=alternatives,
    )


def resolve_and_attempt_schedule(
    store: ReservationStore,
    conversation_id: str,
    contact_id: str,
    weekday: Optional[str],
    start_time: Optional[time],
    location: Optional[str],
    config: AvailabilityConfig,
    now: Optional[datetime] = None,
) -> ScheduleResult:
    """
    Weekday-name variant ("martes", 13:00): books the next occurrence of that
    weekday/time after `now`.
    """
    if not weekday or start_time is None:
        return ScheduleResult(ok=False, reason=REASON_MISSING, message="Both a day and a time are required to schedule.")
    day = next_occurrence(config, weekday, start_time, now=now)
    if day is None:
        return ScheduleResult(
            ok=False,
            reason=REASON_BAD_INPUT,
            message=f"Could not interpret '{weekday}' as a day of the week.",
        )
    return attempt_schedule(store, conversation_id, contact_id, day, start_time, location, config, now=now)

"""
Reservation Lifecycle Manager: state transitions on the single active
reservation a conversation owns.

           try_claim
  (none) ------------> PENDING
  PENDING   --confirm--> CONFIRMED
  PENDING   --release--> CANCELLED | ON_HOLD      (active_key cleared)
  CONFIRMED --release--> CANCELLED | ON_HOLD      (active_key cleared)
  CONFIRMED --reschedule--> old CANCELLED, new PENDING

CANCELLED and ON_HOLD are terminal for their row; scheduling the same
conversation again creates a new row.

Callers never have to ask "was there a reservation?": acting on a
conversation with nothing active is a successful no-op.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Dict, FrozenSet, Optional

from slot_engine.models.reservation import (
    RELEASE_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_ON_HOLD,
    STATUS_PENDING,
)
from slot_engine.services.availability_config import AvailabilityConfig
from slot_engine.services.errors import InvalidTransition
from slot_engine.services.reservation_store import ReservationStore
from slot_engine.services.scheduling_engine import REASON_MISSING, ScheduleResult, attempt_schedule

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STATUS_PENDING: frozenset({STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_ON_HOLD}),
    STATUS_CONFIRMED: frozenset({STATUS_CANCELLED, STATUS_ON_HOLD}),
    STATUS_CANCELLED: frozenset(),
    STATUS_ON_HOLD: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


@dataclass
class LifecycleResult:
    updated: bool
    reservation_id: Optional[int] = None
    status: Optional[str] = None

    def to_dict(self):
        return {"updated": self.updated, "reservation_id": self.reservation_id, "status": self.status}


def confirm_active_reservation(store: ReservationStore, conversation_id: str) -> LifecycleResult:
    """Confirm the conversation's active reservation; no-op success if there is none."""
    active = store.find_active_for(conversation_id)
    if active is None:
        return LifecycleResult(updated=False)
    if active.status == STATUS_CONFIRMED:
        return LifecycleResult(updated=False, reservation_id=active.id, status=active.status)
    if not can_transition(active.status, STATUS_CONFIRMED):
        raise InvalidTransition(active.id, active.status, STATUS_CONFIRMED)

    reservation = store.confirm(active.id)
    return LifecycleResult(updated=True, reservation_id=reservation.id, status=reservation.status)


def release_active_reservation(store: ReservationStore, conversation_id: str, status: str) -> LifecycleResult:
    """
    Cancel or put on hold the conversation's active reservation, freeing its slot.

    Only CANCELLED and ON_HOLD are accepted. No active reservation -> no-op success.
    """
    if status not in RELEASE_STATUSES:
        raise InvalidTransition(None, None, status)

    active = store.find_active_for(conversation_id)
    if active is None:
        return LifecycleResult(updated=False)
    if not can_transition(active.status, status):
        raise InvalidTransition(active.id, active.status, status)

    reservation = store.release(active.id, status)
    updated = reservation.status == status
    if updated:
        logger.info(f"Conversation {conversation_id}: reservation {reservation.id} -> {status}")
    return LifecycleResult(updated=updated, reservation_id=reservation.id, status=reservation.status)


def reschedule_active_reservation(
    store: ReservationStore,
    conversation_id: str,
    contact_id: str,
    day: date,
    start_time: time,
    location: Optional[str],
    config: AvailabilityConfig,
    now: Optional[datetime] = None,
) -> ScheduleResult:
    """
    Move the conversation's active reservation to a new slot.

    Same as attempt_schedule, except a conversation with nothing active is
    rejected instead of booked fresh.
    """
    if store.find_active_for(conversation_id) is None:
        return ScheduleResult(
            ok=False,
            reason=REASON_MISSING,
            message="There is no active reservation to reschedule.",
        )
    return attempt_schedule(store, conversation_id, contact_id, day, start_time, location, config, now=now)

"""
Scheduling error taxonomy.

- SlotValidationError: the request itself is not bookable (never retried).
- StoreFailure: the database could not complete an atomic operation.
- InvalidTransition: a lifecycle move the state machine does not allow.

A lost race for a slot is NOT an error: the store returns a Conflict value
and the engine answers with alternatives.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base exception for scheduling errors"""
    pass


class SlotValidationError(SchedulingError):
    """Requested slot is malformed or outside availability"""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class StoreFailure(SchedulingError):
    """Atomic store operation could not complete"""
    pass


class InvalidTransition(SchedulingError):
    """Reservation cannot move from its current status to the requested one"""

    def __init__(self, reservation_id: Optional[int], current: Optional[str], target: str):
        subject = "Reservation" if reservation_id is None else f"Reservation {reservation_id}"
        super().__init__(f"{subject} cannot move from {current or 'its current status'} to {target}")
        self.reservation_id = reservation_id
        self.current = current
        self.target = target


class RecordNotFound(SchedulingError):
    """Reservation or slot block id does not exist"""
    pass

from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel

ACTIVE_KEY = "ACTIVE"

STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_CANCELLED = "CANCELLED"
STATUS_ON_HOLD = "ON_HOLD"

RESERVATION_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_ON_HOLD)
RELEASE_STATUSES = (STATUS_CANCELLED, STATUS_ON_HOLD)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InterviewReservation(SQLModel, table=True):
    """
    One candidate's claim on an interview slot.

    active_key is "ACTIVE" while the reservation holds its slot and NULL once
    released. NULLs never collide in a unique index, so both constraints only
    bind in-flight (PENDING/CONFIRMED) rows.
    """

    __table_args__ = (
        SAUniqueConstraint("day", "start_time", "location", "active_key", name="uq_reservation_slot_active"),
        SAUniqueConstraint("conversation_id", "active_key", name="uq_reservation_conversation_active"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: str = Field(index=True, max_length=64)
    contact_id: str = Field(index=True, max_length=64)
    day: date = Field(index=True)
    start_time: time
    end_time: time
    start_at: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True, nullable=False))  # UTC instant
    end_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    timezone: str
    location: str
    status: str = Field(default=STATUS_PENDING, max_length=16)  # PENDING | CONFIRMED | CANCELLED | ON_HOLD
    active_key: Optional[str] = Field(default=ACTIVE_KEY, max_length=8)
    previous_reservation_id: Optional[int] = Field(default=None, foreign_key="interviewreservation.id")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow, sa_column_kwargs={"onupdate": _utcnow})

    @property
    def is_active(self) -> bool:
        return self.active_key == ACTIVE_KEY

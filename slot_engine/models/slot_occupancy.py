from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel

from slot_engine.models.reservation import ACTIVE_KEY


class SlotOccupancy(SQLModel, table=True):
    """
    Claim ledger shared by reservations and slot blocks.

    Exactly one ACTIVE row may exist per (day, start_time, location); whichever
    insert commits first owns the slot.
    """

    __table_args__ = (
        SAUniqueConstraint("day", "start_time", "location", "active_key", name="uq_occupancy_slot_active"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    day: date = Field(index=True)
    start_time: time
    location: str
    active_key: Optional[str] = Field(default=ACTIVE_KEY, max_length=8)
    reservation_id: Optional[int] = Field(default=None, foreign_key="interviewreservation.id", index=True)
    slot_block_id: Optional[int] = Field(default=None, foreign_key="slotblock.id", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

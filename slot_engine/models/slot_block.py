from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel

from slot_engine.models.reservation import ACTIVE_KEY


class SlotBlock(SQLModel, table=True):
    """Administrative hold on a slot (e.g. TEST slots). Archived, never deleted."""

    __table_args__ = (
        SAUniqueConstraint("day", "start_time", "location", "active_key", name="uq_slotblock_slot_active"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    day: date = Field(index=True)
    start_time: time
    duration_minutes: int
    location: str
    tag: Optional[str] = Field(default=None, index=True)
    reason: Optional[str] = None
    active_key: Optional[str] = Field(default=ACTIVE_KEY, max_length=8)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    archived_at: Optional[datetime] = Field(default=None, index=True)

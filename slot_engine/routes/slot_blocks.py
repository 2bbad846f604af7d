from datetime import date, datetime, time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlmodel import Session

from slot_engine.database import get_session
from slot_engine.services.availability_config import get_availability_config
from slot_engine.services.errors import RecordNotFound, SlotValidationError, StoreFailure
from slot_engine.services.reservation_store import Conflict, ReservationStore

router = APIRouter()


class SlotBlockCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workspace_id: str
    day: date
    start_time: time = Field(alias="time")
    duration_minutes: Optional[int] = None  # defaults to the workspace slot size
    location: Optional[str] = None
    tag: Optional[str] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_duration(self):
        if self.duration_minutes is not None and self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be > 0")
        return self


class SlotBlockResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    day: date
    start_time: time
    duration_minutes: int
    location: str
    tag: Optional[str]
    reason: Optional[str]
    created_at: datetime
    archived_at: Optional[datetime]


@router.get("/slot-blocks", response_model=List[SlotBlockResponse])
def list_slot_blocks(
    include_archived: bool = Query(False),
    tag: Optional[str] = Query(None),
    from_day: Optional[date] = Query(None),
    days: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    """List slot blocks (active only unless include_archived=true)"""
    return ReservationStore(session).list_blocks(
        include_archived=include_archived, tag=tag, from_day=from_day, days=days
    )


@router.post("/slot-blocks", response_model=SlotBlockResponse, status_code=201)
def create_slot_block(block_data: SlotBlockCreate, session: Session = Depends(get_session)):
    """Hold a slot (or a run of slots) without a candidate, e.g. for TEST bookings"""
    config = get_availability_config(session, block_data.workspace_id)
    location = config.default_location if block_data.location is None else config.resolve_location(block_data.location)
    if location is None:
        raise HTTPException(status_code=400, detail=f"Unknown location '{block_data.location}'")

    try:
        outcome = ReservationStore(session).create_block(
            day=block_data.day,
            start_time=block_data.start_time,
            duration_minutes=block_data.duration_minutes or config.slot_minutes,
            location=location,
            tag=block_data.tag,
            reason=block_data.reason,
            slot_minutes=config.slot_minutes,
        )
    except SlotValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except StoreFailure as exc:
        raise HTTPException(status_code=503, detail=f"STORE_FAILURE: {exc}")

    if isinstance(outcome, Conflict):
        raise HTTPException(status_code=409, detail=outcome.message)
    return outcome


@router.post("/slot-blocks/{block_id}/archive", response_model=SlotBlockResponse)
def archive_slot_block(block_id: int, session: Session = Depends(get_session)):
    """Archive a block, freeing its slots (never deleted)"""
    try:
        return ReservationStore(session).archive_block(block_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreFailure as exc:
        raise HTTPException(status_code=503, detail=f"STORE_FAILURE: {exc}")

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from slot_engine.database import get_session
from slot_engine.models.reservation import InterviewReservation
from slot_engine.services.availability_config import AvailabilityConfig, get_availability_config
from slot_engine.services.reservation_store import ReservationStore
from slot_engine.utils.slot_format import format_slot_human, location_details_for

router = APIRouter()

DEFAULT_AGENDA_DAYS = 14
MAX_AGENDA_DAYS = 60


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: str
    contact_id: str
    day: date
    start_time: time
    end_time: time
    start_at: datetime
    end_at: datetime
    timezone: str
    location: str
    status: str
    active: bool
    previous_reservation_id: Optional[int] = None
    label: str
    location_details: Optional[str] = None
    created_at: datetime
    updated_at: datetime


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive values; they were written as UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


def reservation_payload(
    reservation: InterviewReservation, config: Optional[AvailabilityConfig] = None
) -> ReservationResponse:
    """Serialize a reservation; location_details only populated when a config is given and policy allows."""
    return ReservationResponse(
        id=reservation.id,
        conversation_id=reservation.conversation_id,
        contact_id=reservation.contact_id,
        day=reservation.day,
        start_time=reservation.start_time,
        end_time=reservation.end_time,
        start_at=_utc(reservation.start_at),
        end_at=_utc(reservation.end_at),
        timezone=reservation.timezone,
        location=reservation.location,
        status=reservation.status,
        active=reservation.is_active,
        previous_reservation_id=reservation.previous_reservation_id,
        label=format_slot_human(reservation),
        location_details=location_details_for(config, reservation) if config else None,
        created_at=reservation.created_at,
        updated_at=reservation.updated_at,
    )


@router.get("/reservations")
def list_reservations(
    workspace_id: Optional[str] = Query(None),
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
    days: int = Query(DEFAULT_AGENDA_DAYS),
    include_inactive: bool = Query(False),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """
    Agenda: reservations starting in [from, to).

    Defaults to now .. now + days (14, at most 60). Inactive (cancelled / on
    hold) rows only with include_inactive=true.
    """
    if days <= 0 or days > MAX_AGENDA_DAYS:
        days = DEFAULT_AGENDA_DAYS

    now = datetime.now(timezone.utc)
    start = from_ or now
    end = to or (now + timedelta(days=days))
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if end <= start:
        raise HTTPException(status_code=400, detail="'to' must be after 'from'")

    config = get_availability_config(session, workspace_id) if workspace_id else None
    reservations = ReservationStore(session).list_reservations(start, end, include_inactive=include_inactive)

    return {
        "timezone": config.timezone if config else None,
        "slot_minutes": config.slot_minutes if config else None,
        "from": start.isoformat(),
        "to": end.isoformat(),
        "include_inactive": include_inactive,
        "reservations": [reservation_payload(r, config).model_dump(mode="json") for r in reservations],
    }

import logging
from datetime import date, time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Session

from slot_engine.database import get_session
from slot_engine.models.reservation import RELEASE_STATUSES
from slot_engine.routes.reservations import ReservationResponse, reservation_payload
from slot_engine.services.availability_config import get_availability_config
from slot_engine.services.errors import InvalidTransition, RecordNotFound, StoreFailure
from slot_engine.services.reservation_lifecycle import (
    confirm_active_reservation,
    release_active_reservation,
    reschedule_active_reservation,
)
from slot_engine.services.reservation_store import ReservationStore
from slot_engine.services.scheduling_engine import attempt_schedule, resolve_and_attempt_schedule

logger = logging.getLogger(__name__)

router = APIRouter()


class ScheduleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str
    contact_id: str
    day: Optional[date] = None
    weekday: Optional[str] = None  # alternative to `day`: next occurrence of e.g. "martes"
    start_time: Optional[time] = Field(default=None, alias="time")
    location: Optional[str] = None
    reschedule_only: bool = False

    @field_validator("conversation_id", "contact_id")
    @classmethod
    def validate_ids(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ReleaseRequest(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        v = (v or "").strip().upper()
        if v not in RELEASE_STATUSES:
            raise ValueError(f"status must be one of {list(RELEASE_STATUSES)}")
        return v


def _store_unavailable(exc: StoreFailure) -> HTTPException:
    logger.error(f"Store failure: {exc}")
    return HTTPException(status_code=503, detail=f"STORE_FAILURE: {exc}")


@router.post("/workspaces/{workspace_id}/schedule")
def schedule_interview(
    workspace_id: str, request: ScheduleRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """
    Attempt to book (or rebook) an interview slot for a conversation.

    200 with ok=true on SCHEDULED/RESCHEDULED/UNCHANGED, 200 with ok=false and
    alternatives on a conflict, 400 when the request itself is not bookable.
    """
    config = get_availability_config(session, workspace_id)
    store = ReservationStore(session)

    try:
        if request.day is None and request.weekday:
            result = resolve_and_attempt_schedule(
                store,
                request.conversation_id,
                request.contact_id,
                request.weekday,
                request.start_time,
                request.location,
                config,
            )
        elif request.reschedule_only:
            result = reschedule_active_reservation(
                store,
                request.conversation_id,
                request.contact_id,
                request.day,
                request.start_time,
                request.location,
                config,
            )
        else:
            result = attempt_schedule(
                store,
                request.conversation_id,
                request.contact_id,
                request.day,
                request.start_time,
                request.location,
                config,
            )
    except StoreFailure as exc:
        raise _store_unavailable(exc)

    if result.is_validation_error:
        raise HTTPException(status_code=400, detail={"reason": result.reason, "message": result.message})
    return result.to_dict()


@router.post("/conversations/{conversation_id}/reservation/confirm")
def confirm_reservation(conversation_id: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Confirm the conversation's active reservation (no-op if none)"""
    try:
        return confirm_active_reservation(ReservationStore(session), conversation_id).to_dict()
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except StoreFailure as exc:
        raise _store_unavailable(exc)


@router.post("/conversations/{conversation_id}/reservation/release")
def release_reservation(
    conversation_id: str, request: ReleaseRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """Cancel or put on hold the conversation's active reservation (no-op if none)"""
    try:
        return release_active_reservation(ReservationStore(session), conversation_id, request.status).to_dict()
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except StoreFailure as exc:
        raise _store_unavailable(exc)


@router.get("/conversations/{conversation_id}/reservation")
def get_active_reservation(
    conversation_id: str,
    workspace_id: str = Query(...),
    session: Session = Depends(get_session),
) -> Optional[ReservationResponse]:
    """Active reservation, with the exact address only once CONFIRMED"""
    reservation = ReservationStore(session).find_active_for(conversation_id)
    if reservation is None:
        return None
    config = get_availability_config(session, workspace_id)
    return reservation_payload(reservation, config)


@router.get("/conversations/{conversation_id}/reservations", response_model=List[ReservationResponse])
def get_reservation_history(conversation_id: str, session: Session = Depends(get_session)):
    """Every reservation the conversation ever held, oldest first"""
    return [reservation_payload(r) for r in ReservationStore(session).history_for(conversation_id)]


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationResponse)
def confirm_reservation_by_id(reservation_id: int, session: Session = Depends(get_session)):
    """Confirm a specific reservation (operator action)"""
    try:
        return reservation_payload(ReservationStore(session).confirm(reservation_id))
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except StoreFailure as exc:
        raise _store_unavailable(exc)

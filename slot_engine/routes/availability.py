from datetime import date
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from slot_engine.database import get_session
from slot_engine.services.availability_config import (
    AvailabilityConfig,
    get_availability_config,
    update_availability_config,
)
from slot_engine.services.reservation_store import ReservationStore
from slot_engine.utils.slot_deriver import derive_slots

router = APIRouter()


@router.get("/workspaces/{workspace_id}/availability")
def get_availability(workspace_id: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Get the workspace availability config (defaults if never saved)"""
    return get_availability_config(session, workspace_id).to_storage()


@router.put("/workspaces/{workspace_id}/availability")
def put_availability(
    workspace_id: str, config: AvailabilityConfig, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """Replace the workspace availability config (validated as a whole, 422 on invalid input)"""
    return update_availability_config(session, workspace_id, config).to_storage()


@router.get("/workspaces/{workspace_id}/slots")
def get_slots(
    workspace_id: str,
    day: date = Query(...),
    session: Session = Depends(get_session),
) -> List[Dict[str, Any]]:
    """Derived slots for one day, one entry per (slot, location), with availability"""
    config = get_availability_config(session, workspace_id)
    occupied = ReservationStore(session).list_occupied(day)

    slots = []
    for window in derive_slots(config, day):
        for label in config.location_labels:
            entry = window.at(label).to_dict()
            entry["available"] = (window.start_time, label) not in occupied
            slots.append(entry)
    return slots

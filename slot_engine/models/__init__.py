from slot_engine.models.reservation import InterviewReservation
from slot_engine.models.slot_block import SlotBlock
from slot_engine.models.slot_occupancy import SlotOccupancy
from slot_engine.models.workspace_availability import WorkspaceAvailability

__all__ = [
    "InterviewReservation",
    "SlotBlock",
    "SlotOccupancy",
    "WorkspaceAvailability",
]

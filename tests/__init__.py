# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from slot_engine.models.reservation import InterviewReservation  # noqa: F401
from slot_engine.models.slot_block import SlotBlock  # noqa: F401
from slot_engine.models.slot_occupancy import SlotOccupancy  # noqa: F401
from slot_engine.models.workspace_availability import WorkspaceAvailability  # noqa: F401

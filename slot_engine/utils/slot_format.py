"""
Presentation helpers for slots. Nothing here affects correctness.

The exact street address of a location is only released once the
reservation is CONFIRMED; location_details_for() is the single place that
policy is applied.
"""
from typing import TYPE_CHECKING, Iterable, Optional, Union

from slot_engine.models.reservation import STATUS_CONFIRMED, InterviewReservation
from slot_engine.utils.slot_deriver import TimeWindow

if TYPE_CHECKING:
    from slot_engine.services.availability_config import AvailabilityConfig

WEEKDAY_LABELS_ES = ("Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo")


def _parts(slot: Union[TimeWindow, InterviewReservation, dict]):
    if isinstance(slot, dict):
        return slot.get("day") or "", slot.get("time") or "", slot.get("location") or ""
    day = slot.day
    return (
        f"{WEEKDAY_LABELS_ES[day.weekday()]} {day:%d/%m}",
        slot.start_time.strftime("%H:%M"),
        slot.location or "",
    )


def format_slot_human(slot: Union[TimeWindow, InterviewReservation, dict]) -> str:
    """'Lunes 02/03 10:00, Providencia' (location omitted when unknown)."""
    day, time_label, location = _parts(slot)
    when = f"{day} {time_label}".strip()
    return f"{when}, {location}" if location else when


def format_alternatives_human(alternatives: Iterable[TimeWindow]) -> str:
    lines = [f"- {format_slot_human(slot)}" for slot in alternatives]
    if not lines:
        return ""
    return "Opciones:\n" + "\n".join(lines)


def format_exact_address(config: "AvailabilityConfig", label: Optional[str]) -> Optional[str]:
    loc = config.find_location(label)
    if loc is None or (not loc.exact_address and not loc.instructions):
        return None
    lines = []
    if loc.exact_address:
        lines.append(f"Dirección exacta: {loc.exact_address}")
    if loc.instructions:
        lines.append(loc.instructions)
    return "\n".join(lines)


def location_details_for(config: "AvailabilityConfig", reservation: InterviewReservation) -> Optional[str]:
    """Exact address block for a reservation, withheld until it is CONFIRMED."""
    if reservation.status != STATUS_CONFIRMED:
        return None
    return format_exact_address(config, reservation.location)

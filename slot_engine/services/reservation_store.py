"""
Reservation Store: durable reservations and slot blocks, exposed only as
atomic primitives.

Mutual exclusion lives in the database, not here:

1. **One holder per slot**: every active reservation and every slot covered by
   an active block owns an ACTIVE SlotOccupancy row; the unique index on
   (day, start_time, location, active_key) lets exactly one insert win.
2. **One in-flight reservation per conversation**: unique
   (conversation_id, active_key) on InterviewReservation.
3. **Release = clear active_key**: NULL keys never collide, so the slot is free
   the moment the release commits. Rows are never deleted.

Each primitive runs in a single transaction. A unique violation on one of the
invariants above comes back as a Conflict value; anything else is a
StoreFailure.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Set, Tuple, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from slot_engine.models.reservation import (
    ACTIVE_KEY,
    RELEASE_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    InterviewReservation,
)
from slot_engine.models.slot_block import SlotBlock
from slot_engine.models.slot_occupancy import SlotOccupancy
from slot_engine.services.errors import InvalidTransition, RecordNotFound, SlotValidationError, StoreFailure
from slot_engine.utils.slot_deriver import TimeWindow

logger = logging.getLogger(__name__)

CONFLICT_SLOT_TAKEN = "SLOT_TAKEN"
CONFLICT_CONVERSATION_BUSY = "CONVERSATION_BUSY"


@dataclass
class Conflict:
    """A lost race: the slot (or the conversation's single active claim) is already held."""

    reason: str  # SLOT_TAKEN | CONVERSATION_BUSY
    day: date
    start_time: time
    location: str

    @property
    def message(self) -> str:
        if self.reason == CONFLICT_CONVERSATION_BUSY:
            return "This conversation already holds an active reservation."
        return f"{self.day.isoformat()} {self.start_time:%H:%M} at {self.location} is already taken."


def _as_utc(value: datetime) -> datetime:
    """Aware UTC instant; naive input is taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _conflict_reason(exc: IntegrityError) -> Optional[str]:
    """Map a unique violation to the invariant it tripped, or None if unrelated."""
    text = str(getattr(exc, "orig", exc)).lower()
    if "unique" not in text and "duplicate" not in text:
        return None
    if "conversation" in text:
        return CONFLICT_CONVERSATION_BUSY
    if "start_time" in text or "slot" in text:
        return CONFLICT_SLOT_TAKEN
    return None


class ReservationStore:
    """Atomic claim/release primitives over one SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, reservation_id: int) -> InterviewReservation:
        reservation = self.session.get(InterviewReservation, reservation_id, populate_existing=True)
        if reservation is None:
            raise RecordNotFound(f"Reservation {reservation_id} not found")
        return reservation

    def find_active_for(self, conversation_id: str) -> Optional[InterviewReservation]:
        return self.session.exec(
            select(InterviewReservation)
            .where(
                InterviewReservation.conversation_id == conversation_id,
                InterviewReservation.active_key == ACTIVE_KEY,
            )
            .order_by(InterviewReservation.created_at.desc())
        ).first()

    def list_occupied(self, day: date) -> Set[Tuple[time, str]]:
        """(start_time, location) pairs held on `day` by reservations or active blocks."""
        rows = self.session.exec(
            select(SlotOccupancy.start_time, SlotOccupancy.location).where(
                SlotOccupancy.day == day,
                SlotOccupancy.active_key == ACTIVE_KEY,
            )
        ).all()
        return {(start_time, location) for start_time, location in rows}

    def history_for(self, conversation_id: str) -> List[InterviewReservation]:
        return list(
            self.session.exec(
                select(InterviewReservation)
                .where(InterviewReservation.conversation_id == conversation_id)
                .order_by(InterviewReservation.created_at, InterviewReservation.id)
            ).all()
        )

    def list_reservations(
        self, start: datetime, end: datetime, include_inactive: bool = False
    ) -> List[InterviewReservation]:
        """Reservations whose start instant falls in [start, end), ordered by start."""
        query = select(InterviewReservation).where(
            InterviewReservation.start_at >= _as_utc(start),
            InterviewReservation.start_at < _as_utc(end),
        )
        if not include_inactive:
            query = query.where(InterviewReservation.active_key == ACTIVE_KEY)
        return list(self.session.exec(query.order_by(InterviewReservation.start_at, InterviewReservation.id)).all())

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def try_claim(
        self,
        day: date,
        start_time: time,
        location: str,
        conversation_id: str,
        contact_id: str,
        window: TimeWindow,
    ) -> Union[InterviewReservation, Conflict]:
        """
        Insert a PENDING/ACTIVE reservation and its ledger row in one transaction.

        Under concurrent callers exactly one commits; the rest get a Conflict.
        """

        def _claim() -> InterviewReservation:
            return self._insert_claim(day, start_time, location, conversation_id, contact_id, window)

        return self._run_claim(_claim, day, start_time, location, conversation_id)

    def claim_replacing(
        self,
        old_reservation_id: int,
        day: date,
        start_time: time,
        location: str,
        conversation_id: str,
        contact_id: str,
        window: TimeWindow,
    ) -> Union[InterviewReservation, Conflict]:
        """
        Reschedule primitive: release the old claim and take the new one, all or nothing.

        The old row is CANCELLED and its key cleared first (the conversation may
        only hold one ACTIVE row), then the new claim is inserted. If the new
        slot is taken the whole transaction rolls back and the old reservation
        is exactly as it was.

        If the old row was already released elsewhere it is left untouched and
        the new claim is a fresh one (previous_reservation_id stays None).
        """

        def _claim() -> InterviewReservation:
            if self.session.get(InterviewReservation, old_reservation_id) is None:
                raise RecordNotFound(f"Reservation {old_reservation_id} not found")
            replaced = self._clear_active(old_reservation_id, STATUS_CANCELLED)
            return self._insert_claim(
                day,
                start_time,
                location,
                conversation_id,
                contact_id,
                window,
                previous_id=old_reservation_id if replaced else None,
            )

        return self._run_claim(_claim, day, start_time, location, conversation_id)

    def _insert_claim(
        self,
        day: date,
        start_time: time,
        location: str,
        conversation_id: str,
        contact_id: str,
        window: TimeWindow,
        previous_id: Optional[int] = None,
    ) -> InterviewReservation:
        reservation = InterviewReservation(
            conversation_id=conversation_id,
            contact_id=contact_id,
            day=day,
            start_time=start_time,
            end_time=window.end_time,
            start_at=_as_utc(window.start_at),
            end_at=_as_utc(window.end_at),
            timezone=getattr(window.start_at.tzinfo, "key", "UTC"),
            location=location,
            status=STATUS_PENDING,
            active_key=ACTIVE_KEY,
            previous_reservation_id=previous_id,
        )
        self.session.add(reservation)
        self.session.flush()
        self.session.add(
            SlotOccupancy(day=day, start_time=start_time, location=location, reservation_id=reservation.id)
        )
        self.session.flush()
        return reservation

    def _run_claim(self, claim, day: date, start_time: time, location: str, conversation_id: str):
        try:
            reservation = claim()
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            reason = _conflict_reason(exc)
            if reason is None:
                logger.exception("Unexpected integrity error claiming %s %s %s", day, start_time, location)
                raise StoreFailure(f"Claim failed: {exc.orig}") from exc
            logger.warning(
                "Claim conflict (%s) for conversation %s on %s %s at %s",
                reason,
                conversation_id,
                day,
                start_time,
                location,
            )
            return Conflict(reason=reason, day=day, start_time=start_time, location=location)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Claim failed for conversation %s", conversation_id)
            raise StoreFailure(f"Claim failed: {exc}") from exc
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(reservation)
        logger.info(
            f"Reservation {reservation.id} claimed {day} {start_time:%H:%M} at {location} "
            f"for conversation {conversation_id}"
        )
        return reservation

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def release(self, reservation_id: int, next_status: str) -> InterviewReservation:
        """
        Move an active reservation to CANCELLED or ON_HOLD and free its slot.

        The move only applies while the row is still ACTIVE in the database,
        so a concurrent release is never overwritten. Releasing an already
        released reservation is a no-op.
        """
        reservation = self.get(reservation_id)
        if next_status not in RELEASE_STATUSES:
            raise InvalidTransition(reservation_id, reservation.status, next_status)

        try:
            released = self._clear_active(reservation_id, next_status)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Release failed for reservation %d", reservation_id)
            raise StoreFailure(f"Release failed: {exc}") from exc

        self.session.refresh(reservation)
        if released:
            logger.info(f"Reservation {reservation_id} released as {next_status}")
        return reservation

    def confirm(self, reservation_id: int) -> InterviewReservation:
        """PENDING -> CONFIRMED. Confirming a CONFIRMED row is a no-op; released rows cannot be confirmed."""
        reservation = self.get(reservation_id)

        try:
            result = self.session.execute(
                update(InterviewReservation)
                .where(
                    InterviewReservation.id == reservation_id,
                    InterviewReservation.active_key == ACTIVE_KEY,
                    InterviewReservation.status == STATUS_PENDING,
                )
                .values(status=STATUS_CONFIRMED)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Confirm failed for reservation %d", reservation_id)
            raise StoreFailure(f"Confirm failed: {exc}") from exc

        self.session.refresh(reservation)
        if result.rowcount:
            logger.info(f"Reservation {reservation_id} confirmed")
        elif not (reservation.is_active and reservation.status == STATUS_CONFIRMED):
            raise InvalidTransition(reservation_id, reservation.status, STATUS_CONFIRMED)
        return reservation

    def _clear_active(self, reservation_id: int, next_status: str) -> bool:
        """
        Compare-and-set release inside the caller's transaction.

        Returns False, changing nothing, when the row is no longer ACTIVE.
        """
        result = self.session.execute(
            update(InterviewReservation)
            .where(InterviewReservation.id == reservation_id, InterviewReservation.active_key == ACTIVE_KEY)
            .values(status=next_status, active_key=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        self.session.execute(
            update(SlotOccupancy)
            .where(SlotOccupancy.reservation_id == reservation_id, SlotOccupancy.active_key == ACTIVE_KEY)
            .values(active_key=None)
            .execution_options(synchronize_session=False)
        )
        return True

    # ------------------------------------------------------------------
    # Slot blocks
    # ------------------------------------------------------------------

    def create_block(
        self,
        day: date,
        start_time: time,
        duration_minutes: int,
        location: str,
        tag: Optional[str] = None,
        reason: Optional[str] = None,
        slot_minutes: Optional[int] = None,
    ) -> Union[SlotBlock, Conflict]:
        """
        Hold every slot start covered by [start_time, start_time + duration).

        All covered ledger rows are claimed in one transaction; if any is already
        held the block is not created.
        """
        start_minutes = start_time.hour * 60 + start_time.minute
        if duration_minutes <= 0 or start_minutes + duration_minutes > 24 * 60:
            raise SlotValidationError("BAD_INPUT", "Block must have a positive duration within a single day")
        step = slot_minutes or duration_minutes
        covered = [
            time((start_minutes + offset) // 60, (start_minutes + offset) % 60)
            for offset in range(0, duration_minutes, step)
        ]

        block = SlotBlock(
            day=day,
            start_time=start_time,
            duration_minutes=duration_minutes,
            location=location,
            tag=tag,
            reason=reason,
        )
        try:
            self.session.add(block)
            self.session.flush()
            for covered_start in covered:
                self.session.add(
                    SlotOccupancy(day=day, start_time=covered_start, location=location, slot_block_id=block.id)
                )
                self.session.flush()
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if _conflict_reason(exc) is None:
                logger.exception("Unexpected integrity error creating block on %s %s", day, start_time)
                raise StoreFailure(f"Block failed: {exc.orig}") from exc
            logger.warning("Block conflict on %s %s at %s", day, start_time, location)
            return Conflict(reason=CONFLICT_SLOT_TAKEN, day=day, start_time=start_time, location=location)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Block creation failed on %s %s", day, start_time)
            raise StoreFailure(f"Block failed: {exc}") from exc

        self.session.refresh(block)
        logger.info(f"Slot block {block.id} ({tag or 'untagged'}) holds {len(covered)} slot(s) on {day} at {location}")
        return block

    def archive_block(self, block_id: int) -> SlotBlock:
        """Archive a block and free its slots. Archiving twice is a no-op."""
        block = self.session.get(SlotBlock, block_id)
        if block is None:
            raise RecordNotFound(f"Slot block {block_id} not found")
        if block.archived_at is not None:
            return block

        try:
            block.archived_at = datetime.now(timezone.utc)
            block.active_key = None
            self.session.add(block)
            ledger = self.session.exec(
                select(SlotOccupancy).where(
                    SlotOccupancy.slot_block_id == block.id,
                    SlotOccupancy.active_key == ACTIVE_KEY,
                )
            ).all()
            for row in ledger:
                row.active_key = None
                self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Archiving slot block %d failed", block_id)
            raise StoreFailure(f"Archive failed: {exc}") from exc

        self.session.refresh(block)
        logger.info(f"Slot block {block_id} archived")
        return block

    def list_blocks(
        self,
        include_archived: bool = False,
        tag: Optional[str] = None,
        from_day: Optional[date] = None,
        days: Optional[int] = None,
    ) -> List[SlotBlock]:
        query = select(SlotBlock)
        if not include_archived:
            query = query.where(SlotBlock.archived_at.is_(None))
        if tag:
            query = query.where(SlotBlock.tag == tag)
        if from_day is not None:
            query = query.where(SlotBlock.day >= from_day)
            if days:
                query = query.where(SlotBlock.day < from_day + timedelta(days=days))
        return list(self.session.exec(query.order_by(SlotBlock.day, SlotBlock.start_time, SlotBlock.id)).all())

"""
Tests for the Scheduling Engine

Tests:
- Fresh booking, idempotent repeat, reschedule (and a move racing a release)
- Conflicts return alternatives at the requested location
- Validation reasons (missing, unknown location, outside availability, past)
- Weekday-name requests
"""

from datetime import date, datetime, time, timedelta, timezone

from sqlmodel import Session

from slot_engine.models.reservation import STATUS_CANCELLED, STATUS_ON_HOLD, STATUS_PENDING
from slot_engine.services.reservation_store import CONFLICT_CONVERSATION_BUSY, Conflict, ReservationStore
from slot_engine.services.scheduling_engine import (
    KIND_RESCHEDULED,
    KIND_SCHEDULED,
    KIND_UNCHANGED,
    REASON_BAD_INPUT,
    REASON_CONFLICT,
    REASON_MISSING,
    REASON_OUTSIDE_AVAILABILITY,
    REASON_PAST,
    REASON_UNKNOWN_LOCATION,
    attempt_schedule,
    resolve_and_attempt_schedule,
)
from tests.conftest import MONDAY, NOW


class StaleReadStore(ReservationStore):
    """First lookup misses the active row, as if a concurrent request had not committed yet."""

    stale = True

    def find_active_for(self, conversation_id):
        if self.stale:
            self.stale = False
            return None
        return super().find_active_for(conversation_id)


class ReleasedMidwayStore(ReservationStore):
    """Another session puts the active row on hold right after it is read."""

    def __init__(self, session, engine):
        super().__init__(session)
        self.engine = engine

    def find_active_for(self, conversation_id):
        active = super().find_active_for(conversation_id)
        if active is not None:
            with Session(self.engine) as other:
                ReservationStore(other).release(active.id, STATUS_ON_HOLD)
        return active


def _schedule(store, config, conversation_id, hour, location="Providencia", day=MONDAY, now=NOW):
    return attempt_schedule(
        store,
        conversation_id,
        f"contact-{conversation_id}",
        day,
        time(hour, 0) if hour is not None else None,
        location,
        config,
        now=now,
    )


class TestBooking:
    def test_fresh_booking(self, store, config):
        result = _schedule(store, config, "conv-1", 10)

        assert result.ok
        assert result.kind == KIND_SCHEDULED
        assert result.previous_reservation_id is None
        assert result.slot.location == "Providencia"
        assert result.slot.start_time == time(10, 0)

        reservation = store.get(result.reservation_id)
        assert reservation.status == STATUS_PENDING
        assert reservation.conversation_id == "conv-1"
        assert reservation.contact_id == "contact-conv-1"

    def test_default_location_when_omitted(self, store, config):
        result = _schedule(store, config, "conv-1", 10, location=None)

        assert result.ok
        assert result.slot.location == "Providencia"

    def test_location_matched_case_insensitively(self, store, config):
        result = _schedule(store, config, "conv-1", 10, location="  las condes ")

        assert result.ok
        assert result.slot.location == "Las Condes"

    def test_repeat_request_is_unchanged(self, store, config):
        first = _schedule(store, config, "conv-1", 10)
        again = _schedule(store, config, "conv-1", 10, location="PROVIDENCIA")

        assert again.ok
        assert again.kind == KIND_UNCHANGED
        assert again.reservation_id == first.reservation_id
        assert again.previous_reservation_id is None
        assert len(store.history_for("conv-1")) == 1

    def test_reschedule(self, store, config):
        first = _schedule(store, config, "conv-1", 10)
        moved = _schedule(store, config, "conv-1", 14)

        assert moved.ok
        assert moved.kind == KIND_RESCHEDULED
        assert moved.previous_reservation_id == first.reservation_id
        assert store.get(first.reservation_id).status == STATUS_CANCELLED
        assert store.find_active_for("conv-1").id == moved.reservation_id
        assert store.list_occupied(MONDAY) == {(time(14, 0), "Providencia")}

    def test_reschedule_to_other_location_same_time(self, store, config):
        _schedule(store, config, "conv-1", 10)
        moved = _schedule(store, config, "conv-1", 10, location="Las Condes")

        assert moved.kind == KIND_RESCHEDULED
        assert store.list_occupied(MONDAY) == {(time(10, 0), "Las Condes")}

    def test_to_dict_success_shape(self, store, config):
        payload = _schedule(store, config, "conv-1", 10).to_dict()

        assert payload["ok"] is True
        assert payload["kind"] == KIND_SCHEDULED
        assert payload["day"] == "2026-03-02"
        assert payload["time"] == "10:00"
        assert payload["timezone"] == "America/Santiago"
        assert payload["start_at"] == "2026-03-02T10:00:00-03:00"


class TestConflicts:
    def test_taken_slot_returns_nearest_alternatives(self, store, config):
        _schedule(store, config, "conv-1", 10)
        result = _schedule(store, config, "conv-2", 10)

        assert not result.ok
        assert result.is_conflict
        assert result.reason == REASON_CONFLICT
        assert [(w.day, w.start_time) for w in result.alternatives] == [
            (MONDAY, time(9, 0)),
            (MONDAY, time(11, 0)),
            (MONDAY, time(12, 0)),
        ]
        assert all(w.location == "Providencia" for w in result.alternatives)
        assert store.find_active_for("conv-2") is None

    def test_conflict_to_dict_shape(self, store, config):
        _schedule(store, config, "conv-1", 10)
        payload = _schedule(store, config, "conv-2", 10).to_dict()

        assert payload["ok"] is False
        assert payload["reason"] == REASON_CONFLICT
        assert payload["alternatives"][0]["time"] == "09:00"
        assert payload["alternatives"][0]["location"] == "Providencia"

    def test_reschedule_conflict_keeps_original(self, store, config):
        first = _schedule(store, config, "conv-1", 10)
        _schedule(store, config, "conv-2", 15)

        result = _schedule(store, config, "conv-1", 15)

        assert not result.ok
        assert result.reason == REASON_CONFLICT
        original = store.get(first.reservation_id)
        assert original.is_active
        assert original.start_time == time(10, 0)
        # Nearest to 15:00; ties go to the earlier time
        assert [w.start_time for w in result.alternatives] == [time(14, 0), time(16, 0), time(13, 0)]

    def test_blocked_slot_conflicts(self, store, config):
        store.create_block(MONDAY, time(10, 0), 60, "Providencia", tag="TEST", slot_minutes=60)
        result = _schedule(store, config, "conv-1", 10)

        assert result.reason == REASON_CONFLICT
        assert time(10, 0) not in [w.start_time for w in result.alternatives]

    def test_lost_race_for_own_slot_is_unchanged(self, store, config):
        first = _schedule(store, config, "conv-1", 10)

        result = _schedule(StaleReadStore(store.session), config, "conv-1", 10)

        assert result.ok
        assert result.kind == KIND_UNCHANGED
        assert result.reservation_id == first.reservation_id
        assert result.previous_reservation_id is None
        assert len(store.history_for("conv-1")) == 1

    def test_lost_race_for_other_slot_is_conflict(self, store, config):
        _schedule(store, config, "conv-1", 10)

        result = _schedule(StaleReadStore(store.session), config, "conv-1", 12)

        assert not result.ok
        assert result.reason == REASON_CONFLICT
        assert result.message == Conflict(CONFLICT_CONVERSATION_BUSY, MONDAY, time(12, 0), "Providencia").message
        assert store.find_active_for("conv-1").start_time == time(10, 0)

    def test_move_after_release_elsewhere_is_fresh_booking(self, file_engine, config):
        with Session(file_engine) as session:
            first = _schedule(ReservationStore(session), config, "conv-1", 10)

            result = _schedule(ReleasedMidwayStore(session, file_engine), config, "conv-1", 14)

            assert result.ok
            assert result.kind == KIND_SCHEDULED
            assert result.previous_reservation_id is None
            store = ReservationStore(session)
            assert store.get(first.reservation_id).status == STATUS_ON_HOLD
            assert store.find_active_for("conv-1").id == result.reservation_id


class TestValidation:
    def test_missing_time(self, store, config):
        result = _schedule(store, config, "conv-1", None)

        assert not result.ok
        assert result.reason == REASON_MISSING
        assert result.is_validation_error
        assert result.alternatives == []

    def test_missing_day(self, store, config):
        result = _schedule(store, config, "conv-1", 10, day=None)
        assert result.reason == REASON_MISSING

    def test_unknown_location(self, store, config):
        result = _schedule(store, config, "conv-1", 10, location="Maipu")

        assert result.reason == REASON_UNKNOWN_LOCATION
        assert "Providencia" in result.message
        assert store.history_for("conv-1") == []

    def test_outside_availability(self, store, config):
        # 18:00 would end after the 18:00 close
        assert _schedule(store, config, "conv-1", 18).reason == REASON_OUTSIDE_AVAILABILITY
        # Tuesday has no availability
        assert _schedule(store, config, "conv-1", 10, day=MONDAY + timedelta(days=1)).reason == (
            REASON_OUTSIDE_AVAILABILITY
        )

    def test_misaligned_time(self, store, config):
        result = attempt_schedule(store, "conv-1", "c", MONDAY, time(10, 30), "Providencia", config, now=NOW)
        assert result.reason == REASON_OUTSIDE_AVAILABILITY

    def test_exception_day(self, store, config):
        closed = config.model_copy(update={"exceptions": frozenset({MONDAY})})
        result = _schedule(store, closed, "conv-1", 10)

        assert result.reason == REASON_OUTSIDE_AVAILABILITY
        assert store.list_occupied(MONDAY) == set()

    def test_past_slot(self, store, config):
        # Monday 10:30 in Santiago
        now = datetime(2026, 3, 2, 13, 30, tzinfo=timezone.utc)

        assert _schedule(store, config, "conv-1", 10, now=now).reason == REASON_PAST
        assert _schedule(store, config, "conv-1", 11, now=now).ok

    def test_slot_starting_now_is_past(self, store, config):
        now = datetime(2026, 3, 2, 13, 0, tzinfo=timezone.utc)
        assert _schedule(store, config, "conv-1", 10, now=now).reason == REASON_PAST


class TestWeekdayRequests:
    def test_next_occurrence_is_booked(self, store, config):
        result = resolve_and_attempt_schedule(
            store, "conv-1", "contact-1", "lunes", time(10, 0), "Providencia", config, now=NOW
        )

        assert result.ok
        assert result.slot.day == MONDAY

    def test_unknown_weekday(self, store, config):
        result = resolve_and_attempt_schedule(
            store, "conv-1", "contact-1", "someday", time(10, 0), None, config, now=NOW
        )
        assert result.reason == REASON_BAD_INPUT

    def test_missing_weekday(self, store, config):
        result = resolve_and_attempt_schedule(store, "conv-1", "contact-1", None, time(10, 0), None, config, now=NOW)
        assert result.reason == REASON_MISSING

    def test_weekday_without_availability(self, store, config):
        result = resolve_and_attempt_schedule(
            store, "conv-1", "contact-1", "martes", time(10, 0), None, config, now=NOW
        )
        assert result.reason == REASON_OUTSIDE_AVAILABILITY
        assert result.slot is None

    def test_weekday_after_passing_time_rolls_to_next_week(self, store, config):
        # Monday 11:00 local: Monday 10:00 is gone, so "lunes 10:00" means next week
        now = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)
        result = resolve_and_attempt_schedule(
            store, "conv-1", "contact-1", "Monday", time(10, 0), None, config, now=now
        )

        assert result.ok
        assert result.slot.day == date(2026, 3, 9)

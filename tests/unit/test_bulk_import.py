"""Unit tests for bulk import and conflict resolution."""
from datetime import date

import pytest
from sqlalchemy import select

from quickroom.bulk_import import process_bulk_import, resolve_bulk_conflicts
from quickroom.database import SessionLocal
from quickroom.errors import PermissionDeniedError
from quickroom.models import Booking, BookingStatus
from quickroom.schemas import BulkBookingRow, BulkResolution
from tests.helpers import future_day

DAY = future_day(3)


def row(room_name="Lab A", day=None, start="09:00", end="10:00", purpose="Lecture"):
    return BulkBookingRow(
        room_name=room_name,
        date=(day or DAY).isoformat() if not isinstance(day, str) else day,
        start_time=start,
        end_time=end,
        purpose=purpose,
    )


class TestProcessBulkImport:
    """Test classification of imported rows."""

    def test_nonexistent_room_row_does_not_stop_the_batch(self, db_session, admin, room):
        """Test a bad row is recorded and the next row is still created."""
        rows = [row(start="09:00", end="10:00"), row(room_name="Atlantis"), row(start="11:00", end="12:00")]

        result = process_bulk_import(db_session, admin, rows)

        assert [(e.row_index, e.reason) for e in result.errors] == [(1, "Room not found: Atlantis")]
        assert [c.row_index for c in result.created] == [0, 2]
        assert result.summary.total == 3

    def test_every_row_lands_in_exactly_one_bucket(self, db_session, admin, other_student, room, make_booking):
        """Test created, conflicts and errors partition the input."""
        make_booking(other_student, room, DAY, "14:00", "15:00")
        rows = [
            row(),
            row(start="14:30", end="15:30"),
            row(room_name=None),
            row(day="03/10/2025"),
            row(day=date(2020, 1, 1)),
            row(start="25:00"),
            row(start="10:00", end="09:00"),
        ]

        result = process_bulk_import(db_session, admin, rows)
        summary = result.summary

        assert summary.total == len(rows) == summary.created + summary.conflicts + summary.errors
        indices = sorted(
            [c.row_index for c in result.created]
            + [c.row_index for c in result.conflicts]
            + [e.row_index for e in result.errors]
        )
        assert indices == list(range(len(rows)))

    def test_error_reasons_follow_check_order(self, db_session, admin, room):
        """Test each malformed row reports the first check it fails."""
        rows = [
            BulkBookingRow(room_name="Lab A", purpose=" "),
            row(room_name="lab a ", day="2025-13-01"),
            row(day=date(2020, 1, 1), start="bad"),
            row(start="9:00", end="7:5"),
            row(start="10:00", end="10:00"),
        ]

        result = process_bulk_import(db_session, admin, rows)

        assert [e.reason for e in result.errors] == [
            "Missing required field: date, start_time, end_time, purpose",
            "Invalid date format: 2025-13-01",
            "Date cannot be in the past",
            "Invalid time format: 7:5",
            "End time must be after start time",
        ]

    def test_created_rows_are_approved_and_owned_by_admin(self, db_session, admin, room):
        """Test imported bookings are stored approved under the importing admin."""
        result = process_bulk_import(db_session, admin, [row(room_name="  LAB a", start="8:00", end="9:30")])

        created = result.created[0]
        assert created.room_name == "Lab A"
        assert created.start_time == "08:00"
        with SessionLocal() as session:
            booking = session.get(Booking, created.id)
            assert booking.status is BookingStatus.APPROVED
            assert booking.user_id == admin.id

    def test_conflict_carries_normalized_candidate_and_existing(
        self, db_session, admin, other_student, room, make_booking
    ):
        """Test a conflict returns the padded candidate and the bookings it hits."""
        existing = make_booking(other_student, room, DAY, "09:00", "10:00", purpose="Club")

        result = process_bulk_import(db_session, admin, [row(start="9:30", end="10:30")])

        conflict = result.conflicts[0]
        assert conflict.booking.start_time == "09:30"
        assert conflict.booking.duration == 1.0
        assert conflict.booking.room_id == room.id
        assert [(e.id, e.user_name, e.purpose) for e in conflict.existing_bookings] == [(existing.id, "Bob", "Club")]

    def test_later_row_conflicts_with_earlier_created_row(self, db_session, admin, room):
        """Test rows of one batch are checked against rows already created."""
        result = process_bulk_import(db_session, admin, [row(), row(start="09:30", end="10:30")])

        assert [c.row_index for c in result.created] == [0]
        assert [c.row_index for c in result.conflicts] == [1]
        assert result.conflicts[0].existing_bookings[0].id == result.created[0].id

    def test_requires_admin(self, db_session, student, room):
        """Test students cannot import."""
        with pytest.raises(PermissionDeniedError):
            process_bulk_import(db_session, student, [row()])


class TestResolveBulkConflicts:
    """Test override and cancel resolutions."""

    def test_override_displaces_existing_and_cancel_creates_nothing(
        self, db_session, admin, other_student, room, make_booking, notifier
    ):
        """Test override books the row and displaces, cancel just drops it."""
        existing = make_booking(other_student, room, DAY, "09:00", "10:00")
        imported = process_bulk_import(db_session, admin, [row(start="09:30", end="10:30"), row(start="9:45", end="11:00")])
        first, second = imported.conflicts

        result = resolve_bulk_conflicts(
            db_session,
            admin,
            [BulkResolution(booking=first.booking, action="override"), BulkResolution(booking=second.booking, action="cancel")],
            notifier,
        )

        assert len(result.created) == 1
        assert [c.start_time for c in result.cancelled] == ["09:45"]
        assert [r.id for r in result.rejected] == [existing.id]
        assert result.failures == []
        assert len(notifier.sent) == 1
        with SessionLocal() as session:
            statuses = {b.id: b.status for b in session.execute(select(Booking)).scalars()}
        assert statuses[existing.id] is BookingStatus.REJECTED
        assert statuses[result.created[0].id] is BookingStatus.APPROVED

    def test_override_of_deleted_room_is_a_failure(self, db_session, admin, room, other_student, make_booking, notifier):
        """Test an override naming a vanished room is reported as a failure."""
        make_booking(other_student, room, DAY, "09:00", "10:00")
        candidate = process_bulk_import(db_session, admin, [row()]).conflicts[0].booking
        candidate.room_id = 999

        result = resolve_bulk_conflicts(db_session, admin, [BulkResolution(booking=candidate, action="override")], notifier)

        assert result.created == []
        assert [(f.index, f.reason) for f in result.failures] == [(0, "Room not found: Lab A")]

    def test_override_revalidates_times(self, db_session, admin, room, other_student, make_booking, notifier):
        """Test an override with a bad window is reported, not booked."""
        make_booking(other_student, room, DAY, "09:00", "10:00")
        candidate = process_bulk_import(db_session, admin, [row()]).conflicts[0].booking
        candidate.end_time = "08:00"

        result = resolve_bulk_conflicts(db_session, admin, [BulkResolution(booking=candidate, action="override")], notifier)

        assert result.failures[0].reason == "End time must be after start time"

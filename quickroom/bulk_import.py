"""Bulk import of admin-submitted bookings.

Each row ends up in exactly one bucket:

* ``errors``: the row is malformed, names an unknown room, or lies in the past;
* ``conflicts``: the row is valid but overlaps an approved booking;
* ``created``: the row is valid and free, and was stored as ``approved``.

Rows are committed one at a time, so a row that collides with an earlier row
of the same batch that was created lands in ``conflicts``. Conflicts go back to
the admin, who resolves each with ``override`` or ``cancel``.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .availability import find_conflicts
from .cascade import run_override_cascade
from .errors import BookingValidationError, NotFoundError, QuickRoomError
from .intervals import (
    TimeWindow,
    build_window,
    duration_hours,
    ensure_not_past,
    format_time,
    normalize_time,
    parse_date,
)
from .lifecycle import require_admin
from .locking import room_date_guard
from .models import Booking, BookingStatus, Room, User
from .notifications import NotificationDispatcher
from .schemas import (
    BulkBookingRow,
    BulkImportResult,
    BulkResolution,
    BulkResolveResult,
    BulkSummary,
    CascadeReport,
    CancelledRow,
    CandidateBooking,
    ConflictRow,
    CreatedRow,
    ErrorRow,
    ExistingBookingSummary,
    ResolutionFailure,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("room_name", "date", "start_time", "end_time", "purpose")


def _find_room_by_name(db: Session, name: str) -> Optional[Room]:
    return db.execute(select(Room).where(func.lower(Room.name) == name.strip().lower())).scalars().first()


def _window(start: str, end: str) -> Tuple[str, str, TimeWindow]:
    start_text = normalize_time(start)
    end_text = normalize_time(end)
    return start_text, end_text, build_window(start_text, end_text)


def validate_row(db: Session, row: BulkBookingRow, today: Optional[date] = None) -> CandidateBooking:
    """Turn a raw row into a normalized candidate or raise with the row's reason."""
    missing = [name for name in REQUIRED_FIELDS if not (getattr(row, name) or "").strip()]
    if missing:
        raise BookingValidationError(f"Missing required field: {', '.join(missing)}")

    room = _find_room_by_name(db, row.room_name)
    if room is None:
        raise NotFoundError(f"Room not found: {row.room_name}")

    day = parse_date(row.date)
    ensure_not_past(day, today)
    start_text, end_text, window = _window(row.start_time, row.end_time)
    return CandidateBooking(
        room_name=room.name,
        room_id=room.id,
        date=day,
        start_time=start_text,
        end_time=end_text,
        duration=duration_hours(window.start, window.end),
        purpose=row.purpose.strip(),
    )


def _summaries(bookings: Sequence[Booking]) -> List[ExistingBookingSummary]:
    return [
        ExistingBookingSummary(
            id=booking.id,
            user_name=booking.user.name,
            start_time=format_time(booking.start_time),
            end_time=format_time(booking.end_time),
            purpose=booking.purpose,
        )
        for booking in bookings
    ]


def process_bulk_import(
    db: Session,
    admin: User,
    rows: Sequence[BulkBookingRow],
    today: Optional[date] = None,
) -> BulkImportResult:
    require_admin(admin)
    result = BulkImportResult(summary=BulkSummary(total=len(rows), created=0, conflicts=0, errors=0))

    for index, row in enumerate(rows):
        try:
            candidate = validate_row(db, row, today)
        except QuickRoomError as exc:
            result.errors.append(ErrorRow(row_index=index, reason=exc.detail, booking=row))
            continue

        window = build_window(candidate.start_time, candidate.end_time)
        try:
            with room_date_guard(db, candidate.room_id, candidate.date) as room:
                existing = find_conflicts(db, candidate.room_id, candidate.date, window)
                if existing:
                    result.conflicts.append(
                        ConflictRow(row_index=index, booking=candidate, existing_bookings=_summaries(existing))
                    )
                    db.rollback()
                    continue
                booking = Booking(
                    user_id=admin.id,
                    room=room,
                    date=candidate.date,
                    start_time=window.start,
                    end_time=window.end,
                    purpose=candidate.purpose,
                    status=BookingStatus.APPROVED,
                )
                db.add(booking)
                db.commit()
        except QuickRoomError as exc:
            result.errors.append(ErrorRow(row_index=index, reason=exc.detail, booking=row))
            continue

        result.created.append(
            CreatedRow(
                row_index=index,
                id=booking.id,
                room_name=candidate.room_name,
                date=candidate.date,
                start_time=candidate.start_time,
                end_time=candidate.end_time,
                purpose=candidate.purpose,
            )
        )

    result.summary.created = len(result.created)
    result.summary.conflicts = len(result.conflicts)
    result.summary.errors = len(result.errors)
    logger.info(
        "bulk import by %s: %d rows, %d created, %d conflicts, %d errors",
        admin.username,
        result.summary.total,
        result.summary.created,
        result.summary.conflicts,
        result.summary.errors,
    )
    return result


def _override(
    db: Session,
    admin: User,
    candidate: CandidateBooking,
    notifier: NotificationDispatcher,
    today: Optional[date],
) -> Tuple[Booking, CascadeReport]:
    room = db.get(Room, candidate.room_id)
    if room is None:
        raise NotFoundError(f"Room not found: {candidate.room_name}")
    ensure_not_past(candidate.date, today)
    _, _, window = _window(candidate.start_time, candidate.end_time)
    purpose = candidate.purpose.strip()
    if not purpose:
        raise BookingValidationError("Missing required field: purpose")
    subject = Booking(
        user_id=admin.id,
        room_id=room.id,
        room=room,
        date=candidate.date,
        start_time=window.start,
        end_time=window.end,
        purpose=purpose,
    )
    report = run_override_cascade(db, subject, admin, notifier)
    return subject, report


def resolve_bulk_conflicts(
    db: Session,
    admin: User,
    resolutions: Sequence[BulkResolution],
    notifier: NotificationDispatcher,
    today: Optional[date] = None,
) -> BulkResolveResult:
    """Apply the admin's decision for each conflicted row.

    ``cancel`` drops the candidate. ``override`` re-validates it and books it
    through the override cascade, which rejects whatever approved bookings it
    now overlaps.
    """
    require_admin(admin)
    result = BulkResolveResult()

    for index, resolution in enumerate(resolutions):
        candidate = resolution.booking
        if resolution.action == "cancel":
            result.cancelled.append(
                CancelledRow(
                    room_name=candidate.room_name,
                    date=candidate.date,
                    start_time=candidate.start_time,
                    end_time=candidate.end_time,
                    purpose=candidate.purpose,
                )
            )
            continue

        try:
            booking, report = _override(db, admin, candidate, notifier, today)
        except QuickRoomError as exc:
            logger.warning("override of bulk row %d failed: %s", index, exc.detail)
            result.failures.append(ResolutionFailure(index=index, reason=exc.detail))
            continue

        result.created.append(
            CreatedRow(
                row_index=index,
                id=booking.id,
                room_name=booking.room.name,
                date=booking.date,
                start_time=format_time(booking.start_time),
                end_time=format_time(booking.end_time),
                purpose=booking.purpose,
            )
        )
        result.rejected.extend(report.displaced)
        result.failures.extend(
            ResolutionFailure(index=index, reason=f"Booking {failure.booking_id}: {failure.reason}")
            for failure in report.failures
        )
        result.cascades.append(report)

    logger.info(
        "bulk resolve by %s: %d created, %d cancelled, %d displaced, %d failures",
        admin.username,
        len(result.created),
        len(result.cancelled),
        len(result.rejected),
        len(result.failures),
    )
    return result

"""Force-approve a booking and reject whatever it collides with.

The subject is approved first, then every other approved booking in the same
room and date that overlaps it is rejected, each inside its own savepoint so a
single bad row does not undo the rest. Everything is committed once and the
displaced requesters are told afterwards; a notification that cannot be sent
is reported, never rolled back.
"""
from __future__ import annotations

import logging
from typing import List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .availability import find_conflicts
from .errors import InvalidStateError, PermissionDeniedError
from .intervals import format_time
from .locking import room_date_guard
from .models import Booking, BookingStatus, User
from .notifications import (
    BookingSnapshot,
    Notification,
    NotificationDispatcher,
    NotificationKind,
    deliver,
)
from .schemas import CascadeFailure, CascadeReport, DisplacedBooking

logger = logging.getLogger(__name__)


def override_reason(admin: User, subject: Booking) -> str:
    return (
        f"Admin force-approved a conflicting booking by {admin.name} for {subject.purpose} "
        f"on {subject.date.isoformat()} from {format_time(subject.start_time)} to {format_time(subject.end_time)}"
    )


def _displaced(booking: Booking) -> DisplacedBooking:
    return DisplacedBooking(
        id=booking.id,
        user_name=booking.user.name,
        room_name=booking.room.name,
        date=booking.date,
        start_time=format_time(booking.start_time),
        end_time=format_time(booking.end_time),
    )


def run_override_cascade(
    db: Session,
    subject: Booking,
    admin: User,
    notifier: NotificationDispatcher,
) -> CascadeReport:
    """Approve ``subject`` (new or pending) and reject its conflicts.

    Raises :class:`InvalidStateError` if a persisted subject is no longer
    pending once the room/date guard is held.
    """
    if not admin.is_admin:
        raise PermissionDeniedError("Admin access required")

    losers: List[Tuple[Booking, str]] = []
    with room_date_guard(db, subject.room_id, subject.date):
        if subject.id is not None:
            db.refresh(subject)
            if subject.status is not BookingStatus.PENDING:
                raise InvalidStateError(f"Booking {subject.id} is already {subject.status.value}")
        else:
            db.add(subject)
        subject.status = BookingStatus.APPROVED
        subject.rejection_reason = None
        db.flush()

        report = CascadeReport(subject_id=subject.id)
        reason = override_reason(admin, subject)
        for loser in find_conflicts(db, subject.room_id, subject.date, subject.window, exclude_booking_id=subject.id):
            loser_id = loser.id
            try:
                with db.begin_nested():
                    loser.status = BookingStatus.REJECTED
                    loser.rejection_reason = reason
                    db.flush()
            except SQLAlchemyError as exc:
                logger.exception("cascade could not reject booking %s", loser_id)
                report.failures.append(CascadeFailure(booking_id=loser_id, reason=str(exc)))
                continue
            logger.info("booking %s rejected by override of booking %s", loser_id, subject.id)
            report.displaced.append(_displaced(loser))
            losers.append((loser, reason))
        db.commit()

    logger.info(
        "booking %s approved by %s; %d displaced, %d failed",
        subject.id,
        admin.username,
        len(report.displaced),
        len(report.failures),
    )

    replacement = BookingSnapshot.of(subject)
    for loser, reason in losers:
        if not loser.user.email:
            logger.warning("no email on file for user %s; skipping override notice", loser.user_id)
            continue
        notification = Notification(
            kind=NotificationKind.OVERRIDE_CANCELLED,
            recipient_email=loser.user.email,
            recipient_name=loser.user.name,
            booking=BookingSnapshot.of(loser),
            replacement=replacement,
            approved_by=admin.name,
            reason=reason,
        )
        if deliver(notifier, notification):
            report.notified += 1
        else:
            report.notification_failures.append(
                CascadeFailure(booking_id=loser.id, reason=f"Could not notify {loser.user.email}")
            )
    return report

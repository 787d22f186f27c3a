"""Booking lifecycle: create, edit, delete, approve and reject.

A booking starts ``pending``. Only its requester may edit or delete it, and
only while it is still pending. Admins move it to ``approved`` (through the
override cascade) or ``rejected``; both are final apart from a later override
rejecting an approved booking.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload, selectinload

from .availability import is_available
from .capacity import check_resource_availability
from .cascade import run_override_cascade
from .errors import (
    BookingConflictError,
    BookingValidationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from .intervals import TimeWindow, build_window, ensure_not_past, format_time, parse_date
from .locking import room_date_guard
from .models import Booking, BookingResource, BookingStatus, Resource, User
from .notifications import (
    BookingSnapshot,
    LoggingDispatcher,
    Notification,
    NotificationDispatcher,
    NotificationKind,
    deliver,
)
from .schemas import (
    BookingCreate,
    BookingUpdate,
    CascadeReport,
    ResourceAvailabilityReport,
    ResourceRequest,
    VisibleBooking,
)

logger = logging.getLogger(__name__)


def require_admin(actor: User) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Admin access required")


def get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking not found: {booking_id}")
    return booking


def _require_pending_owner(booking: Booking, actor: User, verb: str, past: str) -> None:
    if booking.user_id != actor.id:
        raise PermissionDeniedError(f"You can only {verb} your own bookings")
    if booking.status is not BookingStatus.PENDING:
        raise InvalidStateError(f"Only pending bookings can be {past}")


def _clean_purpose(purpose: str) -> str:
    text = purpose.strip()
    if not text:
        raise BookingValidationError("Missing required field: purpose")
    return text


def _validate_resources(db: Session, requests: List[ResourceRequest]) -> Dict[int, int]:
    """Check every requested resource exists and the quantity fits its stock."""
    quantities: Dict[int, int] = {}
    for request in requests:
        if request.resource_id in quantities:
            raise BookingValidationError(f"Resource requested more than once: {request.resource_id}")
        resource = db.get(Resource, request.resource_id)
        if resource is None:
            raise NotFoundError(f"Resource not found: {request.resource_id}")
        if request.quantity > resource.total_quantity:
            raise BookingValidationError(
                f"Requested quantity {request.quantity} of {resource.name} exceeds total quantity {resource.total_quantity}"
            )
        quantities[request.resource_id] = request.quantity
    return quantities


def _resource_report(
    db: Session, requests: List[ResourceRequest], day: date, window: TimeWindow
) -> Optional[ResourceAvailabilityReport]:
    if not requests:
        return None
    return check_resource_availability(db, requests, day, window)


def create_booking(
    db: Session,
    actor: User,
    payload: BookingCreate,
    today: Optional[date] = None,
) -> Tuple[Booking, Optional[ResourceAvailabilityReport]]:
    """Create a pending booking.

    Returns the booking and, when resources were requested, the capacity report
    computed against currently approved reservations. The report is advisory.
    """
    day = parse_date(payload.date)
    ensure_not_past(day, today)
    window = build_window(payload.start_time, payload.end_time)
    purpose = _clean_purpose(payload.purpose)

    with room_date_guard(db, payload.room_id, day) as room:
        quantities = _validate_resources(db, payload.resources)
        if not is_available(db, payload.room_id, day, window):
            raise BookingConflictError("Room is not available for the selected time")
        report = _resource_report(db, payload.resources, day, window)
        booking = Booking(
            user_id=actor.id,
            room=room,
            date=day,
            start_time=window.start,
            end_time=window.end,
            purpose=purpose,
            status=BookingStatus.PENDING,
        )
        booking.resources = [
            BookingResource(resource_id=resource_id, quantity_requested=quantity)
            for resource_id, quantity in quantities.items()
        ]
        db.add(booking)
        db.commit()

    logger.info("booking %s created by %s for room %s on %s", booking.id, actor.username, booking.room_id, day)
    if report is not None and not report.available:
        logger.warning("booking %s created with insufficient resources", booking.id)
    return booking, report


def edit_booking(
    db: Session,
    actor: User,
    booking_id: int,
    changes: BookingUpdate,
    today: Optional[date] = None,
) -> Tuple[Booking, Optional[ResourceAvailabilityReport]]:
    booking = get_booking(db, booking_id)
    _require_pending_owner(booking, actor, "edit", "edited")

    room_id = changes.room_id if changes.room_id is not None else booking.room_id
    day = parse_date(changes.date) if changes.date is not None else booking.date
    ensure_not_past(day, today)
    window = build_window(
        changes.start_time if changes.start_time is not None else format_time(booking.start_time),
        changes.end_time if changes.end_time is not None else format_time(booking.end_time),
    )
    purpose = _clean_purpose(changes.purpose) if changes.purpose is not None else booking.purpose

    with room_date_guard(db, room_id, day) as room:
        quantities = None
        if changes.resources is not None:
            quantities = _validate_resources(db, changes.resources)
        if not is_available(db, room_id, day, window, exclude_booking_id=booking.id):
            raise BookingConflictError("This time slot is no longer available")
        booking.room = room
        booking.date = day
        booking.start_time = window.start
        booking.end_time = window.end
        booking.purpose = purpose
        if quantities is not None:
            booking.resources.clear()
            db.flush()
            booking.resources.extend(
                BookingResource(resource_id=resource_id, quantity_requested=quantity)
                for resource_id, quantity in quantities.items()
            )
        db.commit()

    requests = changes.resources
    if requests is None:
        requests = [ResourceRequest(resource_id=r.resource_id, quantity=r.quantity_requested) for r in booking.resources]
    report = _resource_report(db, requests, day, window)
    logger.info("booking %s edited by %s", booking.id, actor.username)
    return booking, report


def delete_booking(db: Session, actor: User, booking_id: int) -> None:
    booking = get_booking(db, booking_id)
    _require_pending_owner(booking, actor, "delete", "deleted")
    db.delete(booking)
    db.commit()
    logger.info("booking %s deleted by %s", booking_id, actor.username)


def _notify_requester(
    notifier: Optional[NotificationDispatcher],
    booking: Booking,
    kind: NotificationKind,
    reason: Optional[str] = None,
) -> bool:
    if notifier is None:
        return False
    if not booking.user.email:
        logger.warning("no email on file for user %s; skipping %s", booking.user_id, kind.value)
        return False
    return deliver(
        notifier,
        Notification(
            kind=kind,
            recipient_email=booking.user.email,
            recipient_name=booking.user.name,
            booking=BookingSnapshot.of(booking),
            reason=reason,
        ),
    )


def approve_booking(
    db: Session,
    admin: User,
    booking_id: int,
    notifier: Optional[NotificationDispatcher] = None,
) -> Tuple[Booking, CascadeReport]:
    """Approve a pending booking, displacing any approved booking it overlaps."""
    require_admin(admin)
    booking = get_booking(db, booking_id)
    if booking.status is not BookingStatus.PENDING:
        raise InvalidStateError("Only pending bookings can be approved")
    report = run_override_cascade(db, booking, admin, notifier or LoggingDispatcher())
    _notify_requester(notifier, booking, NotificationKind.APPROVED)
    return booking, report


def reject_booking(
    db: Session,
    admin: User,
    booking_id: int,
    reason: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Booking:
    require_admin(admin)
    booking = get_booking(db, booking_id)
    if booking.status is not BookingStatus.PENDING:
        raise InvalidStateError("Only pending bookings can be rejected")
    booking.status = BookingStatus.REJECTED
    booking.rejection_reason = reason.strip() if reason and reason.strip() else None
    db.commit()
    logger.info("booking %s rejected by %s", booking.id, admin.username)
    _notify_requester(notifier, booking, NotificationKind.REJECTED, booking.rejection_reason)
    return booking


def _listing_query():
    return select(Booking).options(
        joinedload(Booking.user), joinedload(Booking.room), selectinload(Booking.resources)
    )


def list_user_bookings(db: Session, user: User) -> List[Booking]:
    query = _listing_query().where(Booking.user_id == user.id).order_by(Booking.date.desc(), Booking.start_time.desc())
    return list(db.execute(query).scalars().unique())


def list_all_bookings(db: Session, admin: User, status: Optional[BookingStatus] = None) -> List[Booking]:
    require_admin(admin)
    query = _listing_query().order_by(Booking.date, Booking.start_time)
    if status is not None:
        query = query.where(Booking.status == status)
    return list(db.execute(query).scalars().unique())


def list_visible_bookings(db: Session, user: User) -> List[VisibleBooking]:
    """The caller's own bookings in full plus everyone else's approved slots, anonymised."""
    query = (
        _listing_query()
        .where((Booking.user_id == user.id) | (Booking.status == BookingStatus.APPROVED))
        .order_by(Booking.date.desc(), Booking.start_time.desc())
    )
    visible = []
    for booking in db.execute(query).scalars().unique():
        own = booking.user_id == user.id
        visible.append(
            VisibleBooking(
                id=booking.id,
                room_name=booking.room.name,
                date=booking.date,
                start_time=format_time(booking.start_time),
                end_time=format_time(booking.end_time),
                duration=booking.duration,
                status=booking.status.value if own else "booked",
                purpose=booking.purpose if own else "Not available",
                user_name=booking.user.name if own else "Booked",
            )
        )
    return visible

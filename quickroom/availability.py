"""Room availability: is a room free on a date for a time window?"""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from .intervals import TimeWindow, overlaps
from .models import Booking, BookingStatus


def find_conflicts(
    db: Session,
    room_id: int,
    day: date,
    window: TimeWindow,
    exclude_booking_id: Optional[int] = None,
) -> List[Booking]:
    """Approved bookings in the room on ``day`` whose window overlaps ``window``."""
    query = (
        select(Booking)
        .options(joinedload(Booking.user))
        .where(
            Booking.room_id == room_id,
            Booking.date == day,
            Booking.status == BookingStatus.APPROVED,
        )
        .order_by(Booking.start_time, Booking.id)
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    candidates = db.execute(query).scalars().all()
    return [booking for booking in candidates if overlaps(window, booking.window)]


def is_available(
    db: Session,
    room_id: int,
    day: date,
    window: TimeWindow,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    return not find_conflicts(db, room_id, day, window, exclude_booking_id)

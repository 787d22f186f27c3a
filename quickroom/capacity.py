"""Capacity accounting for shared, finite-quantity resources.

A reservation only consumes stock while its booking is approved. The report
is advisory: callers surface it as a warning and do not refuse the booking.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .intervals import TimeWindow, overlaps
from .models import Booking, BookingResource, BookingStatus, Resource
from .schemas import ResourceAvailabilityItem, ResourceAvailabilityReport, ResourceRequest

logger = logging.getLogger(__name__)


def committed_quantities(db: Session, resource_ids: Iterable[int], day: date, window: TimeWindow) -> Dict[int, int]:
    """Sum of quantities held by approved, overlapping bookings, per resource."""
    ids = list(resource_ids)
    used: Dict[int, int] = defaultdict(int)
    if not ids:
        return used
    rows = db.execute(
        select(BookingResource.resource_id, BookingResource.quantity_requested, Booking.start_time, Booking.end_time)
        .join(Booking, BookingResource.booking_id == Booking.id)
        .where(
            BookingResource.resource_id.in_(ids),
            Booking.date == day,
            Booking.status == BookingStatus.APPROVED,
        )
    ).all()
    for resource_id, quantity, start, end in rows:
        if overlaps(window, TimeWindow(start, end)):
            used[resource_id] += quantity
    return used


def check_resource_availability(
    db: Session,
    requests: List[ResourceRequest],
    day: date,
    window: TimeWindow,
) -> ResourceAvailabilityReport:
    resources = {
        resource.id: resource
        for resource in db.execute(
            select(Resource).where(Resource.id.in_([r.resource_id for r in requests]))
        ).scalars()
    }
    missing = [r.resource_id for r in requests if r.resource_id not in resources]
    if missing:
        raise NotFoundError(f"Resource not found: {', '.join(str(i) for i in missing)}")

    used = committed_quantities(db, resources.keys(), day, window)
    items = []
    for request in requests:
        resource = resources[request.resource_id]
        available = resource.total_quantity - used[resource.id]
        items.append(
            ResourceAvailabilityItem(
                resource_id=resource.id,
                resource_name=resource.name,
                requested=request.quantity,
                available=available,
                sufficient=request.quantity <= available,
            )
        )
    report = ResourceAvailabilityReport(available=all(item.sufficient for item in items), resources=items)
    if not report.available:
        logger.info(
            "resource shortfall on %s %s-%s: %s",
            day,
            window.start,
            window.end,
            [item.resource_id for item in items if not item.sufficient],
        )
    return report

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from quickroom import bulk_import, lifecycle
from quickroom.availability import is_available
from quickroom.config import get_settings
from quickroom.database import Base, engine, get_db
from quickroom.dependencies import get_current_active_user, require_admin_user
from quickroom.errors import NotFoundError, register_error_handlers
from quickroom.intervals import build_window, format_time, parse_date
from quickroom.logging_middleware import add_audit_middleware, configure_logging
from quickroom.models import Booking, BookingStatus, Room, User
from quickroom.notifications import NotificationDispatcher, get_notifier
from quickroom.rate_limit import apply_rate_limiter, limiter
from quickroom.schemas import (
    AvailabilityResult,
    BookingCreate,
    BookingCreated,
    BookingDetail,
    BookingRead,
    BookingStatusUpdate,
    BookingUpdate,
    BulkImportRequest,
    BulkImportResult,
    BulkResolveRequest,
    BulkResolveResult,
    ResourceAvailabilityReport,
    StatusChangeResult,
    VisibleBooking,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    configure_logging()
    fastapi_app = FastAPI(title="Bookings Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    register_error_handlers(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


def _submission_message(report: Optional[ResourceAvailabilityReport], action: str) -> str:
    if report is not None and not report.available:
        short = ", ".join(item.resource_name for item in report.resources if not item.sufficient)
        return f"Booking {action}, but some resources may be unavailable: {short}"
    return f"Booking {action}"


@app.post("/bookings", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> BookingCreated:
    booking, report = lifecycle.create_booking(db, current_user, booking_in)
    return BookingCreated(
        booking=BookingRead.model_validate(booking),
        resource_report=report,
        message=_submission_message(report, "request submitted"),
    )


@app.get("/bookings/my", response_model=List[BookingDetail])
@limiter.limit("60/minute")
def my_bookings(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[Booking]:
    return lifecycle.list_user_bookings(db, current_user)


@app.get("/bookings/all", response_model=List[BookingDetail])
@limiter.limit("30/minute")
def all_bookings(
    request: Request,
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> List[Booking]:
    return lifecycle.list_all_bookings(db, current_user, status_filter)


@app.get("/bookings/visible", response_model=List[VisibleBooking])
@limiter.limit("60/minute")
def visible_bookings(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[VisibleBooking]:
    return lifecycle.list_visible_bookings(db, current_user)


@app.get("/bookings/availability", response_model=AvailabilityResult)
@limiter.limit("60/minute")
def room_availability(
    request: Request,
    room_id: int,
    date: str,
    start_time: str,
    end_time: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> AvailabilityResult:
    if db.get(Room, room_id) is None:
        raise NotFoundError(f"Room not found: {room_id}")
    day = parse_date(date)
    window = build_window(start_time, end_time)
    return AvailabilityResult(
        room_id=room_id,
        date=day,
        start_time=format_time(window.start),
        end_time=format_time(window.end),
        available=is_available(db, room_id, day, window),
    )


@app.post("/bookings/bulk", response_model=BulkImportResult)
@limiter.limit("10/minute")
def bulk_create(
    request: Request,
    payload: BulkImportRequest,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> BulkImportResult:
    return bulk_import.process_bulk_import(db, current_user, payload.bookings)


@app.post("/bookings/bulk/resolve", response_model=BulkResolveResult)
@limiter.limit("10/minute")
def bulk_resolve(
    request: Request,
    payload: BulkResolveRequest,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> BulkResolveResult:
    return bulk_import.resolve_bulk_conflicts(db, current_user, payload.resolutions, notifier)


@app.put("/bookings/{booking_id}", response_model=BookingCreated)
@limiter.limit("20/minute")
def update_booking(
    request: Request,
    booking_id: int,
    booking_update: BookingUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> BookingCreated:
    booking, report = lifecycle.edit_booking(db, current_user, booking_id, booking_update)
    return BookingCreated(
        booking=BookingRead.model_validate(booking),
        resource_report=report,
        message=_submission_message(report, "updated successfully"),
    )


@app.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_booking(
    request: Request,
    booking_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> None:
    lifecycle.delete_booking(db, current_user, booking_id)


@app.put("/bookings/{booking_id}/status", response_model=StatusChangeResult)
@limiter.limit("30/minute")
def change_status(
    request: Request,
    booking_id: int,
    payload: BookingStatusUpdate,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> StatusChangeResult:
    if payload.status == BookingStatus.APPROVED.value:
        booking, report = lifecycle.approve_booking(db, current_user, booking_id, notifier)
        displaced = len(report.displaced)
        message = "Booking approved" if not displaced else f"Booking approved; {displaced} conflicting booking(s) rejected"
        return StatusChangeResult(message=message, booking=BookingRead.model_validate(booking), cascade=report)

    booking = lifecycle.reject_booking(db, current_user, booking_id, payload.rejection_reason, notifier)
    return StatusChangeResult(message="Booking rejected", booking=BookingRead.model_validate(booking))

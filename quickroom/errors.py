"""Domain errors raised by the booking core and their HTTP mapping."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class QuickRoomError(Exception):
    """Base class for domain/service errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class BookingValidationError(QuickRoomError):
    code = "validation_error"


class BookingConflictError(QuickRoomError):
    status_code = status.HTTP_409_CONFLICT
    code = "booking_conflict"


class PermissionDeniedError(QuickRoomError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(QuickRoomError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidStateError(QuickRoomError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class NotificationDeliveryError(QuickRoomError):
    """Raised by notification transports. Callers log it and carry on."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "notification_failed"


def quickroom_error_handler(_: Request, exc: QuickRoomError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "code": exc.code})


def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "; ".join(messages), "code": BookingValidationError.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors and body validation failures onto JSON responses."""

    app.add_exception_handler(QuickRoomError, quickroom_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]

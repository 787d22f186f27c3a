"""Pydantic schemas shared across the services."""
from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_serializer

from .models import BookingStatus, RoleEnum


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserBase(BaseModel):
    name: str = Field(..., max_length=100)
    username: str = Field(..., max_length=50)
    email: EmailStr
    role: RoleEnum = RoleEnum.STUDENT


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)


class UserRead(UserBase):
    id: int
    email: Optional[EmailStr] = None
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    capacity: int = Field(..., ge=1)
    type: str = "General"


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    capacity: Optional[int] = Field(None, ge=1)
    type: Optional[str] = None


class RoomRead(RoomBase):
    id: int

    model_config = {"from_attributes": True}


class ResourceBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., min_length=1, max_length=100)
    total_quantity: int = Field(..., ge=1)


class ResourceCreate(ResourceBase):
    pass


class ResourceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = Field(None, min_length=1, max_length=100)
    total_quantity: Optional[int] = Field(None, ge=1)


class ResourceRead(ResourceBase):
    id: int

    model_config = {"from_attributes": True}


class ResourceRequest(BaseModel):
    resource_id: int
    quantity: int = Field(..., ge=1)


class ResourceAvailabilityRequest(BaseModel):
    resources: List[ResourceRequest] = Field(..., min_length=1)
    date: str
    start_time: str
    end_time: str


class ResourceAvailabilityItem(BaseModel):
    resource_id: int
    resource_name: str
    requested: int
    available: int
    sufficient: bool


class ResourceAvailabilityReport(BaseModel):
    available: bool
    resources: List[ResourceAvailabilityItem]


class BookingCreate(BaseModel):
    room_id: int
    date: str
    start_time: str
    end_time: str
    purpose: str = Field(..., min_length=1)
    resources: List[ResourceRequest] = Field(default_factory=list)


class BookingUpdate(BaseModel):
    room_id: Optional[int] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    purpose: Optional[str] = Field(None, min_length=1)
    resources: Optional[List[ResourceRequest]] = None


class BookingResourceRead(BaseModel):
    resource_id: int
    quantity_requested: int

    model_config = {"from_attributes": True}


class BookingRead(BaseModel):
    id: int
    user_id: int
    room_id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    duration: float
    purpose: str
    status: BookingStatus
    rejection_reason: Optional[str] = None
    resources: List[BookingResourceRead] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def _serialize_time(self, value: dt.time) -> str:
        return value.strftime("%H:%M")


class BookingDetail(BookingRead):
    user_name: str
    room_name: str


class VisibleBooking(BaseModel):
    id: int
    room_name: str
    date: dt.date
    start_time: str
    end_time: str
    duration: float
    status: str
    purpose: str
    user_name: str


class BookingCreated(BaseModel):
    booking: BookingRead
    resource_report: Optional[ResourceAvailabilityReport] = None
    message: str


class BookingStatusUpdate(BaseModel):
    status: Literal["approved", "rejected"]
    rejection_reason: Optional[str] = None


class AvailabilityResult(BaseModel):
    room_id: int
    date: dt.date
    start_time: str
    end_time: str
    available: bool


class DisplacedBooking(BaseModel):
    id: int
    user_name: str
    room_name: str
    date: dt.date
    start_time: str
    end_time: str


class CascadeFailure(BaseModel):
    booking_id: int
    reason: str


class CascadeReport(BaseModel):
    subject_id: int
    displaced: List[DisplacedBooking] = Field(default_factory=list)
    failures: List[CascadeFailure] = Field(default_factory=list)
    notified: int = 0
    notification_failures: List[CascadeFailure] = Field(default_factory=list)


class StatusChangeResult(BaseModel):
    message: str
    booking: BookingRead
    cascade: Optional[CascadeReport] = None


class BulkBookingRow(BaseModel):
    room_name: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    purpose: Optional[str] = None


class BulkImportRequest(BaseModel):
    bookings: List[BulkBookingRow] = Field(..., min_length=1)


class CandidateBooking(BaseModel):
    room_name: str
    room_id: int
    date: dt.date
    start_time: str
    end_time: str
    duration: float
    purpose: str


class ExistingBookingSummary(BaseModel):
    id: int
    user_name: str
    start_time: str
    end_time: str
    purpose: str


class CreatedRow(BaseModel):
    row_index: int
    id: int
    room_name: str
    date: dt.date
    start_time: str
    end_time: str
    purpose: str


class ConflictRow(BaseModel):
    row_index: int
    booking: CandidateBooking
    existing_bookings: List[ExistingBookingSummary]


class ErrorRow(BaseModel):
    row_index: int
    reason: str
    booking: BulkBookingRow


class BulkSummary(BaseModel):
    total: int
    created: int
    conflicts: int
    errors: int


class BulkImportResult(BaseModel):
    created: List[CreatedRow] = Field(default_factory=list)
    conflicts: List[ConflictRow] = Field(default_factory=list)
    errors: List[ErrorRow] = Field(default_factory=list)
    summary: BulkSummary


class BulkResolution(BaseModel):
    booking: CandidateBooking
    action: Literal["override", "cancel"]


class BulkResolveRequest(BaseModel):
    resolutions: List[BulkResolution] = Field(..., min_length=1)


class CancelledRow(BaseModel):
    room_name: str
    date: dt.date
    start_time: str
    end_time: str
    purpose: str


class ResolutionFailure(BaseModel):
    index: int
    reason: str


class BulkResolveResult(BaseModel):
    created: List[CreatedRow] = Field(default_factory=list)
    cancelled: List[CancelledRow] = Field(default_factory=list)
    rejected: List[DisplacedBooking] = Field(default_factory=list)
    failures: List[ResolutionFailure] = Field(default_factory=list)
    cascades: List[CascadeReport] = Field(default_factory=list)

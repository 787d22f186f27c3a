"""Time-window parsing and the half-open overlap test.

Every conflict decision in the application goes through :func:`overlaps`.
Windows are half-open, ``[start, end)``, so a booking that ends at 10:00 does
not collide with one that starts at 10:00.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import NamedTuple, Optional

from .errors import BookingValidationError

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class TimeWindow(NamedTuple):
    start: time
    end: time


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    return a.start < b.end and b.start < a.end


def normalize_time(value: str) -> str:
    """Zero-pad the hour of an ``H:MM``/``HH:MM`` string."""
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise BookingValidationError(f"Invalid time format: {value}")
    hours, minutes = match.groups()
    return f"{hours.zfill(2)}:{minutes}"


def parse_time(value: str) -> time:
    hours, minutes = normalize_time(value).split(":")
    return time(int(hours), int(minutes))


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def parse_date(value: str) -> date:
    text = value.strip()
    if not DATE_PATTERN.match(text):
        raise BookingValidationError(f"Invalid date format: {value}")
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError as exc:
        raise BookingValidationError(f"Invalid date format: {value}") from exc


def ensure_not_past(day: date, today: Optional[date] = None) -> None:
    if day < (today or date.today()):
        raise BookingValidationError("Date cannot be in the past")


def build_window(start: str, end: str) -> TimeWindow:
    """Parse both ends and check that the window is not empty or inverted."""
    window = TimeWindow(parse_time(start), parse_time(end))
    if window.end <= window.start:
        raise BookingValidationError("End time must be after start time")
    return window


def duration_hours(start: time, end: time) -> float:
    minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
    return round(minutes / 60, 2)

"""Notification dispatch for booking decisions.

The booking core only ever talks to a :class:`NotificationDispatcher`. Which
transport sits behind it is decided by settings: the application log during
development, or a durable RabbitMQ queue that a mail worker drains.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Optional, Protocol

import pika
from circuitbreaker import CircuitBreakerError, circuit
from pika.exceptions import AMQPError

from .config import get_settings
from .errors import NotificationDeliveryError
from .intervals import format_time
from .models import Booking

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    APPROVED = "booking_approved"
    REJECTED = "booking_rejected"
    OVERRIDE_CANCELLED = "booking_override_cancelled"


@dataclass(frozen=True)
class BookingSnapshot:
    booking_id: int
    room_name: str
    date: date
    start_time: str
    end_time: str
    duration: float
    purpose: str

    @classmethod
    def of(cls, booking: Booking) -> "BookingSnapshot":
        return cls(
            booking_id=booking.id,
            room_name=booking.room.name,
            date=booking.date,
            start_time=format_time(booking.start_time),
            end_time=format_time(booking.end_time),
            duration=booking.duration,
            purpose=booking.purpose,
        )


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    recipient_email: str
    recipient_name: str
    booking: BookingSnapshot
    replacement: Optional[BookingSnapshot] = None
    approved_by: Optional[str] = None
    reason: Optional[str] = None

    @property
    def subject(self) -> str:
        if self.kind is NotificationKind.APPROVED:
            return f"Room Booking Approved - {self.booking.room_name}"
        if self.kind is NotificationKind.REJECTED:
            return f"Room Booking Update - {self.booking.room_name}"
        return f"Room Booking Cancelled - Admin Override - {self.booking.room_name}"

    def render_body(self) -> str:
        b = self.booking
        lines = [
            f"Hi {self.recipient_name},",
            "",
            f"Room: {b.room_name}",
            f"Date: {b.date:%B %d, %Y}",
            f"Time: {b.start_time} - {b.end_time}",
            f"Duration: {b.duration} hour(s)",
            f"Purpose: {b.purpose}",
        ]
        if self.kind is NotificationKind.APPROVED:
            lines.insert(2, "Great news! Your room booking has been approved.")
        elif self.kind is NotificationKind.REJECTED:
            lines.insert(2, "Your room booking could not be approved at this time.")
            if self.reason:
                lines.append(f"Reason: {self.reason}")
        else:
            lines.insert(2, "Your room booking has been cancelled due to an admin override.")
            if self.replacement is not None:
                r = self.replacement
                lines += [
                    "",
                    f"Approved by: {self.approved_by or 'an administrator'}",
                    f"New booking purpose: {r.purpose}",
                    f"Date: {r.date:%B %d, %Y}",
                    f"Time: {r.start_time} - {r.end_time}",
                ]
        return "\n".join(lines)

    def to_message(self, sender: str) -> dict:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["from"] = sender
        payload["subject"] = self.subject
        payload["body"] = self.render_body()
        return payload


class NotificationDispatcher(Protocol):
    def dispatch(self, notification: Notification) -> bool:
        """Deliver one notification. Returns False or raises on failure."""
        ...


class LoggingDispatcher:
    """Writes notifications to the application log instead of sending them."""

    def dispatch(self, notification: Notification) -> bool:
        logger.info(
            "notification %s -> %s | %s",
            notification.kind.value,
            notification.recipient_email,
            notification.subject,
        )
        return True


class RabbitMQDispatcher:
    """Publishes notifications as persistent JSON messages on a durable queue."""

    def __init__(self, host: str, queue: str, sender: str) -> None:
        self.host = host
        self.queue = queue
        self.sender = sender

    @circuit(failure_threshold=5, recovery_timeout=60, expected_exception=AMQPError)
    def _publish(self, body: str) -> None:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=self.host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=self.queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=self.queue,
                body=body,
                properties=pika.BasicProperties(delivery_mode=2, content_type="application/json"),
            )
        finally:
            connection.close()

    def dispatch(self, notification: Notification) -> bool:
        body = json.dumps(notification.to_message(self.sender), default=str)
        try:
            self._publish(body)
        except (AMQPError, CircuitBreakerError) as exc:
            raise NotificationDeliveryError(
                f"Could not queue {notification.kind.value} for {notification.recipient_email}: {exc}"
            ) from exc
        logger.info("queued %s for %s", notification.kind.value, notification.recipient_email)
        return True


def deliver(dispatcher: NotificationDispatcher, notification: Notification) -> bool:
    """Dispatch and swallow delivery failures after logging them."""
    try:
        delivered = dispatcher.dispatch(notification)
    except NotificationDeliveryError as exc:
        logger.error("notification failed: %s", exc.detail)
        return False
    except Exception:
        logger.exception(
            "dispatcher raised while sending %s to %s",
            notification.kind.value,
            notification.recipient_email,
        )
        return False
    if not delivered:
        logger.error(
            "notification %s to %s was not delivered",
            notification.kind.value,
            notification.recipient_email,
        )
    return delivered


def get_notifier() -> NotificationDispatcher:
    """FastAPI dependency returning the configured dispatcher."""
    settings = get_settings()
    if settings.notification_backend == "rabbitmq":
        return RabbitMQDispatcher(settings.rabbitmq_host, settings.notification_queue, settings.notification_sender)
    return LoggingDispatcher()

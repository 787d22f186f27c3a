"""Helpers shared by the API and unit tests."""
from datetime import date, timedelta
from typing import List

from quickroom.auth import token_for
from quickroom.errors import NotificationDeliveryError
from quickroom.models import User
from quickroom.notifications import Notification

PASSWORD = "Passw0rd!"


class RecordingDispatcher:
    """Keeps notifications in memory; refuses recipients listed in ``fail_for``."""

    def __init__(self) -> None:
        self.sent: List[Notification] = []
        self.fail_for: set = set()

    def dispatch(self, notification: Notification) -> bool:
        if notification.recipient_email in self.fail_for:
            raise NotificationDeliveryError(f"mailbox unavailable: {notification.recipient_email}")
        self.sent.append(notification)
        return True


def future_day(days: int = 7) -> date:
    return date.today() + timedelta(days=days)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}

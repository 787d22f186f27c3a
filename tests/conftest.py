import os
import tempfile
from datetime import date
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="quickroom-logs-"))

from quickroom.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from quickroom.auth import get_password_hash  # noqa: E402
from quickroom.database import Base, SessionLocal, engine  # noqa: E402
from quickroom.intervals import parse_time  # noqa: E402
from quickroom.models import Booking, BookingStatus, Resource, RoleEnum, Room, User  # noqa: E402
from quickroom.notifications import get_notifier  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.resources.app import app as resources_app  # noqa: E402
from services.rooms.app import app as rooms_app, room_list_cache  # noqa: E402
from services.users.app import app as users_app  # noqa: E402
from tests.helpers import PASSWORD, RecordingDispatcher  # noqa: E402


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    room_list_cache.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user() -> Callable[..., User]:
    def factory(username: str, role: RoleEnum = RoleEnum.STUDENT, email: str | None = "") -> User:
        with SessionLocal() as session:
            user = User(
                name=username.title(),
                username=username,
                email=f"{username}@example.com" if email == "" else email,
                role=role,
                hashed_password=get_password_hash(PASSWORD),
            )
            session.add(user)
            session.commit()
            return user

    return factory


@pytest.fixture()
def admin(make_user) -> User:
    return make_user("admin", RoleEnum.ADMIN)


@pytest.fixture()
def student(make_user) -> User:
    return make_user("alice")


@pytest.fixture()
def other_student(make_user) -> User:
    return make_user("bob")


@pytest.fixture()
def make_room() -> Callable[..., Room]:
    def factory(name: str = "Lab A", capacity: int = 20, type: str = "General") -> Room:
        with SessionLocal() as session:
            room = Room(name=name, capacity=capacity, type=type)
            session.add(room)
            session.commit()
            return room

    return factory


@pytest.fixture()
def room(make_room) -> Room:
    return make_room()


@pytest.fixture()
def make_resource() -> Callable[..., Resource]:
    def factory(name: str = "Projector", total_quantity: int = 5, type: str = "AV") -> Resource:
        with SessionLocal() as session:
            resource = Resource(name=name, type=type, total_quantity=total_quantity)
            session.add(resource)
            session.commit()
            return resource

    return factory


@pytest.fixture()
def make_booking() -> Callable[..., Booking]:
    """Insert a booking directly, bypassing the lifecycle checks."""

    def factory(
        user: User,
        room: Room,
        day: date,
        start: str,
        end: str,
        status: BookingStatus = BookingStatus.APPROVED,
        purpose: str = "Study group",
    ) -> Booking:
        with SessionLocal() as session:
            booking = Booking(
                user_id=user.id,
                room_id=room.id,
                date=day,
                start_time=parse_time(start),
                end_time=parse_time(end),
                purpose=purpose,
                status=status,
            )
            session.add(booking)
            session.commit()
            return booking

    return factory


@pytest.fixture()
def notifier() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def resources_client() -> Generator[TestClient, None, None]:
    with TestClient(resources_app) as client:
        yield client


@pytest.fixture()
def bookings_client(notifier) -> Generator[TestClient, None, None]:
    bookings_app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(bookings_app) as client:
        yield client
    bookings_app.dependency_overrides.clear()

from contextlib import asynccontextmanager
from typing import List, Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quickroom.cache import SimpleTTLCache
from quickroom.config import get_settings
from quickroom.database import Base, engine, get_db
from quickroom.dependencies import get_current_active_user, require_admin_user
from quickroom.errors import BookingValidationError, NotFoundError, register_error_handlers
from quickroom.logging_middleware import add_audit_middleware, configure_logging
from quickroom.models import Room, User
from quickroom.rate_limit import apply_rate_limiter, limiter
from quickroom.schemas import RoomCreate, RoomRead, RoomUpdate

settings = get_settings()
room_list_cache: SimpleTTLCache[List[RoomRead]] = SimpleTTLCache(ttl=settings.room_cache_ttl)
ROOM_LIST_PREFIX = "room-list:"


def _invalidate_room_cache() -> None:
    room_list_cache.invalidate_prefix(ROOM_LIST_PREFIX)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    configure_logging()
    fastapi_app = FastAPI(title="Rooms Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


def _get_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if not room:
        raise NotFoundError(f"Room not found: {room_id}")
    return room


def _ensure_unique_name(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    query = select(Room.id).where(func.lower(Room.name) == name.strip().lower())
    if exclude_id is not None:
        query = query.where(Room.id != exclude_id)
    if db.execute(query).first():
        raise BookingValidationError(f"Room name already exists: {name}")


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> Room:
    _ensure_unique_name(db, room_in.name)
    room = Room(name=room_in.name.strip(), capacity=room_in.capacity, type=room_in.type)
    db.add(room)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise BookingValidationError(f"Room name already exists: {room_in.name}") from exc
    db.refresh(room)
    _invalidate_room_cache()
    return room


@app.get("/rooms", response_model=List[RoomRead])
@circuit(failure_threshold=5, recovery_timeout=60)
def list_rooms(
    request: Request,
    min_capacity: Optional[int] = None,
    type: Optional[str] = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[RoomRead]:
    cache_key = f"{ROOM_LIST_PREFIX}{min_capacity}:{type}"
    cached = room_list_cache.get(cache_key)
    if cached is not None:
        return cached

    query = select(Room).order_by(Room.name)
    if min_capacity:
        query = query.where(Room.capacity >= min_capacity)
    if type:
        query = query.where(func.lower(Room.type) == type.lower())
    rooms = [RoomRead.model_validate(room) for room in db.execute(query).scalars()]
    room_list_cache.set(cache_key, rooms)
    return rooms


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(
    request: Request,
    room_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Room:
    return _get_room(db, room_id)


@app.put("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> Room:
    room = _get_room(db, room_id)
    update_data = room_update.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in update_data:
        _ensure_unique_name(db, update_data["name"], exclude_id=room.id)
        update_data["name"] = update_data["name"].strip()
    for key, value in update_data.items():
        setattr(room, key, value)
    db.commit()
    db.refresh(room)
    _invalidate_room_cache()
    return room


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: int,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> None:
    room = _get_room(db, room_id)
    db.delete(room)
    db.commit()
    _invalidate_room_cache()

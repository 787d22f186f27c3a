"""Serialises check-then-act sequences on one room and date.

Two admins approving overlapping bookings at the same moment would otherwise
both see "no conflicts yet". The guard holds a process-local lock per
(room, date) and row-locks the room with ``SELECT ... FOR UPDATE`` so that
several worker processes sharing a PostgreSQL database also queue up. SQLite
ignores ``FOR UPDATE``; its writer lock covers the single-process case.
"""
from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .models import Room

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
# Entries disappear once no guard holds or waits on the lock.
_locks: "weakref.WeakValueDictionary[Tuple[int, date], threading.Lock]" = weakref.WeakValueDictionary()


def _lock_for(room_id: int, day: date) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get((room_id, day))
        if lock is None:
            lock = threading.Lock()
            _locks[(room_id, day)] = lock
        return lock


@contextmanager
def room_date_guard(db: Session, room_id: int, day: date) -> Iterator[Room]:
    """Hold the (room, date) lock for the duration of the block.

    Yields the locked room. The caller commits inside the block; any error
    escaping the block rolls the session back before the lock is released.
    The session must carry no unflushed changes on entry: its open read
    transaction is ended before queueing, since on SQLite a waiting reader
    keeps the lock holder from committing.
    """
    db.commit()
    lock = _lock_for(room_id, day)
    with lock:
        try:
            room = db.execute(select(Room).where(Room.id == room_id).with_for_update()).scalar_one_or_none()
            if room is None:
                raise NotFoundError(f"Room not found: {room_id}")
            logger.debug("guard acquired room=%s date=%s", room_id, day)
            yield room
        except Exception:
            db.rollback()
            raise

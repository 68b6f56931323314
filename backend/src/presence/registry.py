"""
In-memory presence registry: connection id -> UserRecord for every open connection.
"""
import dataclasses
from collections.abc import Iterator
from datetime import datetime, timezone
from threading import Lock
from typing import Callable

from src.presence.models import UserRecord


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PresenceRegistry:
    """
    Guarded mapping of live users. Socket handlers (event loop) and HTTP routes
    (threadpool) both read it, so every access goes through one lock.
    Records handed out are copies; callers never see the stored objects.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        self._clock = clock
        self._users: dict[str, UserRecord] = {}
        self._lock = Lock()

    def upsert(
        self,
        connection_id: str,
        display_name: str | None,
        latitude: float | None,
        longitude: float | None,
    ) -> UserRecord:
        """Insert or overwrite the record for connection_id (last write wins)."""
        record = UserRecord(
            connection_id=connection_id,
            display_name=display_name,
            latitude=latitude,
            longitude=longitude,
            last_seen=self._clock(),
        )
        with self._lock:
            self._users[connection_id] = record
            return dataclasses.replace(record)

    def update_position(
        self, connection_id: str, latitude: float | None, longitude: float | None
    ) -> UserRecord | None:
        """Move a registered user. Returns None (and changes nothing) for unknown connections."""
        with self._lock:
            record = self._users.get(connection_id)
            if record is None:
                return None
            record.latitude = latitude
            record.longitude = longitude
            record.last_seen = self._clock()
            return dataclasses.replace(record)

    def get(self, connection_id: str) -> UserRecord | None:
        with self._lock:
            record = self._users.get(connection_id)
            return dataclasses.replace(record) if record is not None else None

    def remove(self, connection_id: str) -> UserRecord | None:
        with self._lock:
            record = self._users.pop(connection_id, None)
            return dataclasses.replace(record) if record is not None else None

    def all(self) -> Iterator[tuple[str, UserRecord]]:
        """Lazily yield (connection_id, record) pairs from a snapshot taken at call time."""
        with self._lock:
            snapshot = [(cid, dataclasses.replace(rec)) for cid, rec in self._users.items()]
        return iter(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._users

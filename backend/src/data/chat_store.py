"""
Optional durable log of users and chat messages in SQLite.
Live proximity never reads from here; it only backs the /api/messages history query.
"""
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from src.data.geo import bbox_delta_deg, haversine_distance_m
from src.presence.models import MessageEvent

logger = logging.getLogger(__name__)

# History query defaults: last hour, newest 50
MESSAGE_WINDOW_SECONDS = 3600
RECENT_MESSAGES_LIMIT = 50

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _to_db_ts(ts: datetime) -> str:
    # Fixed-width UTC text so SQL string comparison orders correctly
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _from_db_ts(raw: str) -> datetime:
    return datetime.fromisoformat(raw)


class ChatStore:
    """Persistence interface used by the event dispatcher and the history endpoint."""

    def upsert_user(
        self, connection_id: str, name: str | None, lat: float | None, lng: float | None, seen_at: datetime
    ) -> None:
        raise NotImplementedError

    def update_user_position(
        self, connection_id: str, lat: float | None, lng: float | None, seen_at: datetime
    ) -> None:
        raise NotImplementedError

    def append_message(self, event: MessageEvent) -> None:
        raise NotImplementedError

    def query_recent_messages_near(
        self,
        lat: float,
        lng: float,
        radius_m: float,
        window_seconds: int = MESSAGE_WINDOW_SECONDS,
        limit: int = RECENT_MESSAGES_LIMIT,
        now: datetime | None = None,
    ) -> list[MessageEvent]:
        raise NotImplementedError


class NullChatStore(ChatStore):
    """In-memory only mode: writes are dropped, history is always empty."""

    def upsert_user(self, connection_id, name, lat, lng, seen_at) -> None:
        return None

    def update_user_position(self, connection_id, lat, lng, seen_at) -> None:
        return None

    def append_message(self, event: MessageEvent) -> None:
        return None

    def query_recent_messages_near(
        self, lat, lng, radius_m, window_seconds=MESSAGE_WINDOW_SECONDS, limit=RECENT_MESSAGES_LIMIT, now=None
    ) -> list[MessageEvent]:
        return []


class SqliteChatStore(ChatStore):
    """SQLite-backed store. Opens a short-lived connection per call."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)

    def init(self) -> None:
        """Create users and messages tables and indexes if they do not exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    socket_id TEXT UNIQUE,
                    username TEXT,
                    latitude REAL,
                    longitude REAL,
                    last_seen TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sender_id TEXT NOT NULL,
                    sender_name TEXT,
                    message TEXT NOT NULL,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    timestamp TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_lat_lng ON messages(latitude, longitude)")
            conn.commit()

    def upsert_user(self, connection_id, name, lat, lng, seen_at) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO users (socket_id, username, latitude, longitude, last_seen)
                VALUES (?, ?, ?, ?, ?)
                """,
                (connection_id, name, lat, lng, _to_db_ts(seen_at)),
            )
            conn.commit()

    def update_user_position(self, connection_id, lat, lng, seen_at) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "UPDATE users SET latitude = ?, longitude = ?, last_seen = ? WHERE socket_id = ?",
                (lat, lng, _to_db_ts(seen_at), connection_id),
            )
            conn.commit()

    def append_message(self, event: MessageEvent) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO messages (sender_id, sender_name, message, latitude, longitude, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.sender_connection_id,
                    event.sender_name,
                    event.text,
                    event.latitude,
                    event.longitude,
                    _to_db_ts(event.timestamp),
                ),
            )
            conn.commit()

    def query_recent_messages_near(
        self, lat, lng, radius_m, window_seconds=MESSAGE_WINDOW_SECONDS, limit=RECENT_MESSAGES_LIMIT, now=None
    ) -> list[MessageEvent]:
        """
        Messages sent within the last window_seconds and within radius_m of (lat, lng), newest first.
        Bounding box on indexed (latitude, longitude) narrows rows, then Haversine filters exactly.
        """
        if not self.db_path.exists():
            return []
        now = now or datetime.now(timezone.utc)
        since = _to_db_ts(now - timedelta(seconds=window_seconds))
        dlat, dlng = bbox_delta_deg(lat, lng, radius_m)

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cur = conn.execute(
                """
                SELECT sender_id, sender_name, message, latitude, longitude, timestamp
                FROM messages
                WHERE timestamp > ?
                  AND latitude BETWEEN ? AND ? AND longitude BETWEEN ? AND ?
                ORDER BY timestamp DESC, id DESC
                """,
                (since, lat - dlat, lat + dlat, lng - dlng, lng + dlng),
            )
            rows = cur.fetchall()

        results: list[MessageEvent] = []
        for r in rows:
            if haversine_distance_m(lat, lng, r["latitude"], r["longitude"]) > radius_m:
                continue
            results.append(
                MessageEvent(
                    sender_connection_id=r["sender_id"],
                    sender_name=r["sender_name"],
                    text=r["message"],
                    latitude=r["latitude"],
                    longitude=r["longitude"],
                    timestamp=_from_db_ts(r["timestamp"]),
                )
            )
            if len(results) >= limit:
                break
        return results


def open_chat_store(enabled: bool, db_path: str | Path) -> ChatStore:
    """
    Return the SQLite store, or NullChatStore when persistence is disabled
    or the database cannot be initialised (service keeps running in memory).
    """
    if not enabled:
        logger.info("telemetry chat_store mode=memory reason=disabled")
        return NullChatStore()
    store = SqliteChatStore(db_path)
    try:
        store.init()
    except (sqlite3.Error, OSError) as e:
        logger.warning("telemetry chat_store mode=memory reason=init_failed error=%s", str(e))
        return NullChatStore()
    logger.info("telemetry chat_store mode=sqlite path=%s", store.db_path)
    return store

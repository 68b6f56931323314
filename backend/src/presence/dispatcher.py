"""
Event dispatcher: the register / move / message / query / disconnect lifecycle.

Each operation mutates the presence registry (the dispatcher is its only writer),
recomputes the nearby set, then fans out events one recipient at a time.
Unknown connections and missing positions are silent no-ops. A failed delivery
or a failed persistence write is logged and never reaches the client.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from src.data.chat_store import ChatStore, NullChatStore
from src.presence.models import MessageEvent, NeighborResult
from src.presence.proximity import PROXIMITY_RADIUS_M, find_nearby
from src.presence.registry import PresenceRegistry
from src.realtime.transport import Transport

logger = logging.getLogger(__name__)

# Outbound event names
USER_JOINED = "userJoined"
NEARBY_USERS = "nearbyUsers"
USER_LOCATION_UPDATED = "userLocationUpdated"
NEW_MESSAGE = "newMessage"
MESSAGE_SENT = "messageSent"
USER_LEFT = "userLeft"


class EventDispatcher:
    def __init__(
        self,
        registry: PresenceRegistry,
        transport: Transport,
        store: ChatStore | None = None,
        radius_m: float = PROXIMITY_RADIUS_M,
        clock: Callable[[], datetime] | None = None,
    ):
        self.registry = registry
        self.transport = transport
        self.store = store or NullChatStore()
        self.radius_m = radius_m
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _nearby(self, latitude, longitude, exclude: str) -> list[NeighborResult]:
        return find_nearby(self.registry, latitude, longitude, exclude, radius_m=self.radius_m)

    async def _deliver(self, connection_id: str, event: str, payload) -> bool:
        """Send one event to one connection; a failure affects only this recipient."""
        try:
            await self.transport.send_to(connection_id, event, payload)
            return True
        except Exception as e:
            logger.warning(
                "telemetry delivery_failed event=%s to=%s error=%s", event, connection_id, str(e)
            )
            return False

    async def _persist(self, op: str, fn: Callable, *args) -> None:
        """Best-effort store write off the event loop; errors are logged and dropped."""
        if isinstance(self.store, NullChatStore):
            return
        try:
            await asyncio.to_thread(fn, *args)
        except Exception as e:
            logger.warning("telemetry persist_failed op=%s error=%s", op, str(e))

    async def register(
        self,
        connection_id: str,
        display_name: str | None,
        latitude: float | None,
        longitude: float | None,
    ) -> list[NeighborResult]:
        """Add (or replace) the user, announce them to neighbors, then reply with the nearby list."""
        user = self.registry.upsert(connection_id, display_name, latitude, longitude)
        neighbors = self._nearby(latitude, longitude, connection_id)
        for n in neighbors:
            await self._deliver(
                n.connection_id,
                USER_JOINED,
                {"connectionId": connection_id, "displayName": display_name, "distanceMeters": n.distance_m},
            )
        await self._deliver(connection_id, NEARBY_USERS, [n.to_payload() for n in neighbors])
        await self._persist(
            "upsert_user", self.store.upsert_user, connection_id, display_name, latitude, longitude, user.last_seen
        )
        logger.info(
            "telemetry register sid=%s name=%s lat=%s lng=%s neighbors=%d",
            connection_id,
            display_name,
            latitude,
            longitude,
            len(neighbors),
        )
        return neighbors

    async def move(self, connection_id: str, latitude: float | None, longitude: float | None) -> list[NeighborResult]:
        user = self.registry.update_position(connection_id, latitude, longitude)
        if user is None:
            return []
        neighbors = self._nearby(latitude, longitude, connection_id)
        for n in neighbors:
            await self._deliver(
                n.connection_id,
                USER_LOCATION_UPDATED,
                {
                    "connectionId": connection_id,
                    "displayName": user.display_name,
                    "latitude": latitude,
                    "longitude": longitude,
                    "distanceMeters": n.distance_m,
                },
            )
        await self._persist(
            "update_user_position", self.store.update_user_position, connection_id, latitude, longitude, user.last_seen
        )
        return neighbors

    async def send_message(self, connection_id: str, text: str) -> MessageEvent | None:
        """Relay text to everyone near the sender; the sender always gets a messageSent copy."""
        user = self.registry.get(connection_id)
        if user is None or not user.has_position:
            return None
        neighbors = self._nearby(user.latitude, user.longitude, connection_id)
        event = MessageEvent(
            sender_connection_id=connection_id,
            sender_name=user.display_name,
            text=text,
            latitude=user.latitude,
            longitude=user.longitude,
            timestamp=self._clock(),
        )
        payload = event.to_payload()
        for n in neighbors:
            await self._deliver(n.connection_id, NEW_MESSAGE, payload)
        await self._deliver(connection_id, MESSAGE_SENT, payload)
        await self._persist("append_message", self.store.append_message, event)
        logger.info("telemetry message sid=%s recipients=%d", connection_id, len(neighbors))
        return event

    async def query_nearby(self, connection_id: str) -> list[NeighborResult] | None:
        user = self.registry.get(connection_id)
        if user is None or not user.has_position:
            return None
        neighbors = self._nearby(user.latitude, user.longitude, connection_id)
        await self._deliver(connection_id, NEARBY_USERS, [n.to_payload() for n in neighbors])
        return neighbors

    async def disconnect(self, connection_id: str) -> list[NeighborResult]:
        """
        Tell the departing user's neighbors they left, then drop the record.
        Neighbors are computed while the record is still registered; it supplies
        the last known position and is excluded from its own result.
        """
        user = self.registry.get(connection_id)
        if user is None:
            return []
        neighbors = self._nearby(user.latitude, user.longitude, connection_id)
        for n in neighbors:
            await self._deliver(
                n.connection_id,
                USER_LEFT,
                {"connectionId": connection_id, "displayName": user.display_name},
            )
        self.registry.remove(connection_id)
        logger.info("telemetry disconnect sid=%s name=%s neighbors=%d", connection_id, user.display_name, len(neighbors))
        return neighbors

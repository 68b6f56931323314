"""
Records for connected users, proximity results and chat messages.
Payload helpers render the camelCase shape sent over the socket.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple


@dataclass
class UserRecord:
    connection_id: str
    display_name: str | None
    latitude: float | None
    longitude: float | None
    last_seen: datetime

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class NeighborResult(NamedTuple):
    connection_id: str
    display_name: str | None
    distance_m: int
    latitude: float
    longitude: float

    def to_payload(self) -> dict:
        return {
            "connectionId": self.connection_id,
            "displayName": self.display_name,
            "distanceMeters": self.distance_m,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


class MessageEvent(NamedTuple):
    sender_connection_id: str
    sender_name: str | None
    text: str
    latitude: float
    longitude: float
    timestamp: datetime

    def to_payload(self) -> dict:
        return {
            "senderConnectionId": self.sender_connection_id,
            "senderName": self.sender_name,
            "text": self.text,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
        }

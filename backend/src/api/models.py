"""Pydantic models for the HTTP query endpoints (camelCase on the wire, like the socket payloads)."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.presence.models import MessageEvent, UserRecord


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConnectedUserResponse(_CamelModel):
    connection_id: str
    display_name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    last_seen: datetime

    @classmethod
    def from_record(cls, rec: UserRecord) -> "ConnectedUserResponse":
        return cls(
            connection_id=rec.connection_id,
            display_name=rec.display_name,
            latitude=rec.latitude,
            longitude=rec.longitude,
            last_seen=rec.last_seen,
        )


class MessageResponse(_CamelModel):
    sender_connection_id: str
    sender_name: str | None = None
    text: str
    latitude: float
    longitude: float
    timestamp: datetime

    @classmethod
    def from_event(cls, event: MessageEvent) -> "MessageResponse":
        return cls(**event._asdict())

"""
Socket.IO event handlers: parse inbound payloads and hand them to the dispatcher.
Malformed coordinates become None so the user is treated as positionless; nothing
is ever reported back to the client as an error.
"""
import logging
import math

import socketio

from src.data.geo import LAT_MAX, LAT_MIN, LNG_MAX, LNG_MIN
from src.monitoring import record_event
from src.presence.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

DISPLAY_NAME_MAX_LEN = 64


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


def _coordinate(value, lo: float, hi: float) -> float | None:
    """Float in [lo, hi], or None for missing / non-numeric / non-finite / out-of-range input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(v) or not (lo <= v <= hi):
        return None
    return v


def _position(data: dict) -> tuple[float | None, float | None]:
    lat = _coordinate(data.get("latitude"), LAT_MIN, LAT_MAX)
    lng = _coordinate(data.get("longitude"), LNG_MIN, LNG_MAX)
    if lat is None or lng is None:
        return None, None
    return lat, lng


def _text(value, max_len: int) -> str:
    if value is None:
        return ""
    return str(value).strip()[:max_len]


def _message_text(value) -> str:
    """Message body as sent; only coerced to str."""
    return "" if value is None else str(value)


def create_socket_server(cors_allowed_origins="*") -> socketio.AsyncServer:
    """
    Socket.IO server for the relay. Handlers run inline (async_handlers=False) so
    events from one connection, disconnect included, are handled in arrival order.
    """
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=cors_allowed_origins,
        async_handlers=False,
    )


def register_socket_handlers(sio: socketio.AsyncServer, dispatcher: EventDispatcher) -> None:
    """Attach connect/disconnect and the four client events to sio."""

    @sio.event
    async def connect(sid, environ, auth=None):
        record_event("connect")
        logger.info("telemetry socket_connect sid=%s", sid)

    @sio.event
    async def disconnect(sid, reason=None):
        record_event("disconnect")
        await dispatcher.disconnect(sid)

    @sio.on("register")
    async def on_register(sid, data=None):
        record_event("register")
        data = _payload(data)
        lat, lng = _position(data)
        if lat is None:
            logger.info("telemetry register_without_position sid=%s", sid)
        name = _text(data.get("displayName"), DISPLAY_NAME_MAX_LEN) or None
        await dispatcher.register(sid, name, lat, lng)

    @sio.on("updateLocation")
    async def on_update_location(sid, data=None):
        record_event("updateLocation")
        lat, lng = _position(_payload(data))
        await dispatcher.move(sid, lat, lng)

    @sio.on("sendMessage")
    async def on_send_message(sid, data=None):
        record_event("sendMessage")
        await dispatcher.send_message(sid, _message_text(_payload(data).get("text")))

    @sio.on("getNearbyUsers")
    async def on_get_nearby_users(sid, data=None):
        record_event("getNearbyUsers")
        await dispatcher.query_nearby(sid)

"""Point-to-point delivery of named events to a single connection."""
import socketio


class Transport:
    """What the dispatcher needs from the connection layer: send one event to one connection."""

    async def send_to(self, connection_id: str, event: str, payload) -> None:
        raise NotImplementedError


class SocketIOTransport(Transport):
    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio

    async def send_to(self, connection_id: str, event: str, payload) -> None:
        await self.sio.emit(event, payload, to=connection_id)

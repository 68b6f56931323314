"""Pytest configuration and fixtures."""
import sys
from pathlib import Path

import pytest

# Ensure backend root is on path when running pytest from repo root or backend
backend = Path(__file__).resolve().parent.parent
if str(backend) not in sys.path:
    sys.path.insert(0, str(backend))


class RecordingTransport:
    """Transport double: records (to, event, payload); optionally fails for chosen recipients."""

    def __init__(self, fail_for=()):
        self.sent: list[tuple[str, str, object]] = []
        self.fail_for = set(fail_for)

    async def send_to(self, connection_id, event, payload):
        if connection_id in self.fail_for:
            raise ConnectionError(f"cannot reach {connection_id}")
        self.sent.append((connection_id, event, payload))

    def to(self, connection_id, event=None):
        return [
            payload
            for cid, ev, payload in self.sent
            if cid == connection_id and (event is None or ev == event)
        ]

    def events(self, event):
        return [(cid, payload) for cid, ev, payload in self.sent if ev == event]


@pytest.fixture
def transport():
    return RecordingTransport()

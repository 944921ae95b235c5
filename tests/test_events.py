"""Tests for WebSocket event broadcasting."""

import json

import pytest
from fastapi import WebSocketDisconnect

from notebypine.events import ConnectionManager


class FakeSocket:

    def __init__(self, error=None):
        self.error = error
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.error:
            raise self.error
        self.sent.append(text)


class TestConnectionManager:

    @pytest.mark.asyncio
    async def test_connect_and_broadcast(self):
        manager = ConnectionManager()
        first, second = FakeSocket(), FakeSocket()
        await manager.connect(first)
        await manager.connect(second)
        assert first.accepted

        delivered = await manager.broadcast("incident_created", {"id": "abc"})
        assert delivered == 2
        message = json.loads(first.sent[0])
        assert message["type"] == "incident_created"
        assert message["data"] == {"id": "abc"}
        assert "timestamp" in message

    @pytest.mark.asyncio
    async def test_failed_clients_are_dropped(self):
        manager = ConnectionManager()
        healthy = FakeSocket()
        for ws in (healthy, FakeSocket(RuntimeError("closed")), FakeSocket(OSError("reset"))):
            await manager.connect(ws)

        assert await manager.broadcast("solution_deleted", {"id": "s1"}) == 1
        assert manager.active_connections == {healthy}

    @pytest.mark.asyncio
    async def test_disconnect(self):
        manager = ConnectionManager()
        ws = FakeSocket()
        await manager.connect(ws)
        manager.disconnect(ws)
        manager.disconnect(ws)
        assert await manager.broadcast("lesson_created", {}) == 0

    @pytest.mark.asyncio
    async def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            await ConnectionManager().broadcast("incident_exploded", {})

    @pytest.mark.asyncio
    async def test_peer_disconnect_during_send_is_dropped(self):
        manager = ConnectionManager()
        gone = FakeSocket(WebSocketDisconnect(code=1006))
        await manager.connect(gone)

        assert await manager.broadcast("incident_created", {"id": "abc"}) == 0
        assert manager.active_connections == set()

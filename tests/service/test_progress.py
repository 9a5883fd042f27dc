"""Tests for devpilot.service.progress."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

from devpilot.models import ProgressUpdate
from devpilot.service import ProgressBroadcaster
from devpilot.workflow import progress_event


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.accepted = False
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(data)


def test_publish_respects_session_filter() -> None:
    broadcaster = ProgressBroadcaster()
    everything, only_a, only_b = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()

    async def scenario() -> None:
        await broadcaster.connect(everything)
        await broadcaster.connect(only_a, "a")
        await broadcaster.connect(only_b, "b")
        await broadcaster.publish({"sessionId": "a", "progress": 10})

    asyncio.run(scenario())

    assert everything.accepted and only_a.accepted
    assert everything.sent == [{"sessionId": "a", "progress": 10}]
    assert only_a.sent == [{"sessionId": "a", "progress": 10}]
    assert only_b.sent == []


def test_broken_connections_are_dropped() -> None:
    broadcaster = ProgressBroadcaster()
    healthy, broken = FakeWebSocket(), FakeWebSocket(fail=True)

    async def scenario() -> None:
        await broadcaster.connect(healthy)
        await broadcaster.connect(broken)
        await broadcaster.publish({"sessionId": "a"})

    asyncio.run(scenario())

    assert len(broadcaster) == 1
    assert healthy.sent == [{"sessionId": "a"}]


def test_disconnect_stops_delivery() -> None:
    broadcaster = ProgressBroadcaster()
    websocket = FakeWebSocket()

    async def scenario() -> None:
        await broadcaster.connect(websocket)
        await broadcaster.disconnect(websocket)
        await broadcaster.publish({"sessionId": "a"})

    asyncio.run(scenario())

    assert websocket.sent == []
    assert len(broadcaster) == 0


def test_phase_updates_reach_session_subscribers() -> None:
    broadcaster = ProgressBroadcaster()
    websocket = FakeWebSocket()
    update = ProgressUpdate(step="Complete", progress=100, messages=(), errors=())

    async def scenario() -> None:
        await broadcaster.connect(websocket, "s1")
        await broadcaster.publish(progress_event("s1", update))

    asyncio.run(scenario())

    assert websocket.sent[0]["sessionId"] == "s1"
    assert websocket.sent[0]["progress"] == 100
    assert websocket.sent[0]["status"] == "analyzing"

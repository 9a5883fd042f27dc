"""WebSocket fan-out of session progress events."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from fastapi import WebSocket

from ..logging import get_logger

logger = get_logger("service.progress")


class ProgressBroadcaster:
    """Tracks connected clients and pushes events to the ones that want them.

    A connection registered with a session id only receives that session's
    events; a connection without one receives everything. Events come from
    ``AnalysisService`` through its event sink.
    """

    def __init__(self) -> None:
        self._connections: Dict[WebSocket, Optional[str]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, session_id: Optional[str] = None) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[websocket] = session_id
        logger.debug("Progress client connected (session filter: %s)", session_id or "none")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.pop(websocket, None)

    async def publish(self, event: Dict[str, Any]) -> None:
        """Send ``event`` to every matching connection, dropping broken ones."""
        async with self._lock:
            targets = [
                websocket
                for websocket, wanted in self._connections.items()
                if wanted is None or wanted == event.get("sessionId")
            ]
        for websocket in targets:
            try:
                await websocket.send_json(event)
            except Exception as exc:
                logger.debug("Dropping progress client after send failure: %s", exc)
                await self.disconnect(websocket)

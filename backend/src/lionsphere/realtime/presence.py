"""Process-local presence table for the realtime chat socket."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections, realtime_events_total


logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON to a connection, swallowing errors from closed sockets.

    Returns True if the payload was handed to the transport.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class PresenceTable:
    """Maps user ids to their single live connection handle.

    A second, inverse map (handle -> user id) is maintained alongside the
    forward one so that disconnects resolve in constant time. A later connect
    for the same user replaces the earlier handle (last writer wins); the
    superseded handle is forgotten, so its eventual disconnect is a no-op.
    """

    def __init__(self) -> None:
        self._handles: Dict[int, WebSocket] = {}
        self._owners: Dict[WebSocket, int] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._handles

    def lookup(self, user_id: int) -> WebSocket | None:
        return self._handles.get(user_id)

    def online_user_ids(self) -> list[int]:
        return sorted(self._handles)

    async def record_connect(self, user_id: int, websocket: WebSocket) -> list[int]:
        """Register *websocket* as the live handle for *user_id*.

        Broadcasts ``user_status`` (online) to every connected client and
        replies to the new connection with the full online list.
        """
        async with self._lock:
            previous = self._handles.get(user_id)
            if previous is not None and previous is not websocket:
                self._owners.pop(previous, None)
            former_owner = self._owners.get(websocket)
            if former_owner is not None and former_owner != user_id:
                # the same socket re-announced a different identity
                self._handles.pop(former_owner, None)
            self._handles[user_id] = websocket
            self._owners[websocket] = user_id
            online = sorted(self._handles)
            realtime_connections.labels("chat").set(len(self._handles))

        logger.info("User %s connected (%d online)", user_id, len(online))
        realtime_events_total.labels("presence", "out", "online").inc()
        await self.broadcast({"type": "user_status", "user_id": user_id, "status": ONLINE})
        await safe_send_json(websocket, {"type": "online_users", "user_ids": online})
        return online

    async def record_disconnect(self, websocket: WebSocket) -> int | None:
        """Drop the entry owned by *websocket*; silent no-op when none exists."""

        async with self._lock:
            user_id = self._owners.pop(websocket, None)
            if user_id is None:
                return None
            if self._handles.get(user_id) is websocket:
                self._handles.pop(user_id, None)
            realtime_connections.labels("chat").set(len(self._handles))

        logger.info("User %s disconnected", user_id)
        realtime_events_total.labels("presence", "out", "offline").inc()
        await self.broadcast({"type": "user_status", "user_id": user_id, "status": OFFLINE})
        return user_id

    async def send_to(self, user_id: int, payload: dict[str, Any]) -> bool:
        websocket = self.lookup(user_id)
        if websocket is None:
            return False
        return await safe_send_json(websocket, payload)

    async def broadcast(
        self,
        payload: dict[str, Any],
        *,
        exclude: Iterable[WebSocket] | None = None,
    ) -> None:
        async with self._lock:
            targets = list(self._handles.values())
        exclude_set = set(exclude or [])
        for websocket in targets:
            if websocket in exclude_set:
                continue
            await safe_send_json(websocket, payload)

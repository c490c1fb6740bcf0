"""Registry of open WebSocket connections and the rooms they belong to.

One registry is created per application in the lifespan handler and closed at
shutdown. Delivery is best effort: a socket that fails to receive a message is
dropped, and nothing is buffered for connections that join later.
"""
import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    def __init__(self, default_room: str = "all"):
        self.default_room = default_room
        self._connections: dict[str, WebSocket] = {}
        self._rooms: dict[str, set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    async def connect(self, websocket: WebSocket, rooms: Iterable[str] = (), connection_id: str | None = None) -> str:
        """Register a socket in the default room (plus ``rooms``), then accept it.

        Membership is in place before the handshake completes, so a client
        never observes an accepted connection that misses a broadcast.
        """
        connection_id = connection_id or uuid.uuid4().hex
        self._connections[connection_id] = websocket
        self._rooms[self.default_room].add(connection_id)
        for room in rooms:
            self._rooms[room].add(connection_id)
        try:
            await websocket.accept()
        except Exception:
            self.disconnect(connection_id)
            raise
        logger.info("User connected: %s (%d active)", connection_id, len(self._connections))
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is None:
            return
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(connection_id)
            if not members:
                del self._rooms[room]
        logger.info("User disconnected: %s (%d active)", connection_id, len(self._connections))

    def join(self, connection_id: str, room: str) -> bool:
        if connection_id not in self._connections:
            return False
        self._rooms[room].add(connection_id)
        logger.info("Socket %s joined room: %s", connection_id, room)
        return True

    def leave(self, connection_id: str, room: str) -> bool:
        members = self._rooms.get(room)
        if not members or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            del self._rooms[room]
        logger.info("Socket %s left room: %s", connection_id, room)
        return True

    def members(self, room: str) -> set[str]:
        return set(self._rooms.get(room, ()))

    def rooms_of(self, connection_id: str) -> set[str]:
        return {room for room, members in self._rooms.items() if connection_id in members}

    async def send(self, connection_id: str, message: dict) -> bool:
        websocket = self._connections.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning("Dropping connection %s after failed send: %s", connection_id, e)
            self.disconnect(connection_id)
            return False
        return True

    async def send_to_room(self, room: str, message: dict, exclude: str | None = None) -> int:
        """Send to the room's members as of now. Returns the number delivered."""
        recipients = sorted(cid for cid in self.members(room) if cid != exclude)
        delivered = 0
        for connection_id in recipients:
            if await self.send(connection_id, message):
                delivered += 1
        return delivered

    async def close(self) -> None:
        for connection_id, websocket in list(self._connections.items()):
            try:
                await websocket.close()
            except Exception as e:
                logger.debug("Error closing connection %s: %s", connection_id, e)
        self._connections.clear()
        self._rooms.clear()
        logger.info("Connection registry closed")

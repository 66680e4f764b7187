from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import Any

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()


def user_room(user_id: str) -> str:
    """Name of the personal room a user's sockets join for direct messages."""
    return f"user:{user_id}"


class ConnectionManager:
    """Tracks WebSocket connections, conversation rooms and online users.

    Bookkeeping never awaits, so it is atomic on the event loop.
    Delivery is best effort: a socket that fails on send is dropped from every
    room and the broadcast carries on with the remaining members.
    """

    def __init__(self) -> None:
        self._sockets: set[WebSocket] = set()
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)
        self._users: dict[WebSocket, dict[str, Any]] = {}

    def connect(self, websocket: WebSocket) -> None:
        self._sockets.add(websocket)

    def join(self, conversation_id: str, websocket: WebSocket) -> None:
        self._rooms[conversation_id].add(websocket)
        logger.info("ws_room_joined", conversation_id=conversation_id, client=str(websocket.client))

    def leave(self, conversation_id: str, websocket: WebSocket) -> None:
        members = self._rooms.get(conversation_id)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[conversation_id]
        logger.info("ws_room_left", conversation_id=conversation_id, client=str(websocket.client))

    def register_user(self, websocket: WebSocket, user_id: str, username: str | None) -> dict[str, Any]:
        """Mark ``websocket`` as belonging to a user and join their personal room.

        Returns:
            The ``{userId, username}`` presence record.
        """
        presence = {"userId": user_id, "username": username}
        self._users[websocket] = presence
        self.join(user_room(user_id), websocket)
        return presence

    def online_users(self) -> list[dict[str, Any]]:
        return list(self._users.values())

    def disconnect(self, websocket: WebSocket) -> dict[str, Any] | None:
        """Forget ``websocket`` entirely.

        Returns:
            The socket's presence record if a user had joined on it, else ``None``.
        """
        self._drop(websocket)
        return self._users.pop(websocket, None)

    def _drop(self, websocket: WebSocket) -> None:
        self._sockets.discard(websocket)
        for conversation_id in list(self._rooms):
            members = self._rooms[conversation_id]
            members.discard(websocket)
            if not members:
                del self._rooms[conversation_id]

    def members(self, conversation_id: str) -> set[WebSocket]:
        return set(self._rooms.get(conversation_id, ()))

    async def broadcast(
        self,
        conversation_id: str,
        payload: dict[str, Any],
        exclude: WebSocket | None = None,
    ) -> int:
        """Send ``payload`` to every member of the room.

        Args:
            conversation_id: Room to fan out to.
            payload: JSON-serialisable message.
            exclude: Optional sender that should not receive its own event.

        Returns:
            Number of sockets the payload was delivered to.
        """
        return await self.broadcast_to_rooms([conversation_id], payload, exclude=exclude)

    async def broadcast_to_rooms(
        self,
        room_ids: Iterable[str],
        payload: dict[str, Any],
        exclude: WebSocket | None = None,
    ) -> int:
        """Send ``payload`` once to every socket in any of ``room_ids``."""
        targets: set[WebSocket] = set()
        for room_id in room_ids:
            targets.update(self._rooms.get(room_id, ()))
        targets.discard(exclude)  # type: ignore[arg-type]
        return await self._send(targets, payload)

    async def broadcast_all(self, payload: dict[str, Any], exclude: WebSocket | None = None) -> int:
        """Send ``payload`` to every connected socket except ``exclude``."""
        return await self._send([ws for ws in self._sockets if ws is not exclude], payload)

    async def _send(self, targets: Iterable[WebSocket], payload: dict[str, Any]) -> int:
        delivered = 0
        failed: list[WebSocket] = []
        for ws in targets:
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning("ws_broadcast_failed", event_type=payload.get("type"), error=str(exc))
                failed.append(ws)

        # Presence stays until the socket's own handler disconnects it.
        for ws in failed:
            self._drop(ws)
        return delivered

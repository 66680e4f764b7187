from __future__ import annotations

import contextlib
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.metrics import websocket_connections
from app.models.base import generate_id, utcnow
from app.realtime import ConnectionManager, user_room

logger = structlog.get_logger()

router = APIRouter(tags=["websocket"])

_ROOM_EVENTS = {"conversation:join", "conversation:leave", "typing:start", "typing:stop"}


@router.websocket("/ws")
async def websocket_chat(websocket: WebSocket) -> None:
    """WebSocket endpoint for rooms, presence and typing indicators.

    Accepts JSON objects from the client and dispatches on the ``type`` field.
    Supported message types:

    * ``ping``: heartbeat; responds with ``{"type": "pong"}``
    * ``user:join``: announce ``userId``/``username``; acknowledged with
      ``user:joined`` and broadcast to everyone else as ``user:online``
    * ``message:send``: direct message relayed as ``message:received`` to the
      personal rooms of ``sender`` and ``receiver``
    * ``message:read``: read receipt broadcast to everyone else
    * ``conversation:join``: subscribe to ``conversationId``; acknowledged
      with ``{"type": "conversation:joined"}``
    * ``conversation:leave``: unsubscribe from ``conversationId``
    * ``typing:start`` / ``typing:stop``: relayed to the other members of
      the ``conversationId`` room

    Messages posted over HTTP to a conversation are pushed to its room as
    ``message:received`` events. When a joined user's socket closes, everyone
    else receives ``user:offline``.

    Args:
        websocket: The Starlette WebSocket connection.
    """
    connections: ConnectionManager = websocket.app.state.connections
    await websocket.accept()
    connections.connect(websocket)
    websocket_connections.inc()
    logger.info("ws_connection_opened", client=str(websocket.client))

    try:
        while True:
            try:
                data: Any = await websocket.receive_json()
            except WebSocketDisconnect:
                logger.info("ws_connection_closed", client=str(websocket.client))
                return
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "Message must be valid JSON"})
                continue

            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "detail": "Message must be a JSON object"})
                continue

            msg_type = data.get("type")
            if not isinstance(msg_type, str):
                msg_type = ""

            if msg_type == "ping":
                await websocket.send_json({"type": "pong"})
                continue

            if msg_type == "user:join":
                await _handle_user_join(websocket, connections, data)
                continue

            if msg_type == "message:send":
                await _handle_direct_message(websocket, connections, data)
                continue

            if msg_type == "message:read":
                await connections.broadcast_all(
                    {"type": "message:read", "messageId": data.get("messageId"), "userId": data.get("userId")},
                    exclude=websocket,
                )
                continue

            if msg_type in _ROOM_EVENTS:
                await _handle_room_event(websocket, connections, msg_type, data)
                continue

            # Unknown message types are ignored
            logger.warning("ws_unknown_message_type", msg_type=msg_type)

    except WebSocketDisconnect:
        logger.info("ws_connection_closed", client=str(websocket.client))
    except Exception as exc:
        logger.error("ws_unhandled_error", error=str(exc))
        with contextlib.suppress(Exception):
            await websocket.send_json({"type": "error", "detail": "Internal server error"})
    finally:
        presence = connections.disconnect(websocket)
        websocket_connections.dec()
        if presence is not None:
            logger.info("ws_user_offline", user_id=presence["userId"])
            await connections.broadcast_all({"type": "user:offline", **presence})


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


async def _handle_user_join(websocket: WebSocket, connections: ConnectionManager, data: dict[str, Any]) -> None:
    user_id = data.get("userId")
    if not _is_text(user_id):
        await websocket.send_json({"type": "error", "detail": "userId field is required"})
        return

    presence = connections.register_user(websocket, user_id, data.get("username"))
    logger.info("ws_user_online", user_id=user_id)
    await connections.broadcast_all({"type": "user:online", **presence}, exclude=websocket)
    await websocket.send_json({"type": "user:joined", "success": True, "message": "Successfully connected to chat"})


async def _handle_direct_message(websocket: WebSocket, connections: ConnectionManager, data: dict[str, Any]) -> None:
    """Relay a direct message to the personal rooms of both participants.

    Direct messages are not stored; only sockets of joined users receive them.
    """
    sender = data.get("sender")
    receiver = data.get("receiver")
    text = data.get("text")
    if not (_is_text(sender) and _is_text(receiver) and _is_text(text)):
        await websocket.send_json({"type": "error", "detail": "sender, receiver and text fields are required"})
        return

    message = {
        "id": generate_id(),
        "sender": sender,
        "receiver": receiver,
        "conversationId": data.get("conversationId") or f"{sender}_{receiver}",
        "text": text.strip(),
        "messageType": data.get("messageType") or "text",
        "timestamp": utcnow().isoformat(),
    }
    await connections.broadcast_to_rooms(
        [user_room(sender), user_room(receiver)],
        {"type": "message:received", "message": message},
    )


async def _handle_room_event(
    websocket: WebSocket,
    connections: ConnectionManager,
    msg_type: str,
    data: dict[str, Any],
) -> None:
    """Apply a room membership change or relay a typing indicator.

    Args:
        websocket: The active WebSocket connection.
        connections: Room registry shared with the HTTP routes.
        msg_type: One of the room event types.
        data: The parsed JSON message; must carry ``conversationId``.
    """
    conversation_id = data.get("conversationId")
    if not isinstance(conversation_id, str) or not conversation_id:
        await websocket.send_json({"type": "error", "detail": "conversationId field is required"})
        return

    if msg_type == "conversation:join":
        connections.join(conversation_id, websocket)
        await websocket.send_json({"type": "conversation:joined", "conversationId": conversation_id})
    elif msg_type == "conversation:leave":
        connections.leave(conversation_id, websocket)
    else:
        event: dict[str, Any] = {"type": msg_type, "conversationId": conversation_id, "userId": data.get("userId")}
        if msg_type == "typing:start":
            event["username"] = data.get("username")
        await connections.broadcast(conversation_id, event, exclude=websocket)

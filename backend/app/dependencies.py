from __future__ import annotations

from fastapi import Request
from starlette.requests import HTTPConnection

from app.realtime import ConnectionManager
from app.replies import ReplyGenerator
from app.store import ConversationStore


def get_store(request: Request) -> ConversationStore:
    """FastAPI dependency returning the application's conversation store."""
    return request.app.state.store


def get_replies(request: Request) -> ReplyGenerator:
    return request.app.state.replies


def get_connections(connection: HTTPConnection) -> ConnectionManager:
    """Connection manager shared by the HTTP and WebSocket routes."""
    return connection.app.state.connections

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import Field

from app.models import CamelModel, Message

T = TypeVar("T")


class ApiResponse(CamelModel, Generic[T]):
    """``{success, data, message}`` envelope returned by every chat route."""

    success: bool = True
    data: T | None = None
    message: str | None = None


class ChatRequest(CamelModel):
    """JSON body for a text-only chat message."""

    text: str = ""
    conversation_id: str | None = None


class ConversationCreate(CamelModel):
    """Request body for creating a new conversation."""

    title: str | None = Field(default=None, max_length=200)


class ChatExchange(CamelModel):
    """The user message and the assistant reply produced for it."""

    user_message: Message
    assistant_message: Message


class TitleResponse(CamelModel):
    success: bool = True
    title: str


class ThinkingResponse(CamelModel):
    success: bool = True
    thinking: str

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from app.models.base import CamelModel
from app.models.message import Message


class Conversation(CamelModel):
    """Snapshot of a conversation and its full message log, oldest first."""

    id: str
    title: str
    created_at: datetime = Field(alias="created")
    messages: list[Message] = Field(default_factory=list)


class ConversationSummary(CamelModel):
    """Listing entry for a conversation without its message log."""

    id: str
    title: str
    created_at: datetime = Field(alias="created")
    message_count: int
    last_message: Message | None = None


class MessagePage(CamelModel):
    """One page of messages plus the cursor for the next page.

    ``next_cursor`` is ``None`` once the log is exhausted.
    """

    items: list[Message]
    next_cursor: str | None = None

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime

from pydantic import ConfigDict, Field

from app.models.base import AttachmentType, CamelModel, Sender, generate_id, utcnow


class Attachment(CamelModel):
    """A file sent with a message, inlined as a ``data:`` URL."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: AttachmentType
    url: str
    size: int
    mime_type: str


class Message(CamelModel):
    """A single chat message.

    Messages are frozen: once appended to a conversation they are never edited.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    text: str = ""
    attachments: tuple[Attachment, ...] = Field(default_factory=tuple)
    timestamp: datetime
    sender: Sender


def new_message(
    text: str,
    sender: Sender,
    attachments: Sequence[Attachment] = (),
    *,
    id_factory: Callable[[], str] = generate_id,
    clock: Callable[[], datetime] = utcnow,
) -> Message:
    """Build a message with a fresh id and timestamp.

    Every code path that creates messages goes through here so that ids,
    timestamps and senders are always well formed.

    Args:
        text: Message body; may be empty when attachments are present.
        sender: Who wrote the message.
        attachments: Attachment descriptors, kept in the given order.
        id_factory: Callable returning a new unique id.
        clock: Callable returning the current UTC time.

    Returns:
        The new immutable Message.
    """
    return Message(
        id=id_factory(),
        text=text,
        attachments=tuple(attachments),
        timestamp=clock(),
        sender=Sender(sender),
    )

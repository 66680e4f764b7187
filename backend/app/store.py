"""In-memory conversation store.

``ConversationStore`` owns every conversation and its append-only message log
for the lifetime of the process. One instance is created by the application
factory and injected into request handlers; tests build their own instances.

Messages are paginated with an id-anchored cursor: the cursor is the id of the
last message of the previous page, so appends made between two page fetches
never shift the window the way offset pagination would.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from app.models import Conversation, ConversationSummary, Message, MessagePage, generate_id, utcnow

logger = structlog.get_logger()

DEFAULT_PAGE_LIMIT = 50


class ConversationStoreError(Exception):
    """Base class for conversation store errors."""


class ConversationNotFoundError(ConversationStoreError):
    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ConversationAlreadyExistsError(ConversationStoreError):
    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} already exists")
        self.conversation_id = conversation_id


def coerce_limit(limit: Any, default: int = DEFAULT_PAGE_LIMIT) -> int:
    """Coerce a page size into a positive integer.

    Integers and numeric strings are accepted; anything else, and any value
    below 1, falls back to ``default``.

    Args:
        limit: Raw page size, typically taken from a query string.
        default: Page size used when ``limit`` is unusable.

    Returns:
        A positive page size.
    """
    if isinstance(limit, bool):
        return default
    if isinstance(limit, int):
        value = limit
    elif isinstance(limit, str):
        try:
            value = int(limit.strip())
        except ValueError:
            return default
    else:
        return default
    return value if value > 0 else default


@dataclass
class _Entry:
    id: str
    title: str
    created_at: datetime
    messages: list[Message] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    deleted: bool = False

    def snapshot(self) -> Conversation:
        return Conversation(id=self.id, title=self.title, created_at=self.created_at, messages=list(self.messages))


class ConversationStore:
    """Thread-safe registry of conversations and their message logs.

    A registry lock guards the id mapping and each conversation carries its own
    lock for its message log, so work on unrelated conversations does not
    serialise. A delete marks the entry under its lock: an append or paginate
    racing it either completes first or sees ``ConversationNotFoundError``.
    """

    def __init__(
        self,
        title_factory: Callable[[], str],
        id_factory: Callable[[], str] = generate_id,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._title_factory = title_factory
        self._id_factory = id_factory
        self._clock = clock
        self._conversations: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)

    def __contains__(self, conversation_id: object) -> bool:
        with self._lock:
            return conversation_id in self._conversations

    def _new_entry(self, conversation_id: str, title: str | None) -> _Entry:
        return _Entry(id=conversation_id, title=title or self._title_factory(), created_at=self._clock())

    def _get_entry(self, conversation_id: str) -> _Entry:
        with self._lock:
            entry = self._conversations.get(conversation_id)
        if entry is None:
            raise ConversationNotFoundError(conversation_id)
        return entry

    def create_conversation(self, conversation_id: str | None = None, title: str | None = None) -> Conversation:
        """Create a new, empty conversation.

        Args:
            conversation_id: Id to use; a fresh one is generated when omitted.
            title: Display title; a random preset title is used when omitted.

        Raises:
            ConversationAlreadyExistsError: If ``conversation_id`` is taken.

        Returns:
            The new conversation.
        """
        if conversation_id is None:
            conversation_id = self._id_factory()
        with self._lock:
            if conversation_id in self._conversations:
                raise ConversationAlreadyExistsError(conversation_id)
            entry = self._new_entry(conversation_id, title)
            self._conversations[conversation_id] = entry
        logger.info("conversation_created", conversation_id=conversation_id, title=entry.title)
        return entry.snapshot()

    def ensure_conversation(self, conversation_id: str, title: str | None = None) -> Conversation:
        """Return the conversation with ``conversation_id``, creating it if absent.

        An existing conversation is returned unchanged; ``title`` only applies
        when a new conversation is created.
        """
        conversation, _ = self.get_or_create_conversation(conversation_id, title)
        return conversation

    def get_or_create_conversation(self, conversation_id: str, title: str | None = None) -> tuple[Conversation, bool]:
        """Like :meth:`ensure_conversation`, also reporting whether this call created it.

        Returns:
            The conversation and ``True`` if it was created by this call.
        """
        with self._lock:
            entry = self._conversations.get(conversation_id)
            created = entry is None
            if entry is None:
                entry = self._new_entry(conversation_id, title)
                self._conversations[conversation_id] = entry
        if created:
            logger.info("conversation_ensured", conversation_id=conversation_id, title=entry.title)
        with entry.lock:
            return entry.snapshot(), created

    def get_conversation(self, conversation_id: str) -> Conversation:
        """Return a snapshot of the conversation and all its messages.

        Raises:
            ConversationNotFoundError: If no such conversation exists.
        """
        entry = self._get_entry(conversation_id)
        with entry.lock:
            if entry.deleted:
                raise ConversationNotFoundError(conversation_id)
            return entry.snapshot()

    def append_messages(self, conversation_id: str, messages: Iterable[Message]) -> None:
        """Append a batch of messages, in order, to the end of the log.

        The batch becomes visible to readers all at once. Message content is
        not validated here.

        Raises:
            ConversationNotFoundError: If no such conversation exists. The
                conversation is never created implicitly.
        """
        batch = list(messages)
        entry = self._get_entry(conversation_id)
        with entry.lock:
            if entry.deleted:
                raise ConversationNotFoundError(conversation_id)
            entry.messages.extend(batch)
            total = len(entry.messages)
        logger.debug("messages_appended", conversation_id=conversation_id, count=len(batch), total=total)

    def paginate_messages(
        self,
        conversation_id: str,
        limit: Any = DEFAULT_PAGE_LIMIT,
        cursor: str | None = None,
    ) -> MessagePage:
        """Return one page of messages, oldest first.

        The page starts right after the message whose id equals ``cursor``. A
        missing, empty or unknown cursor starts from the first message.

        Args:
            conversation_id: Conversation to read.
            limit: Page size, coerced with :func:`coerce_limit`.
            cursor: Id of the last message of the previous page.

        Raises:
            ConversationNotFoundError: If no such conversation exists.

        Returns:
            The page. ``next_cursor`` holds the id of the page's last message
            when the page is full and more messages follow, else ``None``.
        """
        page_size = coerce_limit(limit)
        entry = self._get_entry(conversation_id)
        with entry.lock:
            if entry.deleted:
                raise ConversationNotFoundError(conversation_id)
            all_messages = list(entry.messages)

        start = 0
        if cursor:
            position = next((i for i, m in enumerate(all_messages) if m.id == cursor), None)
            if position is None:
                logger.debug("pagination_cursor_unknown", conversation_id=conversation_id, cursor=cursor)
            else:
                start = position + 1

        items = all_messages[start : start + page_size]
        has_more = len(items) == page_size and start + page_size < len(all_messages)
        return MessagePage(items=items, next_cursor=items[-1].id if has_more else None)

    def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation and all its messages.

        Returns:
            ``True`` if the conversation existed, ``False`` otherwise.
        """
        with self._lock:
            entry = self._conversations.pop(conversation_id, None)
        if entry is None:
            return False
        with entry.lock:
            entry.deleted = True
            entry.messages.clear()
        logger.info("conversation_deleted", conversation_id=conversation_id)
        return True

    def list_conversations(self) -> list[ConversationSummary]:
        """Summarise every conversation in creation order."""
        with self._lock:
            entries = list(self._conversations.values())

        summaries: list[ConversationSummary] = []
        for entry in entries:
            with entry.lock:
                if entry.deleted:
                    continue
                summaries.append(
                    ConversationSummary(
                        id=entry.id,
                        title=entry.title,
                        created_at=entry.created_at,
                        message_count=len(entry.messages),
                        last_message=entry.messages[-1] if entry.messages else None,
                    )
                )
        return summaries

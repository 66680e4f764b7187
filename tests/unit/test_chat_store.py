from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from app.models import Message, Sender, new_message
from app.replies import CHAT_TITLES
from app.store import (
    ConversationAlreadyExistsError,
    ConversationNotFoundError,
    ConversationStore,
    coerce_limit,
)


def _msg(message_id: str, sender: Sender = Sender.USER) -> Message:
    return Message(
        id=message_id,
        text=f"text {message_id}",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        sender=sender,
    )


def _seed(store: ConversationStore, conversation_id: str, count: int) -> list[Message]:
    store.create_conversation(conversation_id)
    messages = [_msg(f"m{i}") for i in range(1, count + 1)]
    store.append_messages(conversation_id, messages)
    return messages


# ---------------------------------------------------------------------------
# Conversation lifecycle
# ---------------------------------------------------------------------------


def test_create_without_arguments_generates_id_and_preset_title(store: ConversationStore) -> None:
    """A bare create should yield a generated id, a pool title and no messages."""
    conv = store.create_conversation()

    assert conv.id
    assert conv.title in CHAT_TITLES
    assert conv.messages == []


def test_create_keeps_explicit_id_and_title(store: ConversationStore) -> None:
    conv = store.create_conversation("abc", title="Trip planning")

    assert conv.id == "abc"
    assert conv.title == "Trip planning"


def test_create_with_empty_title_falls_back_to_preset(store: ConversationStore) -> None:
    conv = store.create_conversation(title="")
    assert conv.title in CHAT_TITLES


def test_create_duplicate_id_raises(store: ConversationStore) -> None:
    """Strict creation must refuse to overwrite an existing conversation."""
    store.create_conversation("dup")
    store.append_messages("dup", [_msg("m1")])

    with pytest.raises(ConversationAlreadyExistsError):
        store.create_conversation("dup")

    assert [m.id for m in store.get_conversation("dup").messages] == ["m1"]


def test_create_uses_injected_id_factory_and_clock() -> None:
    fixed = datetime(2023, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    store = ConversationStore(title_factory=lambda: "T", id_factory=lambda: "fixed-id", clock=lambda: fixed)

    conv = store.create_conversation()

    assert conv.id == "fixed-id"
    assert conv.title == "T"
    assert conv.created_at == fixed


def test_ensure_is_idempotent(store: ConversationStore) -> None:
    """Two ensures of one id return the same conversation and create one entry."""
    first = store.ensure_conversation("c1")
    second = store.ensure_conversation("c1", title="ignored")

    assert first.id == second.id == "c1"
    assert first.created_at == second.created_at
    assert second.title == first.title
    assert len(store) == 1


def test_ensure_returns_existing_messages_unchanged(store: ConversationStore) -> None:
    _seed(store, "c1", 2)

    conv = store.ensure_conversation("c1")

    assert [m.id for m in conv.messages] == ["m1", "m2"]


def test_get_or_create_reports_creation_once(store: ConversationStore) -> None:
    _, created = store.get_or_create_conversation("c1")
    _, again = store.get_or_create_conversation("c1")

    assert created is True
    assert again is False


def test_concurrent_get_or_create_creates_exactly_once(store: ConversationStore) -> None:
    results: list[bool] = []
    barrier = threading.Barrier(8)

    def ensure() -> None:
        barrier.wait()
        _, created = store.get_or_create_conversation("shared")
        results.append(created)

    threads = [threading.Thread(target=ensure) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert len(store) == 1


def test_get_unknown_conversation_raises_not_found(store: ConversationStore) -> None:
    with pytest.raises(ConversationNotFoundError) as exc_info:
        store.get_conversation("nope")
    assert exc_info.value.conversation_id == "nope"


def test_get_returns_snapshot_not_live_log(store: ConversationStore) -> None:
    """Mutating a returned conversation must not touch the stored log."""
    _seed(store, "c1", 1)

    snapshot = store.get_conversation("c1")
    snapshot.messages.append(_msg("intruder"))

    assert [m.id for m in store.get_conversation("c1").messages] == ["m1"]


def test_delete_unknown_returns_false(store: ConversationStore) -> None:
    assert store.delete_conversation("never-existed") is False


def test_delete_removes_conversation_and_messages(store: ConversationStore) -> None:
    _seed(store, "c1", 3)

    assert store.delete_conversation("c1") is True

    with pytest.raises(ConversationNotFoundError):
        store.get_conversation("c1")
    with pytest.raises(ConversationNotFoundError):
        store.paginate_messages("c1", 10)
    assert store.delete_conversation("c1") is False


def test_deleted_id_can_be_reused_for_unrelated_conversation(store: ConversationStore) -> None:
    _seed(store, "c1", 2)
    store.delete_conversation("c1")

    fresh = store.create_conversation("c1")

    assert fresh.messages == []
    assert store.paginate_messages("c1").items == []


# ---------------------------------------------------------------------------
# Appending
# ---------------------------------------------------------------------------


def test_append_to_missing_conversation_raises_and_creates_nothing(store: ConversationStore) -> None:
    with pytest.raises(ConversationNotFoundError):
        store.append_messages("missing-id", [_msg("m1")])

    assert "missing-id" not in store
    assert len(store) == 0


def test_append_preserves_order_across_batches(store: ConversationStore) -> None:
    """All appended messages come back in append order."""
    store.create_conversation("c1")
    store.append_messages("c1", [_msg("a"), _msg("b", Sender.ASSISTANT)])
    store.append_messages("c1", [_msg("c")])
    store.append_messages("c1", [_msg("d"), _msg("e"), _msg("f")])

    page = store.paginate_messages("c1", 100)

    assert [m.id for m in page.items] == ["a", "b", "c", "d", "e", "f"]
    assert page.next_cursor is None


def test_append_accepts_empty_batch(store: ConversationStore) -> None:
    store.create_conversation("c1")
    store.append_messages("c1", [])
    assert store.get_conversation("c1").messages == []


def test_append_does_not_assume_pairs(store: ConversationStore) -> None:
    store.create_conversation("c1")
    store.append_messages("c1", [_msg("u1"), _msg("u2"), _msg("u3")])
    assert len(store.get_conversation("c1").messages) == 3


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def test_list_conversations_in_creation_order_with_summary(store: ConversationStore) -> None:
    store.create_conversation("first", title="One")
    _seed(store, "second", 3)
    store.ensure_conversation("third")

    summaries = store.list_conversations()

    assert [s.id for s in summaries] == ["first", "second", "third"]
    assert summaries[0].title == "One"
    assert summaries[0].message_count == 0
    assert summaries[0].last_message is None
    assert summaries[1].message_count == 3
    assert summaries[1].last_message is not None
    assert summaries[1].last_message.id == "m3"


def test_list_skips_deleted_conversations(store: ConversationStore) -> None:
    store.create_conversation("a")
    store.create_conversation("b")
    store.delete_conversation("a")

    assert [s.id for s in store.list_conversations()] == ["b"]


def test_recreated_conversation_moves_to_end_of_listing(store: ConversationStore) -> None:
    store.create_conversation("a")
    store.create_conversation("b")
    store.delete_conversation("a")
    store.create_conversation("a")

    assert [s.id for s in store.list_conversations()] == ["b", "a"]


# ---------------------------------------------------------------------------
# Limit coercion
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (5, 5),
        ("7", 7),
        (" 3 ", 3),
        (0, 50),
        (-4, 50),
        ("-1", 50),
        ("abc", 50),
        ("", 50),
        (None, 50),
        (2.5, 50),
        (True, 50),
    ],
)
def test_coerce_limit(raw: object, expected: int) -> None:
    assert coerce_limit(raw) == expected


def test_coerce_limit_custom_default() -> None:
    assert coerce_limit("nope", default=20) == 20


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def test_concurrent_batches_are_never_interleaved(store: ConversationStore) -> None:
    """Each appended batch stays contiguous even with many writer threads."""
    store.create_conversation("c1")
    writers = 8
    batches = 25

    def write(writer: int) -> None:
        for b in range(batches):
            store.append_messages("c1", [_msg(f"w{writer}-b{b}-0"), _msg(f"w{writer}-b{b}-1")])

    threads = [threading.Thread(target=write, args=(w,)) for w in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ids = [m.id for m in store.get_conversation("c1").messages]
    assert len(ids) == writers * batches * 2
    for i in range(0, len(ids), 2):
        assert ids[i].endswith("-0")
        assert ids[i + 1] == ids[i][:-2] + "-1"


def test_delete_racing_appends_leaves_no_partial_state(store: ConversationStore) -> None:
    """Appends after a delete fail cleanly; the id is gone once delete returns."""
    store.create_conversation("c1")
    errors: list[Exception] = []
    barrier = threading.Barrier(2)

    def append_loop() -> None:
        barrier.wait()
        for i in range(200):
            try:
                store.append_messages("c1", [_msg(f"m{i}")])
            except ConversationNotFoundError as exc:
                errors.append(exc)

    t = threading.Thread(target=append_loop)
    t.start()
    barrier.wait()
    assert store.delete_conversation("c1") is True
    t.join()

    assert "c1" not in store
    with pytest.raises(ConversationNotFoundError):
        store.get_conversation("c1")
    assert all(isinstance(e, ConversationNotFoundError) for e in errors)


def test_new_message_factory_builds_wellformed_messages() -> None:
    message = new_message("hello", Sender.USER, id_factory=lambda: "id-1")

    assert message.id == "id-1"
    assert message.sender is Sender.USER
    assert message.timestamp.tzinfo is not None
    assert message.attachments == ()


def test_messages_are_immutable() -> None:
    message = new_message("hello", Sender.ASSISTANT)
    with pytest.raises(Exception):  # noqa: B017
        message.text = "edited"  # type: ignore[misc]

from __future__ import annotations

import os
import random
from collections.abc import AsyncIterator, Iterator

import pytest
from httpx import ASGITransport, AsyncClient

# ---------------------------------------------------------------------------
# Test settings must be in the environment before any app module is imported:
# no simulated thinking delay, and no rate limiting across the shared limiter.
# ---------------------------------------------------------------------------

os.environ.setdefault("ASSISTANT_REPLY_DELAY_SECONDS", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from app.main import app  # noqa: E402
from app.realtime import ConnectionManager  # noqa: E402
from app.replies import ReplyGenerator  # noqa: E402
from app.store import ConversationStore  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Configure anyio to use the asyncio backend for all async tests."""
    return "asyncio"


@pytest.fixture
def replies() -> ReplyGenerator:
    """Seeded reply generator so random picks are reproducible."""
    return ReplyGenerator(rng=random.Random(1234))


@pytest.fixture
def store(replies: ReplyGenerator) -> ConversationStore:
    return ConversationStore(title_factory=replies.title)


@pytest.fixture(autouse=True)
def fresh_app_state(store: ConversationStore, replies: ReplyGenerator) -> Iterator[None]:
    """Give every test an empty store and no open rooms on the shared app."""
    previous = (app.state.store, app.state.replies, app.state.connections)
    app.state.store = store
    app.state.replies = replies
    app.state.connections = ConnectionManager()
    try:
        yield
    finally:
        app.state.store, app.state.replies, app.state.connections = previous


@pytest.fixture
async def api_client() -> AsyncIterator[AsyncClient]:
    """Async HTTP client for API integration tests.

    Yields an ``AsyncClient`` wired directly to the FastAPI ASGI app so no
    real network socket is required during testing.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.router import api_v1_router
from app.config import settings
from app.exceptions import AppError, app_error_handler
from app.logging_config import setup_logging
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import limiter
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.realtime import ConnectionManager
from app.replies import ReplyGenerator
from app.store import ConversationStore

setup_logging(settings.LOG_LEVEL)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: startup and shutdown hooks.

    The store lives in process memory only, so shutdown just reports how many
    conversations are discarded.

    Args:
        application: The FastAPI application instance.
    """
    logger.info("app_started", environment=settings.ENVIRONMENT)
    yield
    logger.info("app_stopped", conversations_discarded=len(application.state.store))


def create_app(
    store: ConversationStore | None = None,
    replies: ReplyGenerator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Conversation store to serve; a fresh empty one by default.
        replies: Reply generator; seeded from ``settings.RANDOM_SEED`` by default.

    Returns:
        A fully configured FastAPI instance with middleware and routers applied.
    """
    application = FastAPI(
        title="Echo Chat",
        description="Demo chat backend with an in-memory conversation store",
        version="0.1.0",
        lifespan=lifespan,
    )

    replies = replies or ReplyGenerator(seed=settings.RANDOM_SEED)
    application.state.replies = replies
    application.state.store = store if store is not None else ConversationStore(title_factory=replies.title)
    application.state.connections = ConnectionManager()
    application.state.started_at = time.monotonic()

    Instrumentator().instrument(application).expose(application, endpoint="/metrics")

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_exception_handler(AppError, app_error_handler)

    # Middleware: last added runs first
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Requested-With", "X-Request-ID"],
    )
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    # Routers
    application.include_router(api_v1_router)

    return application


app = create_app()

import asyncio
import time

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from app.attachments import AttachmentError, UploadedFile, build_attachments
from app.config import settings
from app.dependencies import get_connections, get_replies, get_store
from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.metrics import chat_messages_total, chat_reply_duration, conversations_created_total, conversations_deleted_total
from app.middleware.rate_limit import limiter
from app.models import Conversation, ConversationSummary, Message, MessagePage, Sender, new_message
from app.realtime import ConnectionManager
from app.replies import ReplyGenerator
from app.schemas.chat import (
    ApiResponse,
    ChatExchange,
    ChatRequest,
    ConversationCreate,
    ThinkingResponse,
    TitleResponse,
)
from app.store import (
    ConversationAlreadyExistsError,
    ConversationNotFoundError,
    ConversationStore,
    coerce_limit,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/chat", tags=["chat"])


async def _read_uploads(files: list[UploadFile]) -> list[UploadedFile]:
    return [
        UploadedFile(
            filename=f.filename or "upload",
            content_type=f.content_type or "application/octet-stream",
            content=await f.read(),
        )
        for f in files
    ]


async def _read_json_body(request: Request) -> ChatRequest:
    try:
        return ChatRequest.model_validate(await request.json())
    except ValueError as exc:
        raise ValidationError("Invalid JSON body") from exc


async def _publish(connections: ConnectionManager, conversation_id: str, messages: list[Message]) -> None:
    for message in messages:
        await connections.broadcast(
            conversation_id,
            {
                "type": "message:received",
                "conversationId": conversation_id,
                "message": message.model_dump(mode="json", by_alias=True),
            },
        )


@router.post("", response_model=ApiResponse[ChatExchange])
@limiter.limit(settings.RATE_LIMIT_CHAT)
async def post_chat(
    request: Request,
    text: str = Form(default=""),
    conversation_id: str | None = Form(default=None, alias="conversationId"),
    files: list[UploadFile] | None = File(default=None),
    store: ConversationStore = Depends(get_store),
    replies: ReplyGenerator = Depends(get_replies),
    connections: ConnectionManager = Depends(get_connections),
) -> ApiResponse[ChatExchange]:
    """Accept a user message and answer it with a canned assistant reply.

    Text-only messages may be sent as a JSON body ``{text, conversationId}``;
    attachments need a multipart form. When ``conversationId`` is supplied the
    conversation is created if needed, both messages are appended to it, and
    room subscribers are notified.

    Args:
        request: The raw request, required by the rate limiter.
        text: Message text; may be empty when files are attached.
        conversation_id: Optional conversation to record the exchange in.
        files: Uploaded attachments.
        store: The conversation store, injected by FastAPI.
        replies: The canned reply generator, injected by FastAPI.
        connections: WebSocket rooms, injected by FastAPI.

    Raises:
        ValidationError: If the message is empty, the JSON body is malformed, or
            an upload is rejected.
        NotFoundError: If the conversation was deleted mid-request.

    Returns:
        The stored user message and the assistant reply.
    """
    if request.headers.get("content-type", "").startswith("application/json"):
        body = await _read_json_body(request)
        text, conversation_id = body.text, body.conversation_id

    uploads = await _read_uploads(files or [])
    if not text and not uploads:
        raise ValidationError("Message must contain text or attachments")

    try:
        attachments = build_attachments(uploads)
    except AttachmentError as exc:
        raise ValidationError(str(exc)) from exc

    user_message = new_message(text, Sender.USER, attachments)

    start_time = time.perf_counter()
    if settings.ASSISTANT_REPLY_DELAY_SECONDS > 0:
        await asyncio.sleep(settings.ASSISTANT_REPLY_DELAY_SECONDS)
    assistant_message = new_message(replies.reply(text or "File attached"), Sender.ASSISTANT)
    chat_reply_duration.observe(time.perf_counter() - start_time)

    chat_messages_total.labels(sender=Sender.USER.value).inc()
    chat_messages_total.labels(sender=Sender.ASSISTANT.value).inc()

    if conversation_id:
        _, created = store.get_or_create_conversation(conversation_id)
        if created:
            conversations_created_total.labels(origin="message").inc()
        try:
            store.append_messages(conversation_id, [user_message, assistant_message])
        except ConversationNotFoundError as exc:
            raise NotFoundError("Conversation not found") from exc
        await _publish(connections, conversation_id, [user_message, assistant_message])

    logger.info(
        "chat_message_processed",
        conversation_id=conversation_id,
        text_length=len(text),
        attachment_count=len(attachments),
    )

    return ApiResponse[ChatExchange](
        data=ChatExchange(user_message=user_message, assistant_message=assistant_message),
        message="Message processed successfully",
    )


@router.get("/title", response_model=TitleResponse)
async def get_title(replies: ReplyGenerator = Depends(get_replies)) -> TitleResponse:
    """Return a random conversation title."""
    return TitleResponse(title=replies.title())


@router.get("/thinking", response_model=ThinkingResponse)
async def get_thinking(replies: ReplyGenerator = Depends(get_replies)) -> ThinkingResponse:
    """Return a random "thinking" placeholder text."""
    return ThinkingResponse(thinking=replies.thinking())


@router.get("/conversations", response_model=ApiResponse[list[ConversationSummary]])
async def list_conversations(
    store: ConversationStore = Depends(get_store),
) -> ApiResponse[list[ConversationSummary]]:
    """List every conversation in creation order."""
    return ApiResponse[list[ConversationSummary]](data=store.list_conversations())


@router.post("/conversations", response_model=ApiResponse[Conversation], status_code=201)
async def create_conversation(
    body: ConversationCreate | None = None,
    store: ConversationStore = Depends(get_store),
) -> ApiResponse[Conversation]:
    """Create a new, empty conversation.

    Args:
        body: Optional title for the conversation.
        store: The conversation store, injected by FastAPI.

    Raises:
        ConflictError: If the generated id collides with an existing one.

    Returns:
        The newly created conversation.
    """
    title = body.title if body else None
    try:
        conversation = store.create_conversation(title=title)
    except ConversationAlreadyExistsError as exc:
        raise ConflictError(str(exc)) from exc
    conversations_created_total.labels(origin="explicit").inc()
    return ApiResponse[Conversation](data=conversation)


@router.get("/conversations/{conversation_id}", response_model=ApiResponse[Conversation])
async def get_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_store),
) -> ApiResponse[Conversation]:
    """Return a conversation with its full message log.

    Raises:
        NotFoundError: If the conversation does not exist.
    """
    try:
        conversation = store.get_conversation(conversation_id)
    except ConversationNotFoundError as exc:
        raise NotFoundError("Conversation not found") from exc
    return ApiResponse[Conversation](data=conversation)


@router.delete("/conversations/{conversation_id}", response_model=ApiResponse[None])
async def delete_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_store),
) -> ApiResponse[None]:
    """Delete a conversation and all of its messages.

    Raises:
        NotFoundError: If the conversation does not exist.
    """
    if not store.delete_conversation(conversation_id):
        raise NotFoundError("Conversation not found")
    conversations_deleted_total.inc()
    return ApiResponse[None](message="Conversation deleted successfully")


@router.get("/messages", response_model=ApiResponse[MessagePage])
async def get_messages(
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    limit: str | None = None,
    cursor: str | None = None,
    store: ConversationStore = Depends(get_store),
) -> ApiResponse[MessagePage]:
    """Return one page of a conversation's messages, oldest first.

    Args:
        conversation_id: Conversation to read.
        limit: Page size; invalid or non-positive values use the default.
        cursor: ``nextCursor`` from the previous page.
        store: The conversation store, injected by FastAPI.

    Raises:
        ValidationError: If ``conversationId`` is missing.
        NotFoundError: If the conversation does not exist.

    Returns:
        The page and the cursor for the next one (``null`` when exhausted).
    """
    if not conversation_id:
        raise ValidationError("conversationId is required")

    page_size = min(coerce_limit(limit, settings.MESSAGES_PAGE_LIMIT), settings.MESSAGES_PAGE_MAX_LIMIT)
    try:
        page = store.paginate_messages(conversation_id, page_size, cursor)
    except ConversationNotFoundError as exc:
        raise NotFoundError("Conversation not found") from exc
    return ApiResponse[MessagePage](data=page)

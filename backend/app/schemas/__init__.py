from app.schemas.chat import ApiResponse, ChatExchange, ChatRequest, ConversationCreate, ThinkingResponse, TitleResponse
from app.schemas.health import HealthResponse

__all__ = [
    "ApiResponse",
    "ChatExchange",
    "ChatRequest",
    "ConversationCreate",
    "HealthResponse",
    "ThinkingResponse",
    "TitleResponse",
]

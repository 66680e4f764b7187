from app.models.base import AttachmentType, CamelModel, Sender, generate_id, utcnow
from app.models.conversation import Conversation, ConversationSummary, MessagePage
from app.models.message import Attachment, Message, new_message

__all__ = [
    "Attachment",
    "AttachmentType",
    "CamelModel",
    "Conversation",
    "ConversationSummary",
    "Message",
    "MessagePage",
    "Sender",
    "generate_id",
    "new_message",
    "utcnow",
]

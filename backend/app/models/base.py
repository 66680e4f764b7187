from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base class for chat records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Sender(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class AttachmentType(str, enum.Enum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"


def generate_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)

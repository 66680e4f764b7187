from __future__ import annotations

import base64
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import PurePath

import structlog

from app.config import settings
from app.metrics import attachments_uploaded_total
from app.models import Attachment, AttachmentType, generate_id

logger = structlog.get_logger()

ALLOWED_EXTENSIONS = {
    ".jpeg", ".jpg", ".png", ".gif",
    ".pdf", ".doc", ".docx", ".txt",
    ".mp3", ".wav", ".webm", ".ogg", ".m4a",
}
ALLOWED_CONTENT_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
    "audio/mp4",
    "audio/x-m4a",
    "video/webm",
}


class AttachmentError(ValueError):
    """Raised when an upload breaks the attachment policy."""


@dataclass(frozen=True)
class UploadedFile:
    """Raw upload as received by the transport layer."""

    filename: str
    content_type: str
    content: bytes


def attachment_type(mime_type: str) -> AttachmentType:
    if mime_type.startswith("image/"):
        return AttachmentType.IMAGE
    if mime_type.startswith("audio/"):
        return AttachmentType.AUDIO
    if mime_type.startswith("video/"):
        return AttachmentType.VIDEO
    return AttachmentType.FILE


def is_allowed(filename: str, mime_type: str) -> bool:
    """Both the extension and the mime type must name an allowed format."""
    extension = PurePath(filename).suffix.lower()
    base_type = mime_type.split(";", 1)[0].strip().lower()
    return extension in ALLOWED_EXTENSIONS and base_type in ALLOWED_CONTENT_TYPES


def validate_uploads(
    files: Sequence[UploadedFile],
    max_size: int | None = None,
    max_files: int | None = None,
) -> None:
    """Check a batch of uploads against the attachment policy.

    Args:
        files: The uploads of one message.
        max_size: Per-file byte limit, defaults to ``settings.MAX_UPLOAD_SIZE``.
        max_files: File count limit, defaults to ``settings.MAX_UPLOAD_FILES``.

    Raises:
        AttachmentError: On too many files, an oversized file or an
            unsupported type.
    """
    max_size = settings.MAX_UPLOAD_SIZE if max_size is None else max_size
    max_files = settings.MAX_UPLOAD_FILES if max_files is None else max_files

    if len(files) > max_files:
        raise AttachmentError("Too many files uploaded")
    for f in files:
        if len(f.content) > max_size:
            raise AttachmentError(f"File size exceeds limit ({max_size // (1024 * 1024)}MB)")
        if not is_allowed(f.filename, f.content_type):
            raise AttachmentError("Unsupported file type")


def build_attachments(files: Sequence[UploadedFile]) -> list[Attachment]:
    """Validate uploads and turn them into attachment descriptors.

    The file body is inlined as a base64 ``data:`` URL; nothing is written to
    disk.
    """
    validate_uploads(files)

    attachments = [
        Attachment(
            id=generate_id(),
            name=f.filename,
            type=attachment_type(f.content_type),
            url=f"data:{f.content_type};base64,{base64.b64encode(f.content).decode('ascii')}",
            size=len(f.content),
            mime_type=f.content_type,
        )
        for f in files
    ]
    for a in attachments:
        attachments_uploaded_total.labels(type=a.type.value).inc()
    if attachments:
        logger.info("attachments_built", count=len(attachments), total_bytes=sum(a.size for a in attachments))
    return attachments

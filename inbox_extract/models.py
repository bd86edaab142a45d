"""Result models produced by the extraction pipeline.

All models are frozen pydantic models so a result can be handed to the
reporting layer and serialized directly with ``model_dump(mode="json")``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageStatus(str, Enum):
    """Terminal state of one message's pipeline."""

    PROCESSED = "processed"
    ERROR = "error"


class MessageHeaders(BaseModel):
    """Envelope headers of a message, as returned by the mailbox."""

    model_config = ConfigDict(frozen=True)

    from_address: str = Field(default="", description="Sender address (local@domain)")
    from_name: str = Field(default="", description="Sender display name")
    subject: str = Field(default="", description="Decoded subject line")
    date: str = Field(default="", description="Sent date, ``YYYY-MM-DD HH:MM:SS`` when parseable")
    message_id: str = Field(default="", description="RFC 5322 Message-ID header")


class ExtractedField(BaseModel):
    """One successfully matched pattern rule."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    description: str


class AttachmentRecord(BaseModel):
    """An attachment that was decoded and written to the content store."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(description="Filename as resolved from the MIME parameters")
    storage_path: str = Field(description="Local path or s3:// URI of the written object")
    size_bytes: int = Field(description="Size of the written object")
    saved_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MessageResult(BaseModel):
    """Outcome of processing a single message.

    Created fresh per message and never shared across messages.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(description="Mailbox identifier (IMAP UID)")
    processed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    headers: MessageHeaders = Field(default_factory=MessageHeaders)
    body_preview: str = Field(default="", description="First 200 chars of the normalized body")
    fields: tuple[ExtractedField, ...] = ()
    attachments: tuple[AttachmentRecord, ...] = ()
    status: MessageStatus = MessageStatus.PROCESSED
    error_detail: str | None = None
    flagged: bool = Field(
        default=False,
        description="Whether the processed flag was applied on the server",
    )


class MailboxInfo(BaseModel):
    """Summary counters for the selected mailbox."""

    model_config = ConfigDict(frozen=True)

    total_count: int
    recent_count: int
    unread_count: int
    size_bytes: int

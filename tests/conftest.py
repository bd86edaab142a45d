"""Shared test fixtures for the inbox_extract test suite."""

from __future__ import annotations

import asyncio
import email
import email.policy
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

import pytest

from inbox_extract.config import ExtractorConfig, ImapConfig, RetryConfig, StorageConfig
from inbox_extract.errors import MailboxConnectionError, MessageFetchError
from inbox_extract.imap_client import parse_headers
from inbox_extract.mailbox import MailboxInterface
from inbox_extract.mime import MimePart, build_structure
from inbox_extract.models import MailboxInfo, MessageHeaders
from inbox_extract.storage import LocalDirectoryStore


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
        mailbox="INBOX",
    )


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=2, initial_wait_seconds=0.01, max_wait_seconds=0.01)


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    return StorageConfig(backend="local", attachment_directory=tmp_path / "attachments")


@pytest.fixture
def extractor_config(
    imap_config: ImapConfig,
    storage_config: StorageConfig,
    fast_retry: RetryConfig,
) -> ExtractorConfig:
    return ExtractorConfig(
        max_messages_per_batch=10,
        message_timeout_seconds=5.0,
        imap=imap_config,
        storage=storage_config,
        retry=fast_retry,
    )


@pytest.fixture
def local_store(storage_config: StorageConfig) -> LocalDirectoryStore:
    return LocalDirectoryStore(storage_config.attachment_directory)


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "Shop Team <sender@example.com>",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
    charset: str = "us-ascii",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain", charset)
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_html_email(*, body_html: str = "<p>Hello</p>") -> bytes:
    msg = MIMEText(body_html, "html")
    msg["Subject"] = "HTML Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<html-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_multipart_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart/mixed email with a text/HTML alternative and attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"

    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        msg.attach(_attachment_part(filename, content_type, payload))

    return msg.as_bytes()


def _attachment_part(
    filename: str | None,
    content_type: str,
    payload: bytes,
    *,
    name_param: str | None = None,
) -> MIMEBase:
    maintype, subtype = content_type.split("/", 1)
    part = MIMEBase(maintype, subtype)
    if name_param:
        part.set_param("name", name_param)
    part.set_payload(payload)
    encoders.encode_base64(part)
    if filename:
        part.add_header("Content-Disposition", "attachment", filename=filename)
    else:
        part.add_header("Content-Disposition", "attachment")
    return part


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


# ------------------------------------------------------------------
# In-memory mailbox
# ------------------------------------------------------------------


def locate_part(msg: email.message.Message, address: str) -> email.message.Message | None:
    """Resolve an IMAP-style part address against a parsed message."""
    if msg.get_content_maintype() != "multipart":
        return msg if address == "1" else None
    node = msg
    for position in address.split("."):
        children = node.get_payload()
        index = int(position) - 1
        if not isinstance(children, list) or not 0 <= index < len(children):
            return None
        node = children[index]
    return node


def part_body(part: email.message.Message) -> bytes:
    """Raw, still transfer-encoded body of *part*, as an IMAP server returns it."""
    if part.get_content_maintype() == "multipart":
        return part.as_bytes().split(b"\n\n", 1)[1]
    payload = part.get_payload(decode=False)
    return payload.encode("utf-8", errors="surrogateescape") if isinstance(payload, str) else b""


class FakeMailbox(MailboxInterface):
    """Mailbox backed by raw EML bytes keyed by message id."""

    def __init__(self, messages: dict[str, bytes]) -> None:
        self.messages = messages
        self.flagged: list[str] = []
        self.fetch_calls: list[tuple[str, str]] = []
        self.failing_headers: set[str] = set()
        self.failing_structure: set[str] = set()
        self.refuse_flag: set[str] = set()
        self.connection_lost_on: set[str] = set()
        self.hang_on: set[str] = set()
        self.structure_calls: list[str] = []

    def _parsed(self, message_id: str) -> email.message.Message:
        if message_id not in self.messages:
            raise MessageFetchError(message_id, "no such message")
        return email.message_from_bytes(self.messages[message_id], policy=email.policy.default)

    async def search(self, criteria: str) -> list[str]:
        return list(self.messages)

    async def fetch_headers(self, message_id: str) -> MessageHeaders:
        if message_id in self.connection_lost_on:
            raise MailboxConnectionError("IMAP session lost during FETCH")
        if message_id in self.failing_headers:
            raise MessageFetchError(message_id, "FETCH returned NO")
        if message_id in self.hang_on:
            await asyncio.sleep(3600)
        raw = self.messages[message_id]
        return parse_headers(raw.split(b"\n\n", 1)[0] + b"\n\n")

    async def fetch_structure(self, message_id: str) -> MimePart:
        self.structure_calls.append(message_id)
        if message_id in self.failing_structure:
            raise MessageFetchError(message_id, "FETCH returned NO")
        return build_structure(self._parsed(message_id))

    async def fetch_part_content(self, message_id: str, address: str) -> bytes:
        self.fetch_calls.append((message_id, address))
        part = locate_part(self._parsed(message_id), address)
        return b"" if part is None else part_body(part)

    async def mark_processed(self, message_id: str) -> bool:
        if message_id in self.refuse_flag:
            return False
        self.flagged.append(message_id)
        return True

    async def mailbox_info(self) -> MailboxInfo:
        return MailboxInfo(
            total_count=len(self.messages),
            recent_count=0,
            unread_count=len(self.messages) - len(self.flagged),
            size_bytes=sum(len(raw) for raw in self.messages.values()),
        )

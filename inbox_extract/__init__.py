"""Inbox Extract — pull structured fields and attachments out of unread mail.

Public API re-exported here for convenience::

    from inbox_extract import ExtractorConfig, run_batch
"""

from .attachments import AttachmentSaver, SaveOutcome, resolve_filename
from .body import BodyExtractor, normalize_text, strip_markup
from .config import ExtractorConfig, ImapConfig, PatternOverride, RetryConfig, StorageConfig
from .errors import (
    AttachmentWriteError,
    ConfigError,
    InboxExtractError,
    MailboxConnectionError,
    MessageFetchError,
)
from .fields import extract_fields
from .imap_client import ImapMailbox
from .logging import setup_logging
from .mailbox import MailboxInterface
from .mime import Encoding, LeafPart, MimePart, MultipartPart, build_structure
from .models import (
    AttachmentRecord,
    ExtractedField,
    MailboxInfo,
    MessageHeaders,
    MessageResult,
    MessageStatus,
)
from .patterns import PatternCatalog, PatternRule, build_catalog, default_catalog
from .processor import MessageProcessor, fetch_mailbox_info, run_batch
from .storage import ContentStore, LocalDirectoryStore, S3ContentStore, create_store

__all__ = [
    "AttachmentRecord",
    "AttachmentSaver",
    "AttachmentWriteError",
    "BodyExtractor",
    "ConfigError",
    "ContentStore",
    "Encoding",
    "ExtractedField",
    "ExtractorConfig",
    "ImapConfig",
    "ImapMailbox",
    "InboxExtractError",
    "LeafPart",
    "LocalDirectoryStore",
    "MailboxConnectionError",
    "MailboxInfo",
    "MailboxInterface",
    "MessageFetchError",
    "MessageHeaders",
    "MessageProcessor",
    "MessageResult",
    "MessageStatus",
    "MimePart",
    "MultipartPart",
    "PatternCatalog",
    "PatternOverride",
    "PatternRule",
    "RetryConfig",
    "S3ContentStore",
    "SaveOutcome",
    "StorageConfig",
    "build_catalog",
    "build_structure",
    "create_store",
    "default_catalog",
    "extract_fields",
    "fetch_mailbox_info",
    "normalize_text",
    "resolve_filename",
    "run_batch",
    "setup_logging",
    "strip_markup",
]

"""Extractor configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Complex fields (``EXTRACTOR_PATTERN_CATALOG_OVERRIDES``) are given as JSON.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    mailbox: str = Field(default="INBOX", description="IMAP mailbox/folder to process")


class StorageConfig(BaseSettings):
    """Where decoded attachments are written."""

    model_config = {"env_prefix": "STORAGE_"}

    backend: Literal["local", "s3"] = Field(
        default="local",
        description="Content store for attachments",
    )
    attachment_directory: Path = Field(
        default=Path("attachments"),
        description="Write target for the local backend (created if missing)",
    )
    s3_bucket: str = Field(default="", description="S3 bucket name for the s3 backend")
    s3_prefix: str = Field(
        default="attachments",
        description="S3 key prefix for uploaded attachments",
    )
    s3_region: str = Field(default="us-east-1", description="AWS region")
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint URL (e.g. for MinIO)",
    )


class RetryConfig(BaseSettings):
    """Retry / backoff settings for establishing the mailbox session."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum connection attempts")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class PatternOverride(BaseModel):
    """A caller-supplied extraction rule, merged into the default catalog by name."""

    expression: str = Field(description="Regular expression; group 1 is the value")
    description: str = Field(default="", description="Human-readable field label")


class ExtractorConfig(BaseSettings):
    """Root configuration for one extractor run.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "EXTRACTOR_"}

    max_messages_per_batch: int = Field(
        default=50,
        ge=1,
        description="Cap on the number of messages processed per batch",
    )
    processed_flag_name: str = Field(
        default="PROCESSED",
        description="IMAP flag/keyword applied to a message once handled",
    )
    search_criteria: str = Field(
        default="UNSEEN",
        description="IMAP SEARCH criteria selecting the batch",
    )
    message_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Time budget for the whole pipeline of one message",
    )
    max_concurrency: int = Field(
        default=1,
        ge=1,
        description="Messages processed concurrently (1 = strictly sequential)",
    )
    pattern_catalog_overrides: dict[str, PatternOverride] = Field(
        default_factory=dict,
        description="Rules merged into the default pattern catalog by name",
    )
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Path | None = Field(
        default=None,
        description="Also append log lines to this file",
    )

    imap: ImapConfig = Field(default_factory=ImapConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

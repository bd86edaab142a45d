"""Content stores for decoded attachments.

Every object is written under a collision-resistant name
(``<uuid-hex>_<sanitized filename>``), so concurrent writers never clobber
each other.  Blocking file and boto3 calls are wrapped with
``asyncio.to_thread()``.
"""

from __future__ import annotations

import abc
import asyncio
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .errors import AttachmentWriteError

logger = structlog.get_logger()


@dataclass
class StoredObject:
    """Location and size of a written object."""

    path: str
    size_bytes: int


class ContentStore(abc.ABC):
    """Durable destination for attachment bytes."""

    async def start(self) -> None:
        """Prepare the store (create directories, clients)."""

    async def stop(self) -> None:
        """Release resources held by the store."""

    @abc.abstractmethod
    async def write(self, message_id: str, filename: str, payload: bytes) -> StoredObject:
        """Persist *payload*.  Raises :class:`AttachmentWriteError` on failure."""
        ...


class LocalDirectoryStore(ContentStore):
    """Writes attachments into a single local directory."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    async def start(self) -> None:
        await asyncio.to_thread(self._directory.mkdir, parents=True, exist_ok=True)
        logger.info("local_store_started", directory=str(self._directory))

    async def write(self, message_id: str, filename: str, payload: bytes) -> StoredObject:
        path = self._directory / unique_name(filename)
        try:
            size = await asyncio.to_thread(_write_exclusive, path, payload)
        except OSError as exc:
            raise AttachmentWriteError(filename, str(exc)) from exc
        logger.debug("attachment_written", message_id=message_id, path=str(path), size=size)
        return StoredObject(path=str(path), size_bytes=size)


class S3ContentStore(ContentStore):
    """Uploads attachments to S3 under ``<prefix>/<message_id>/``."""

    def __init__(self, config: StorageConfig) -> None:
        self._config = config
        self._client = None  # type: ignore[assignment]

    async def start(self) -> None:
        """Create the boto3 S3 client."""
        kwargs: dict = {"region_name": self._config.s3_region}
        if self._config.s3_endpoint_url:
            kwargs["endpoint_url"] = self._config.s3_endpoint_url
        self._client = await asyncio.to_thread(boto3.client, "s3", **kwargs)
        logger.info("s3_store_started", bucket=self._config.s3_bucket)

    async def stop(self) -> None:
        self._client = None
        logger.info("s3_store_stopped")

    async def write(self, message_id: str, filename: str, payload: bytes) -> StoredObject:
        assert self._client is not None, "S3 client not started"
        key = f"{self._config.s3_prefix}/{message_id}/{unique_name(filename)}"
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._config.s3_bucket,
                Key=key,
                Body=payload,
            )
            # Size is taken from the stored object, not the local buffer.
            head = await asyncio.to_thread(
                self._client.head_object,
                Bucket=self._config.s3_bucket,
                Key=key,
            )
        except (BotoCoreError, ClientError) as exc:
            raise AttachmentWriteError(filename, str(exc)) from exc

        uri = f"s3://{self._config.s3_bucket}/{key}"
        logger.debug("attachment_uploaded", message_id=message_id, uri=uri)
        return StoredObject(path=uri, size_bytes=int(head["ContentLength"]))


def create_store(config: StorageConfig) -> ContentStore:
    """Build the content store selected by ``config.backend``."""
    if config.backend == "s3":
        return S3ContentStore(config)
    return LocalDirectoryStore(config.attachment_directory)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def unique_name(filename: str) -> str:
    """Collision-resistant object name for *filename*."""
    return f"{uuid.uuid4().hex}_{_sanitize_filename(filename)}"


def _sanitize_filename(name: str) -> str:
    """Keep only the base name and replace characters unsafe in paths/keys."""
    base = re.split(r"[\\/]", name)[-1]
    safe = re.sub(r"[^\w.\-]", "_", base).lstrip(".")
    return safe or "attachment"


def _write_exclusive(path: Path, payload: bytes) -> int:
    with path.open("xb") as fh:
        fh.write(payload)
    return path.stat().st_size

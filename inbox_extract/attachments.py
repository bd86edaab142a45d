"""Materialize attachment parts into the content store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from .errors import AttachmentWriteError
from .mailbox import MailboxInterface
from .mime import LeafPart, MimePart, MultipartPart, child_address, decode_transfer
from .models import AttachmentRecord
from .storage import ContentStore

logger = structlog.get_logger()


@dataclass
class SaveOutcome:
    """Attachments written for one message, plus the ones that failed to write."""

    records: list[AttachmentRecord] = field(default_factory=list)
    failures: list[AttachmentWriteError] = field(default_factory=list)


def resolve_filename(part: LeafPart) -> str | None:
    """Disposition ``filename`` first, then content-type ``name``."""
    for candidate in (part.disposition_parameters.get("filename"), part.parameters.get("name")):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


class AttachmentSaver:
    """Decode and persist the attachment parts of a message.

    Only the immediate children of a multipart root are considered.  Parts
    without a resolvable filename are skipped silently.  A write failure
    skips that attachment and is reported in :attr:`SaveOutcome.failures`;
    it never stops sibling attachments from being saved.
    """

    def __init__(self, mailbox: MailboxInterface, store: ContentStore) -> None:
        self._mailbox = mailbox
        self._store = store

    async def save_all(self, message_id: str, structure: MimePart) -> SaveOutcome:
        outcome = SaveOutcome()
        if not isinstance(structure, MultipartPart):
            return outcome

        for index, part in enumerate(structure.children):
            if not isinstance(part, LeafPart) or not part.is_attachment:
                continue

            filename = resolve_filename(part)
            if filename is None:
                logger.debug("attachment_without_filename", message_id=message_id, index=index)
                continue

            address = child_address("", index)
            try:
                record = await self._save(message_id, address, part, filename)
            except AttachmentWriteError as exc:
                logger.warning(
                    "attachment_write_failed",
                    message_id=message_id,
                    filename=filename,
                    error=exc.reason,
                )
                outcome.failures.append(exc)
                continue
            outcome.records.append(record)

        return outcome

    async def _save(
        self,
        message_id: str,
        address: str,
        part: LeafPart,
        filename: str,
    ) -> AttachmentRecord:
        raw = await self._mailbox.fetch_part_content(message_id, address)
        payload = decode_transfer(raw, part.encoding)
        stored = await self._store.write(message_id, filename, payload)
        logger.info(
            "attachment_saved",
            message_id=message_id,
            filename=filename,
            size=stored.size_bytes,
        )
        return AttachmentRecord(
            filename=filename,
            storage_path=stored.path,
            size_bytes=stored.size_bytes,
            saved_at=datetime.now(UTC),
        )

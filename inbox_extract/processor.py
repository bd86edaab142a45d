"""MessageProcessor — runs the content pipeline for each message of a batch.

Per message the pipeline moves through::

    FETCHING → BODY_EXTRACTED → FIELDS_EXTRACTED → ATTACHMENTS_SAVED → FLAGGED → DONE

Any failure confined to the message ends it in the error state and the
batch carries on.  A message that fails before flagging is never flagged,
so it is picked up again on a later run.  Losing the mailbox session
aborts the batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import structlog

from .attachments import AttachmentSaver
from .body import BodyExtractor
from .config import ExtractorConfig
from .errors import MailboxConnectionError, MessageFetchError
from .fields import extract_fields
from .imap_client import ImapMailbox
from .mailbox import MailboxInterface
from .models import MailboxInfo, MessageHeaders, MessageResult, MessageStatus
from .patterns import PatternCatalog, build_catalog
from .storage import ContentStore, create_store

logger = structlog.get_logger()

BODY_PREVIEW_LENGTH = 200


class ProcessingState(str, Enum):
    FETCHING = "fetching"
    BODY_EXTRACTED = "body_extracted"
    FIELDS_EXTRACTED = "fields_extracted"
    ATTACHMENTS_SAVED = "attachments_saved"
    FLAGGED = "flagged"
    DONE = "done"


@dataclass
class _Progress:
    """Mutable scratch state for one message; frozen into a MessageResult at the end."""

    message_id: str
    state: ProcessingState = ProcessingState.FETCHING
    headers: MessageHeaders = field(default_factory=MessageHeaders)
    processed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def error(self, detail: str) -> MessageResult:
        return MessageResult(
            message_id=self.message_id,
            processed_at=self.processed_at,
            headers=self.headers,
            status=MessageStatus.ERROR,
            error_detail=detail,
        )


class MessageProcessor:
    """Orchestrates body extraction, field extraction and attachment saving."""

    def __init__(
        self,
        mailbox: MailboxInterface,
        store: ContentStore,
        catalog: PatternCatalog,
        config: ExtractorConfig,
    ) -> None:
        self._mailbox = mailbox
        self._catalog = catalog
        self._config = config
        self._body = BodyExtractor(mailbox)
        self._attachments = AttachmentSaver(mailbox, store)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def process_batch(
        self,
        criteria: str | None = None,
        max_count: int | None = None,
    ) -> list[MessageResult]:
        """Search the mailbox and process up to *max_count* matching messages.

        Results are returned in search order.  Raises
        :class:`MailboxConnectionError` if the session fails; no partial
        results are returned in that case.
        """
        criteria = criteria or self._config.search_criteria
        limit = self._config.max_messages_per_batch if max_count is None else max_count

        message_ids = await self._mailbox.search(criteria)
        if not message_ids:
            logger.info("no_messages_found", criteria=criteria)
            return []

        batch = message_ids[: max(limit, 0)]
        logger.info(
            "batch_started",
            criteria=criteria,
            found=len(message_ids),
            processing=len(batch),
        )

        if self._config.max_concurrency <= 1:
            results = [await self.process_message(message_id) for message_id in batch]
        else:
            results = await self._process_concurrently(batch)

        logger.info(
            "batch_finished",
            processed=sum(r.status is MessageStatus.PROCESSED for r in results),
            errors=sum(r.status is MessageStatus.ERROR for r in results),
        )
        return results

    async def _process_concurrently(self, batch: list[str]) -> list[MessageResult]:
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def bounded(message_id: str) -> MessageResult:
            async with semaphore:
                return await self.process_message(message_id)

        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(bounded(message_id)) for message_id in batch]
        except BaseExceptionGroup as group:
            raise group.exceptions[0]
        return [task.result() for task in tasks]

    # ------------------------------------------------------------------
    # Single message
    # ------------------------------------------------------------------

    async def process_message(self, message_id: str) -> MessageResult:
        """Run the full pipeline for one message within the configured time budget."""
        progress = _Progress(message_id=message_id)
        log = logger.bind(message_id=message_id)

        try:
            async with asyncio.timeout(self._config.message_timeout_seconds):
                result = await self._run_pipeline(progress)
        except MailboxConnectionError:
            raise
        except TimeoutError:
            detail = (
                f"timed out after {self._config.message_timeout_seconds:g}s "
                f"(state: {progress.state.value})"
            )
            log.error("message_timed_out", state=progress.state.value)
            return progress.error(detail)
        except MessageFetchError as exc:
            log.error("message_fetch_failed", state=progress.state.value, error=exc.reason)
            return progress.error(str(exc))
        except Exception as exc:
            log.exception("message_processing_failed", state=progress.state.value)
            return progress.error(f"{type(exc).__name__}: {exc}")

        log.info(
            "message_processed",
            sender=result.headers.from_address or "unknown",
            fields=len(result.fields),
            attachments=len(result.attachments),
            flagged=result.flagged,
        )
        return result

    async def _run_pipeline(self, progress: _Progress) -> MessageResult:
        message_id = progress.message_id

        progress.headers = await self._mailbox.fetch_headers(message_id)
        # One full download per message; shared by the body walk and attachments.
        structure = await self._mailbox.fetch_structure(message_id)
        body = await self._body.extract(message_id, structure)
        progress.state = ProcessingState.BODY_EXTRACTED

        fields = extract_fields(body, self._catalog)
        progress.state = ProcessingState.FIELDS_EXTRACTED

        saved = await self._attachments.save_all(message_id, structure)
        progress.state = ProcessingState.ATTACHMENTS_SAVED

        flagged = await self._mailbox.mark_processed(message_id)
        if flagged:
            progress.state = ProcessingState.FLAGGED
        else:
            logger.warning("message_not_flagged", message_id=message_id)

        error_detail = None
        if saved.failures:
            error_detail = "; ".join(str(failure) for failure in saved.failures)

        progress.state = ProcessingState.DONE
        return MessageResult(
            message_id=message_id,
            processed_at=progress.processed_at,
            headers=progress.headers,
            body_preview=body[:BODY_PREVIEW_LENGTH],
            fields=tuple(fields),
            attachments=tuple(saved.records),
            status=MessageStatus.PROCESSED,
            error_detail=error_detail,
            flagged=flagged,
        )


# ------------------------------------------------------------------
# Entry points with a scoped session
# ------------------------------------------------------------------


async def run_batch(
    config: ExtractorConfig,
    *,
    criteria: str | None = None,
    max_count: int | None = None,
) -> list[MessageResult]:
    """Open a session, process one batch and release everything on exit."""
    catalog = build_catalog(config)
    store = create_store(config.storage)

    async with ImapMailbox(
        config.imap,
        processed_flag=config.processed_flag_name,
        retry=config.retry,
    ) as mailbox:
        await store.start()
        try:
            processor = MessageProcessor(mailbox, store, catalog, config)
            return await processor.process_batch(criteria, max_count)
        finally:
            await store.stop()


async def fetch_mailbox_info(config: ExtractorConfig) -> MailboxInfo:
    async with ImapMailbox(config.imap, retry=config.retry) as mailbox:
        return await mailbox.mailbox_info()

"""IMAP mailbox session wrapping stdlib imaplib with asyncio.to_thread.

Messages are addressed by UID.  Every content fetch uses ``BODY.PEEK`` so
reading a message never sets ``\\Seen`` by itself; only
:meth:`ImapMailbox.mark_processed` changes flags.
"""

from __future__ import annotations

import asyncio
import email
import email.parser
import email.policy
import email.utils
import imaplib
import re
from collections.abc import Callable
from datetime import UTC
from typing import Any, TypeVar

import structlog

from .config import ImapConfig, RetryConfig
from .errors import MailboxConnectionError, MessageFetchError
from .mailbox import MailboxInterface
from .mime import MimePart, build_structure
from .models import MailboxInfo, MessageHeaders
from .retry import with_retry

logger = structlog.get_logger()

T = TypeVar("T")

_STATUS_ITEM = re.compile(rb"(MESSAGES|RECENT|UNSEEN)\s+(\d+)", re.IGNORECASE)
_SIZE_ITEM = re.compile(rb"RFC822\.SIZE\s+(\d+)", re.IGNORECASE)
_SEEN = "\\Seen"


class ImapMailbox(MailboxInterface):
    """Async-friendly IMAP session implementing :class:`MailboxInterface`.

    All blocking ``imaplib`` operations run in a worker thread and are
    serialized behind one lock, so the session is safe to share between
    concurrently processed messages.  Use as an async context manager to
    guarantee logout on every exit path::

        async with ImapMailbox(config.imap, processed_flag="PROCESSED") as mailbox:
            ...
    """

    def __init__(
        self,
        config: ImapConfig,
        *,
        processed_flag: str = "PROCESSED",
        retry: RetryConfig | None = None,
    ) -> None:
        self._config = config
        self._processed_flag = processed_flag
        self._retry = retry or RetryConfig()
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect, login, and select the configured mailbox.

        Transient failures are retried; once retries are exhausted a
        :class:`MailboxConnectionError` is raised.
        """

        @with_retry(self._retry, retryable_exceptions=(OSError, imaplib.IMAP4.error))
        async def _attempt() -> None:
            await asyncio.to_thread(self._connect_sync)

        try:
            await _attempt()
        except (OSError, imaplib.IMAP4.error) as exc:
            logger.error("imap_connect_failed", host=self._config.host, error=str(exc))
            raise MailboxConnectionError(
                f"cannot connect to {self._config.host}:{self._config.port}: {exc}"
            ) from exc

        logger.info(
            "imap_connected",
            host=self._config.host,
            mailbox=self._config.mailbox,
        )

    def _connect_sync(self) -> None:
        if self._config.use_ssl:
            conn = imaplib.IMAP4_SSL(self._config.host, self._config.port)
        else:
            conn = imaplib.IMAP4(self._config.host, self._config.port)
        try:
            conn.login(self._config.username, self._config.password.get_secret_value())
            status, data = conn.select(_quote(self._config.mailbox))
        except (OSError, imaplib.IMAP4.error):
            _shutdown_quietly(conn)
            raise
        if status != "OK":
            _shutdown_quietly(conn)
            raise MailboxConnectionError(
                f"cannot select mailbox {self._config.mailbox!r}: {_describe(data)}"
            )
        self._conn = conn

    async def disconnect(self) -> None:
        """Close mailbox and logout.  Never raises."""
        if self._conn is not None:
            await asyncio.to_thread(self._disconnect_sync)
            self._conn = None
            logger.info("imap_disconnected")

    def _disconnect_sync(self) -> None:
        assert self._conn is not None
        try:
            self._conn.close()
        except (imaplib.IMAP4.error, OSError):
            pass
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError):
            pass

    async def __aenter__(self) -> ImapMailbox:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # MailboxInterface
    # ------------------------------------------------------------------

    async def search(self, criteria: str) -> list[str]:
        data = await self._call(self._uid_command, None, "SEARCH", None, criteria)
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    async def fetch_headers(self, message_id: str) -> MessageHeaders:
        data = await self._call(self._uid_command, message_id, "FETCH", message_id, "(BODY.PEEK[HEADER])")
        raw = _first_literal(data)
        if raw is None:
            raise MessageFetchError(message_id, "no such message")
        return parse_headers(raw)

    async def fetch_structure(self, message_id: str) -> MimePart:
        data = await self._call(self._uid_command, message_id, "FETCH", message_id, "(BODY.PEEK[])")
        raw = _first_literal(data)
        if raw is None:
            raise MessageFetchError(message_id, "no such message")
        msg = email.message_from_bytes(raw, policy=email.policy.default)
        return build_structure(msg)

    async def fetch_part_content(self, message_id: str, address: str) -> bytes:
        data = await self._call(
            self._uid_command, message_id, "FETCH", message_id, f"(BODY.PEEK[{address}])"
        )
        return _first_literal(data) or b""

    async def mark_processed(self, message_id: str) -> bool:
        flags = [_SEEN]
        if self._processed_flag.lower() != _SEEN.lower():
            flags.append(self._processed_flag)
        try:
            await self._call(
                self._uid_command, message_id, "STORE", message_id, "+FLAGS", f"({' '.join(flags)})"
            )
        except MessageFetchError as exc:
            logger.warning("imap_flag_failed", message_id=message_id, error=exc.reason)
            return False
        return True

    async def mailbox_info(self) -> MailboxInfo:
        return await self._call(self._mailbox_info_sync)

    # ------------------------------------------------------------------
    # Synchronous helpers (run in thread)
    # ------------------------------------------------------------------

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run *fn* in a worker thread while holding the session lock.

        A running ``imaplib`` command cannot be interrupted.  If the caller
        is cancelled (per-message timeout, task group teardown) the lock
        stays held until the thread has returned, so the next command never
        shares the socket with it.
        """
        async with self._lock:
            task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                await _drain(task)
                raise

    def _uid_command(self, message_id: str | None, command: str, *args: Any) -> list:
        """Run ``UID <command>`` and translate failures.

        With *message_id* set, protocol errors are scoped to that message;
        without it (session-level commands) every failure is fatal.
        """
        conn = self._require_conn()
        try:
            status, data = conn.uid(command, *args)
        except imaplib.IMAP4.abort as exc:
            raise MailboxConnectionError(f"IMAP session lost during {command}: {exc}") from exc
        except OSError as exc:
            raise MailboxConnectionError(f"IMAP socket error during {command}: {exc}") from exc
        except imaplib.IMAP4.error as exc:
            if message_id is None:
                raise MailboxConnectionError(f"IMAP {command} failed: {exc}") from exc
            raise MessageFetchError(message_id, f"{command} failed: {exc}") from exc

        if status != "OK":
            if message_id is None:
                raise MailboxConnectionError(f"IMAP {command} returned {status}: {_describe(data)}")
            raise MessageFetchError(message_id, f"{command} returned {status}: {_describe(data)}")
        return data

    def _mailbox_info_sync(self) -> MailboxInfo:
        conn = self._require_conn()
        try:
            status, data = conn.status(_quote(self._config.mailbox), "(MESSAGES RECENT UNSEEN)")
            if status != "OK":
                raise MailboxConnectionError(f"IMAP STATUS returned {status}: {_describe(data)}")
            counters = {
                name.upper().decode(): int(value)
                for name, value in _STATUS_ITEM.findall(b" ".join(d for d in data if isinstance(d, bytes)))
            }
            total = counters.get("MESSAGES", 0)

            size = 0
            if total:
                status, data = conn.fetch("1:*", "(RFC822.SIZE)")
                if status == "OK":
                    for item in data:
                        line = item[0] if isinstance(item, tuple) else item
                        if isinstance(line, bytes) and (match := _SIZE_ITEM.search(line)):
                            size += int(match.group(1))
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxConnectionError(f"cannot read mailbox status: {exc}") from exc

        return MailboxInfo(
            total_count=total,
            recent_count=counters.get("RECENT", 0),
            unread_count=counters.get("UNSEEN", 0),
            size_bytes=size,
        )

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise MailboxConnectionError("Not connected to IMAP server")
        return self._conn


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def parse_headers(raw: bytes) -> MessageHeaders:
    """Header-only parse of raw RFC 822 header bytes."""
    headers = email.parser.BytesHeaderParser(policy=email.policy.default).parsebytes(raw)
    from_name, from_address = email.utils.parseaddr(str(headers.get("From", "")))
    return MessageHeaders(
        from_address=from_address,
        from_name=from_name,
        subject=str(headers.get("Subject", "")),
        date=_format_date(str(headers.get("Date", ""))),
        message_id=str(headers.get("Message-ID", "")).strip(),
    )


def _format_date(value: str) -> str:
    if not value:
        return ""
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return value
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC)
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


async def _drain(task: asyncio.Future) -> None:
    """Wait for *task* to finish, ignoring further cancellation requests."""
    while not task.done():
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            continue
    if not task.cancelled() and task.exception() is not None:
        logger.warning("imap_command_abandoned", error=str(task.exception()))


def _first_literal(data: list) -> bytes | None:
    """Return the first literal payload of an imaplib FETCH response."""
    for item in data or []:
        if isinstance(item, tuple) and len(item) >= 2 and isinstance(item[1], bytes):
            return item[1]
    return None


def _quote(mailbox: str) -> str:
    if mailbox.startswith('"') or not re.search(r'[\s"\\]', mailbox):
        return mailbox
    return '"' + mailbox.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _describe(data: Any) -> str:
    if isinstance(data, list) and data and isinstance(data[0], bytes):
        return data[0].decode(errors="replace")
    return str(data)


def _shutdown_quietly(conn: imaplib.IMAP4) -> None:
    try:
        conn.shutdown()
    except OSError:
        pass

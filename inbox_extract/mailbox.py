"""MailboxInterface — what the pipeline needs from a mailbox session."""

from __future__ import annotations

import abc

from .mime import MimePart
from .models import MailboxInfo, MessageHeaders


class MailboxInterface(abc.ABC):
    """Abstract mailbox session.

    Implementations raise :class:`~inbox_extract.errors.MessageFetchError`
    for failures confined to one message and
    :class:`~inbox_extract.errors.MailboxConnectionError` when the session
    itself is unusable.  Callers must not issue concurrent calls unless the
    implementation says it serializes them.
    """

    @abc.abstractmethod
    async def search(self, criteria: str) -> list[str]:
        """Return identifiers of messages matching *criteria*, in mailbox order."""
        ...

    @abc.abstractmethod
    async def fetch_headers(self, message_id: str) -> MessageHeaders:
        ...

    @abc.abstractmethod
    async def fetch_structure(self, message_id: str) -> MimePart:
        ...

    @abc.abstractmethod
    async def fetch_part_content(self, message_id: str, address: str) -> bytes:
        """Return the raw, still transfer-encoded body of the part at *address*.

        A missing part yields ``b""``.
        """
        ...

    @abc.abstractmethod
    async def mark_processed(self, message_id: str) -> bool:
        """Apply the processed flag.  Returns *False* if the server refused."""
        ...

    @abc.abstractmethod
    async def mailbox_info(self) -> MailboxInfo:
        ...

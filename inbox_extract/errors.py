"""Exception hierarchy for the extraction pipeline.

Errors scoped to one message or one attachment are caught and recorded on
that entity's result.  Errors about the mailbox session itself propagate to
the batch caller.
"""

from __future__ import annotations


class InboxExtractError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(InboxExtractError):
    """Invalid configuration, e.g. an unparseable pattern rule."""


class MailboxConnectionError(InboxExtractError):
    """The mailbox session could not be established or was lost.

    Fatal to the whole batch.
    """


class MessageFetchError(InboxExtractError):
    """Header, structure or part retrieval failed for one message."""

    def __init__(self, message_id: str, reason: str) -> None:
        super().__init__(f"message {message_id}: {reason}")
        self.message_id = message_id
        self.reason = reason


class AttachmentWriteError(InboxExtractError):
    """A decoded attachment could not be persisted."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"attachment {filename!r}: {reason}")
        self.filename = filename
        self.reason = reason

"""Canonical plaintext body extraction.

The fast path takes part ``1`` (quoted-printable decoded by convention).
When that is empty once markup is stripped, the full MIME structure is
walked and every text leaf is decoded and concatenated in document order.
"""

from __future__ import annotations

import html
import quopri
import re

import structlog
from bs4 import BeautifulSoup

from .mailbox import MailboxInterface
from .mime import LeafPart, MimePart, MultipartPart, child_address, decode_text, decode_transfer

logger = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")


def strip_markup(text: str) -> str:
    """Remove HTML tags, keeping text content (like PHP's ``strip_tags``)."""
    if "<" not in text:
        return text
    soup = BeautifulSoup(text, "html.parser")
    for element in soup(["script", "style", "head"]):
        element.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text()


def normalize_text(text: str) -> str:
    """Decode HTML entities, collapse whitespace runs and trim."""
    return _WHITESPACE.sub(" ", html.unescape(text)).strip()


class BodyExtractor:
    """Produce one normalized plaintext string for a message."""

    def __init__(self, mailbox: MailboxInterface) -> None:
        self._mailbox = mailbox

    async def extract(self, message_id: str, structure: MimePart | None = None) -> str:
        """Return the normalized plaintext body of *message_id*.

        *structure* is used for the fallback walk when given; otherwise it is
        fetched only if the fast path comes back empty.
        """
        body = ""
        raw = await self._mailbox.fetch_part_content(message_id, "1")
        if raw:
            body = strip_markup(decode_text(quopri.decodestring(raw)))

        if not body.strip():
            if structure is None:
                structure = await self._mailbox.fetch_structure(message_id)
            body = await self.walk_text(message_id, structure)
            logger.debug("body_from_structure", message_id=message_id, length=len(body))

        return normalize_text(body)

    async def walk_text(self, message_id: str, part: MimePart, address: str = "") -> str:
        """Concatenate the decoded text of every text leaf under *part*."""
        if isinstance(part, MultipartPart):
            texts = [
                await self.walk_text(message_id, child, child_address(address, index))
                for index, child in enumerate(part.children)
            ]
            return "\n".join(text for text in texts if text)

        return await self._leaf_text(message_id, part, address or "1")

    async def _leaf_text(self, message_id: str, part: LeafPart, address: str) -> str:
        if not part.is_text or part.is_attachment:
            return ""

        raw = await self._mailbox.fetch_part_content(message_id, address)
        if not raw:
            return ""

        text = decode_text(decode_transfer(raw, part.encoding), part.parameters.get("charset"))
        if part.subtype == "html":
            text = strip_markup(text)
        return text

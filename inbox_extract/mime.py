"""MIME part tree as a tagged variant, plus transfer/charset decoding.

A message's structure is either a :class:`LeafPart` (actual content) or a
:class:`MultipartPart` (an ordered group of children).  Parts are addressed
positionally in IMAP style: top-level children are ``1``, ``2``, ... and
nested children ``2.1``, ``2.2``, ...  A non-multipart message has a single
leaf addressed ``1``.
"""

from __future__ import annotations

import base64
import email.message
import email.utils
import quopri
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

_BASE64_NOISE = re.compile(rb"[^A-Za-z0-9+/]")


class Encoding(str, Enum):
    """Content-Transfer-Encoding of a leaf part."""

    SEVEN_BIT = "7bit"
    EIGHT_BIT = "8bit"
    BINARY = "binary"
    BASE64 = "base64"
    QUOTED_PRINTABLE = "quoted-printable"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> Encoding:
        """Map a header value to an :class:`Encoding`; absent means 7bit."""
        if not value:
            return cls.SEVEN_BIT
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER


def _frozen(mapping: Mapping[str, str] | None = None) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class LeafPart:
    """A part carrying content bytes."""

    content_type: str
    subtype: str
    encoding: Encoding = Encoding.SEVEN_BIT
    disposition: str | None = None
    parameters: Mapping[str, str] = field(default_factory=_frozen)
    disposition_parameters: Mapping[str, str] = field(default_factory=_frozen)

    @property
    def is_text(self) -> bool:
        return self.content_type == "text"

    @property
    def is_attachment(self) -> bool:
        return self.disposition == "attachment"


@dataclass(frozen=True)
class MultipartPart:
    """A container part grouping sibling parts in document order."""

    subtype: str
    children: tuple[MimePart, ...] = ()
    parameters: Mapping[str, str] = field(default_factory=_frozen)


MimePart = LeafPart | MultipartPart


def child_address(parent: str, index: int) -> str:
    """Dotted address of the *index*-th (0-based) child of *parent*."""
    position = str(index + 1)
    return f"{parent}.{position}" if parent else position


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------


def decode_transfer(raw: bytes, encoding: Encoding) -> bytes:
    """Undo the transfer encoding of a part body.

    Base64 decoding is lenient: line breaks and stray characters are
    dropped and missing padding is restored.  Other encodings pass through.
    """
    if encoding is Encoding.BASE64:
        cleaned = _BASE64_NOISE.sub(b"", raw)
        remainder = len(cleaned) % 4
        if remainder == 1:
            cleaned = cleaned[:-1]
        elif remainder:
            cleaned += b"=" * (4 - remainder)
        return base64.b64decode(cleaned)
    if encoding is Encoding.QUOTED_PRINTABLE:
        return quopri.decodestring(raw)
    return raw


def decode_text(payload: bytes, charset: str | None = None) -> str:
    """Decode *payload* using *charset*, falling back to UTF-8."""
    try:
        return payload.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


# ------------------------------------------------------------------
# Tree building
# ------------------------------------------------------------------


def build_structure(msg: email.message.Message) -> MimePart:
    """Convert a parsed :mod:`email` message into a :data:`MimePart` tree.

    ``message/rfc822`` parts are kept as leaves: their content is the
    embedded message as a whole.
    """
    if msg.get_content_maintype() == "multipart":
        payload = msg.get_payload()
        children = payload if isinstance(payload, list) else []
        return MultipartPart(
            subtype=msg.get_content_subtype(),
            children=tuple(build_structure(child) for child in children),
            parameters=_frozen(_header_params(msg, "content-type")),
        )

    return LeafPart(
        content_type=msg.get_content_maintype(),
        subtype=msg.get_content_subtype(),
        encoding=Encoding.parse(msg.get("Content-Transfer-Encoding")),
        disposition=msg.get_content_disposition(),
        parameters=_frozen(_header_params(msg, "content-type")),
        disposition_parameters=_frozen(_header_params(msg, "content-disposition")),
    )


def _header_params(msg: email.message.Message, header: str) -> dict[str, str]:
    """Parameters of *header*, lower-cased names and decoded values."""
    value = msg.get(header)
    if value is None:
        return {}

    # policy.default headers expose already-decoded params
    params = getattr(value, "params", None)
    if params is not None:
        return {name.lower(): str(val) for name, val in params.items()}

    result: dict[str, str] = {}
    for name, val in (msg.get_params(header=header) or [])[1:]:
        result[name.lower()] = email.utils.collapse_rfc2231_value(val)
    return result

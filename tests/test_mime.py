"""Tests for inbox_extract.mime."""

from __future__ import annotations

import base64
import email
import email.policy
from email.mime.text import MIMEText

import pytest

from inbox_extract.mime import (
    Encoding,
    LeafPart,
    MultipartPart,
    build_structure,
    child_address,
    decode_text,
    decode_transfer,
)

from tests.conftest import _build_multipart_email, _build_plain_email


def _parse(raw: bytes) -> email.message.Message:
    return email.message_from_bytes(raw, policy=email.policy.default)


class TestEncoding:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, Encoding.SEVEN_BIT),
            ("7bit", Encoding.SEVEN_BIT),
            ("BASE64", Encoding.BASE64),
            (" Quoted-Printable ", Encoding.QUOTED_PRINTABLE),
            ("binary", Encoding.BINARY),
            ("x-uuencode", Encoding.OTHER),
        ],
    )
    def test_parse(self, value, expected):
        assert Encoding.parse(value) is expected


class TestDecodeTransfer:
    def test_base64(self):
        raw = base64.encodebytes(b"%PDF-1.4 binary \x00\xff")
        assert decode_transfer(raw, Encoding.BASE64) == b"%PDF-1.4 binary \x00\xff"

    def test_base64_missing_padding(self):
        assert decode_transfer(b"aGVsbG8", Encoding.BASE64) == b"hello"

    def test_quoted_printable(self):
        assert decode_transfer(b"caf=C3=A9 =\nlatte", Encoding.QUOTED_PRINTABLE) == "café latte".encode()

    def test_passthrough(self):
        assert decode_transfer(b"as is =41", Encoding.SEVEN_BIT) == b"as is =41"


class TestDecodeText:
    def test_charset(self):
        assert decode_text("café".encode("latin-1"), "latin-1") == "café"

    def test_unknown_charset_falls_back_to_utf8(self):
        assert decode_text("café".encode(), "x-unknown") == "café"

    def test_invalid_bytes_replaced(self):
        assert decode_text(b"ok \xff", "utf-8") == "ok \ufffd"


class TestChildAddress:
    def test_top_level(self):
        assert child_address("", 0) == "1"

    def test_nested(self):
        assert child_address("2", 0) == "2.1"
        assert child_address("2.1", 2) == "2.1.3"


class TestBuildStructure:
    def test_single_part(self):
        structure = build_structure(_parse(_build_plain_email()))
        assert isinstance(structure, LeafPart)
        assert structure.content_type == "text"
        assert structure.subtype == "plain"
        assert structure.encoding is Encoding.SEVEN_BIT
        assert structure.parameters["charset"] == "us-ascii"
        assert structure.disposition is None

    def test_multipart_tree(self, multipart_eml_bytes: bytes):
        structure = build_structure(_parse(multipart_eml_bytes))
        assert isinstance(structure, MultipartPart)
        assert structure.subtype == "mixed"
        assert len(structure.children) == 3

        alternative = structure.children[0]
        assert isinstance(alternative, MultipartPart)
        assert [c.subtype for c in alternative.children] == ["plain", "html"]

        pdf = structure.children[1]
        assert isinstance(pdf, LeafPart)
        assert pdf.is_attachment
        assert pdf.encoding is Encoding.BASE64
        assert pdf.disposition_parameters["filename"] == "report.pdf"

    def test_rfc2231_filename_decoded(self):
        raw = _build_multipart_email()
        msg = _parse(raw)
        part = email.message.EmailMessage()
        part.set_content(b"data", maintype="application", subtype="octet-stream", filename="résumé.pdf")
        msg.attach(part)
        structure = build_structure(_parse(msg.as_bytes()))
        assert structure.children[-1].disposition_parameters["filename"] == "résumé.pdf"

    def test_compat32_message(self):
        msg = MIMEText("hi", "html", "utf-8")
        structure = build_structure(msg)
        assert structure.subtype == "html"
        assert structure.encoding is Encoding.BASE64
        assert structure.parameters["charset"] == "utf-8"

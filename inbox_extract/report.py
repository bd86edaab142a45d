"""Human-readable rendering of batch results."""

from __future__ import annotations

import json
from collections.abc import Iterable

from .models import MailboxInfo, MessageResult

SEPARATOR = "-" * 50


def format_result(result: MessageResult) -> str:
    headers = result.headers
    lines = [
        f"Processed email from: {headers.from_name or headers.from_address or 'unknown'}",
        f"Subject: {headers.subject}",
    ]
    if result.fields:
        lines.append("Extracted data:")
        lines.extend(f"  - {f.description or f.name}: {f.value}" for f in result.fields)
    if result.attachments:
        lines.append("Attachments:")
        lines.extend(f"  - {a.filename} ({a.size_bytes} bytes)" for a in result.attachments)
    lines.append(f"Status: {result.status.value}")
    if result.error_detail:
        lines.append(f"Error: {result.error_detail}")
    lines.append(SEPARATOR)
    return "\n".join(lines)


def format_report(results: Iterable[MessageResult]) -> str:
    return "\n".join(format_result(result) for result in results)


def results_to_json(results: Iterable[MessageResult]) -> str:
    return json.dumps([r.model_dump(mode="json") for r in results], indent=2)


def mailbox_info_to_json(info: MailboxInfo) -> str:
    return info.model_dump_json(indent=2)

"""Entry point for the extractor.

Usage::

    python -m inbox_extract info              # mailbox counters as JSON
    python -m inbox_extract process [--json]  # process one batch of messages
"""

from __future__ import annotations

import asyncio
import sys

import structlog
from pydantic import ValidationError

from .config import ExtractorConfig
from .errors import ConfigError, MailboxConnectionError
from .logging import setup_logging
from .processor import fetch_mailbox_info, run_batch
from .report import format_report, mailbox_info_to_json, results_to_json

logger = structlog.get_logger()

USAGE = "Usage: python -m inbox_extract <info|process> [--json]"


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args or args[0] not in ("info", "process"):
        print(USAGE, file=sys.stderr)
        return 1

    try:
        config = ExtractorConfig()
    except ValidationError as exc:
        print(f"Error: invalid configuration\n{exc}", file=sys.stderr)
        return 1

    setup_logging(json=config.log_json, level=config.log_level, log_file=config.log_file)

    try:
        if args[0] == "info":
            info = asyncio.run(fetch_mailbox_info(config))
            print(mailbox_info_to_json(info))
        else:
            results = asyncio.run(run_batch(config))
            print(results_to_json(results) if "--json" in args[1:] else format_report(results))
    except (ConfigError, MailboxConnectionError) as exc:
        logger.error("batch_aborted", error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

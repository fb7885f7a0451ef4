from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import anyio

from .config import settings
from .logging_config import get_logger, setup_json_logging
from .progress import ProgressEvent
from .schemas import DocumentStatus, SummaryOptions
from .session import DocumentSession

log = get_logger("summarizex.cli")


def _log_progress(event: ProgressEvent) -> None:
    log.info(
        "%s",
        event.message,
        extra={"stage": event.stage.value, "fraction": event.fraction, "document": event.document_name},
    )


async def _run(path: Path, options: SummaryOptions, api_key: Optional[str]) -> int:
    session = DocumentSession(settings=settings)
    try:
        if api_key:
            session.set_api_key(api_key)
        else:
            session.restore_api_key()

        doc = await session.add_file(path.name, path.read_bytes(), on_progress=_log_progress)
        if doc.status == DocumentStatus.extracted:
            doc = await session.summarize(doc.id, options, on_progress=_log_progress)

        if doc.status != DocumentStatus.completed:
            print(f"error: {doc.error}", file=sys.stderr)
            return 1
        print(doc.summary)
        return 0
    finally:
        session.close()


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="summarizex", description="Summarize a PDF or image with an LLM.")
    p.add_argument("file", type=Path, help="PDF or image to summarize")
    p.add_argument("--length", default=SummaryOptions().length, choices=sorted(settings.summary_lengths))
    p.add_argument("--style", default=SummaryOptions().style, choices=sorted(settings.summary_styles))
    p.add_argument("--api-key", default=None, help="overrides OPENAI_API_KEY")
    p.add_argument("--log-level", default=settings.log_level)
    args = p.parse_args(argv)

    setup_json_logging(args.log_level)
    if not args.file.is_file():
        print(f"error: no such file: {args.file}", file=sys.stderr)
        return 2

    options = SummaryOptions(length=args.length, style=args.style)
    return anyio.run(_run, args.file, options, args.api_key)


if __name__ == "__main__":
    sys.exit(main())

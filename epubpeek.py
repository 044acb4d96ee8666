#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
import webbrowser
from pathlib import Path

from quicklook.env import read_env
from quicklook.errors import PreviewError
from quicklook.preview import build_preview, render_error_page
from quicklook.workspace import new_work_dir, write_index

LOG_LEVEL_ENV = "QUICKLOOK_LOG_LEVEL"


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Flatten an EPUB into a single HTML page for quick preview."
    )
    parser.add_argument("input", help="EPUB file or unpacked EPUB directory")
    parser.add_argument("-o", "--output", help="Also write the composed HTML to this path")
    parser.add_argument("--work-dir", help="Extract into this directory instead of a fresh temp folder")
    parser.add_argument("--open", action="store_true", help="Open the result in the default browser")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else (read_env(LOG_LEVEL_ENV, "WARNING") or "WARNING").upper()
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 1

    work_dir = Path(args.work_dir) if args.work_dir else None
    try:
        result = build_preview(input_path, work_dir)
    except PreviewError as exc:
        print(f"EPUB preview failed: {exc}", file=sys.stderr)
        if args.open:
            error_page = write_index(new_work_dir(), render_error_page(exc))
            webbrowser.open(error_page.as_uri())
        return 1

    written = result.index_path
    if args.output:
        written = Path(args.output)
        written.parent.mkdir(parents=True, exist_ok=True)
        written.write_text(result.document.html, encoding="utf-8")
    print(f"Preview saved to: {written}")
    if args.open:
        webbrowser.open(written.resolve().as_uri())
    return 0


def cli() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(cli())

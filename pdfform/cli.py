"""Command line front end: ``python -m pdfform <command> ...``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .document import load
from .errors import LoadError, PDFFormError
from .mutator import apply
from .render import render
from .serializer import save
from .snapshot import dumps_snapshot, loads_snapshot
from .text import extract_text

log = logging.getLogger(__name__)


def _parse_assignment(raw: str) -> tuple:
    name, sep, value = raw.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {raw!r}")
    if value.lower() in ("true", "false"):
        return name, value.lower() == "true"
    return name, value


def cmd_fields(args: argparse.Namespace) -> int:
    document = load(Path(args.input).read_bytes(), strict=args.strict)
    print(dumps_snapshot(document.fields()))
    return 0


def cmd_fill(args: argparse.Namespace) -> int:
    document = load(Path(args.input).read_bytes(), strict=args.strict)
    values = {}
    if args.values:
        values.update(loads_snapshot(Path(args.values).read_text(encoding="utf-8")))
    values.update(dict(args.set or []))
    result = apply(document, values, strict=args.strict)
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    Path(args.output).write_bytes(save(result.document, incremental=args.incremental))
    log.info("Wrote %s (%d fields changed)", args.output, len(result.changed))
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    document = load(Path(args.input).read_bytes(), strict=args.strict)
    if not 1 <= args.page <= len(document.pages):
        print(f"error: page {args.page} out of range (1-{len(document.pages)})", file=sys.stderr)
        return 2
    rendered = render(document.pages[args.page - 1], args.scale)
    for warning in rendered.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    Path(args.output).write_bytes(rendered.to_png())
    log.info("Wrote %s (%dx%d)", args.output, rendered.width, rendered.height)
    return 0


def cmd_text(args: argparse.Namespace) -> int:
    document = load(Path(args.input).read_bytes(), strict=args.strict)
    pages = document.pages if args.page is None else document.pages[args.page - 1 : args.page]
    texts = [extract_text(page) for page in pages]
    print(json.dumps(texts, indent=2) if args.json else "\f".join(texts))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pdfform", description="Inspect, fill and preview PDF forms")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--strict", action="store_true", default=None, help="Fail on recoverable problems")
    commands = parser.add_subparsers(dest="command", required=True)

    fields = commands.add_parser("fields", help="Print the form fields as a JSON snapshot")
    fields.add_argument("input")
    fields.set_defaults(handler=cmd_fields)

    fill = commands.add_parser("fill", help="Apply values and write a new document")
    fill.add_argument("input")
    fill.add_argument("output")
    fill.add_argument("--values", help="JSON snapshot file with values to apply")
    fill.add_argument("--set", action="append", type=_parse_assignment, metavar="NAME=VALUE")
    fill.add_argument("--incremental", action="store_true", help="Append an incremental update")
    fill.set_defaults(handler=cmd_fill)

    render_cmd = commands.add_parser("render", help="Rasterise one page to PNG")
    render_cmd.add_argument("input")
    render_cmd.add_argument("output")
    render_cmd.add_argument("--page", type=int, default=1, help="1-based page number")
    render_cmd.add_argument("--scale", type=float, default=1.0)
    render_cmd.set_defaults(handler=cmd_render)

    text = commands.add_parser("text", help="Print page text")
    text.add_argument("input")
    text.add_argument("--page", type=int, help="1-based page number (default: all)")
    text.add_argument("--json", action="store_true", help="Print a JSON list, one entry per page")
    text.set_defaults(handler=cmd_text)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.handler(args)
    except LoadError as exc:
        print(f"error: could not open document: {exc}", file=sys.stderr)
        return 1
    except PDFFormError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

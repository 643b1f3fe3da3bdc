from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence, TextIO

from . import config
from .config import MergeConfig, load_merge_config
from .exceptions import FileFailure
from .export import write_bundle, write_outputs
from .merge_log import MergeLog
from .merger import DocumentMerger

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_TEMPLATE_ERROR = 2


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docx-merge",
        description="Apply a template's headers, footers, styles and fonts to Word documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  docx-merge --template sop_template.docx report.docx manual.docx
  docx-merge --template sop_template.docx *.docx -o out --flow-chart --bundle
  docx-merge --template sop_template.docx --inspect
        """,
    )
    parser.add_argument("targets", nargs="*", help="Target .docx files to update")
    parser.add_argument("-t", "--template", required=True, help="Template .docx file")
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help=f"Output directory (default: {config.OUTPUT_DIR})",
    )
    parser.add_argument("--config", default=None, help="JSON file with merge options")
    parser.add_argument("--debug", action="store_true", help="Verbose step logging")
    parser.add_argument(
        "--flow-chart",
        action="store_true",
        help='Insert a "PROCESS FLOW CHART" section before the PROCEDURE heading',
    )
    parser.add_argument(
        "--preserve-fonts",
        action="store_true",
        help="Keep the target documents' own fonts",
    )
    parser.add_argument("--font", default=None, help="Force a specific font name")
    parser.add_argument(
        "--no-title",
        action="store_true",
        help="Do not extract titles or fill the title placeholder",
    )
    parser.add_argument(
        "--bundle",
        action="store_true",
        help="Also write a zip archive with all processed documents",
    )
    parser.add_argument(
        "--inspect",
        action="store_true",
        help="Show the template's header/footer parts and exit",
    )
    parser.add_argument("--no-log-file", action="store_true", help="Do not write a run log file")
    return parser


def build_merge_config(args: argparse.Namespace) -> MergeConfig:
    merge_config = load_merge_config(args.config) if args.config else MergeConfig()
    overrides: dict[str, object] = {}
    if args.debug:
        overrides["debug_mode"] = True
    if args.flow_chart:
        overrides["insert_flow_chart"] = True
    if args.preserve_fonts:
        overrides["preserve_target_fonts"] = True
    if args.font:
        overrides["font_override"] = args.font
    if args.no_title:
        overrides["extract_title"] = False
    return replace(merge_config, **overrides) if overrides else merge_config


def _print_log(log: MergeLog, start: int, stream: TextIO) -> int:
    for entry in log.entries[start:]:
        print(entry.format(), file=stream)
    return len(log.entries)


def _read_targets(
    paths: Sequence[str],
    log: MergeLog,
) -> tuple[list[tuple[str, bytes]], list[FileFailure]]:
    targets: list[tuple[str, bytes]] = []
    failures: list[FileFailure] = []
    for raw in paths:
        path = Path(raw)
        try:
            targets.append((path.name, path.read_bytes()))
        except OSError as exc:
            message = f"cannot read {path}: {exc.strerror or exc}"
            failures.append(FileFailure(name=path.name, message=message))
            log.error(message, path.name)
            log.record_failure(f"Processing Error: {path.name}", message)
    return targets, failures


def main(argv: Sequence[str] | None = None, stdout: TextIO | None = None, stderr: TextIO | None = None) -> int:
    out = stdout or sys.stdout
    err = stderr or sys.stderr
    args = create_parser().parse_args(argv)
    try:
        merge_config = build_merge_config(args)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=err)
        return EXIT_TEMPLATE_ERROR

    log = MergeLog(debug_mode=merge_config.debug_mode)
    try:
        merger = DocumentMerger.from_path(args.template, merge_config, log)
    except (OSError, ValueError) as exc:
        print(f"error: invalid template {args.template}: {exc}", file=err)
        return EXIT_TEMPLATE_ERROR
    printed = _print_log(log, 0, out)

    if args.inspect:
        for preview in merger.preview():
            marker = " [title placeholder]" if preview.has_placeholder else ""
            print(f"{preview.kind}: {preview.part_name}{marker}", file=out)
            print(f"  {preview.text}", file=out)
        return EXIT_OK

    if not args.targets:
        print("error: no target documents given", file=err)
        return EXIT_FAILURES

    targets, read_failures = _read_targets(args.targets, log)
    if not args.no_log_file:
        config.cleanup_logs()
    batch = merger.process(targets, write_log=not args.no_log_file)
    batch.failures[:0] = read_failures
    batch.attempted += len(read_failures)
    _print_log(log, printed, out)

    output_dir = Path(args.output) if args.output else config.OUTPUT_DIR
    if batch.results:
        for path in write_outputs(batch.results, output_dir):
            print(f"wrote {path}", file=out)
        if args.bundle:
            print(f"wrote {write_bundle(batch.results, output_dir)}", file=out)
    for failure in batch.failures:
        print(f"failed: {failure.name}: {failure.message}", file=err)
    print(batch.summary(), file=out)
    if merger.last_log_path is not None:
        print(f"log: {merger.last_log_path}", file=out)
    return EXIT_OK if batch.all_succeeded else EXIT_FAILURES


if __name__ == "__main__":
    sys.exit(main())

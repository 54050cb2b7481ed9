"""
filefusion: concatenate a source tree into one LLM-ready document.

Overview
--------
Files under the given paths are selected with comma-separated glob patterns
(brace expansion supported, ``!`` negates), optionally cleaned of comments,
logging calls and trivial accessors, and written as a single XML, JSON or
YAML document::

    <documents>
      <document index="1"><source>...</source><document_content>...</document_content></document>
    </documents>

Usage
-----
Run `filefusion --help` for full options. Common examples:
    - Every Go file of the current directory into ./<dir name>.xml:
        filefusion --pattern "*.go"

    - Two trees, one JSON document:
        filefusion src lib --output context.json --pattern "*.{py,md}"

    - Split a mono-repo across outputs, files going to the closest output:
        filefusion . -o api/ctx.xml -o web/ctx.xml --pattern "*.ts"

    - Clean sources, log to a file:
        filefusion --clean --log-file mix.log
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from filefusion import __version__
from filefusion.cleaner import CleanerOptions
from filefusion.exceptions import ConfigurationError, FileFusionError, SizeLimitError
from filefusion.file_manipulation import format_size
from filefusion.logging import logger, setup_logging
from filefusion.mixer import Mixer
from filefusion.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from filefusion.mixer import MixReport, ScanResult

_CLEAN_TOGGLES = (
    ("remove_comments", "Remove comments."),
    ("preserve_doc_comments", "Keep documentation comments."),
    ("remove_imports", "Remove import statements."),
    ("remove_logging", "Remove logging statements."),
    ("remove_getters_setters", "Remove trivial getters and setters."),
    ("optimize_whitespace", "Trim and collapse whitespace."),
    ("remove_empty_lines", "Remove empty lines."),
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="filefusion",
        description="Concatenate files into a single XML, JSON or YAML document for LLMs.",
    )
    p.add_argument("paths", nargs="*", type=Path, help="Files or directories (default: .).")
    p.add_argument(
        "-o",
        "--output",
        action="append",
        type=Path,
        default=[],
        help="Output file (.xml, .json, .yaml, .yml), repeatable.",
    )
    p.add_argument("-p", "--pattern", type=str, default=None, help="Comma-separated include globs.")
    p.add_argument("-e", "--exclude", type=str, default=None, help="Comma-separated exclude globs.")
    p.add_argument("--max-file-size", type=str, default=None, help="Per-file limit, e.g. 10MB.")
    p.add_argument("--max-output-size", type=str, default=None, help="Output limit, e.g. 50MB.")
    p.add_argument(
        "--format",
        type=str,
        choices=["xml", "json", "yaml"],
        default=None,
        help="Force the output format.",
    )
    p.add_argument(
        "--no-follow-symlinks",
        dest="follow_symlinks",
        action="store_false",
        help="Do not follow symbolic links.",
    )
    p.add_argument("--dry-run", action="store_true", help="List matches, write nothing.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    clean = p.add_argument_group("cleaning")
    clean.add_argument("--clean", action="store_true", help="Clean sources before mixing.")
    defaults = CleanerOptions()
    for name, help_text in _CLEAN_TOGGLES:
        clean.add_argument(
            f"--clean-{name.replace('_', '-')}",
            dest=f"clean_{name}",
            action=argparse.BooleanOptionalAction,
            default=getattr(defaults, name),
            help=help_text,
        )
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    args = build_parser().parse_args(argv)
    values: dict[str, object] = {
        "input_paths": args.paths or [Path()],
        "outputs": args.output,
        "format": args.format,
        "follow_symlinks": args.follow_symlinks,
        "dry_run": args.dry_run,
        "log_file": args.log_file,
        "verbose": args.verbose,
        "clean": args.clean,
        "clean_options": CleanerOptions(
            **{name: getattr(args, f"clean_{name}") for name, _ in _CLEAN_TOGGLES},
        ),
    }
    # Flags left unset fall back to the environment defaults.
    for name in ("pattern", "exclude", "max_file_size", "max_output_size"):
        value = getattr(args, name)
        if value is not None:
            values[name] = value
    return Settings(**values)


def print_summary(label: str, scan: ScanResult, *, clean: bool) -> None:
    print(f"Processing {label}:")
    print(f"Found {len(scan.files)} files matching pattern")
    if clean:
        print(f"Uncompressed size: {format_size(scan.total_size)}")
        print("Final size (with --clean): will be calculated after processing")
    else:
        print(f"Total size: {format_size(scan.total_size)}")
    print("\nMatched files:")
    for file in scan.files:
        print(f"- {file.path} ({format_size(file.size)})")


def check_output_size(scan: ScanResult, limit: int) -> None:
    """Fail, listing every match, when the matched files exceed the output limit."""
    if scan.total_size <= limit:
        return
    print(
        f"\nTotal size of matched files ({format_size(scan.total_size)}) "
        f"exceeds maximum output size ({format_size(limit)}):",
    )
    for file in scan.files:
        print(f"- {file.path} ({format_size(file.size)})")
    msg = (
        f"output size ({format_size(scan.total_size)}) exceeds maximum allowed size "
        f"({format_size(limit)})"
    )
    raise SizeLimitError(msg, total=scan.total_size, limit=limit)


def print_reports(reports: Sequence[MixReport], *, clean: bool) -> None:
    for report in reports:
        if not report.written:
            print(f"Would write {report.output_path} ({report.documents} documents)")
            continue
        print(f"Wrote {report.output_path} ({report.documents} documents)")
        if clean:
            print(f"\nFinal size (with --clean): {format_size(report.size)}")


def run_batch(
    mixer: Mixer,
    label: str,
    inputs: Sequence[Path],
    outputs: Sequence[Path],
) -> list[MixReport]:
    settings = mixer.settings
    scan = mixer.scan(inputs)
    print_summary(label, scan, clean=settings.clean)
    if settings.dry_run:
        print("\nDry run complete. No files will be processed.")
        return []
    # Files over the per-file limit are dropped later and do not count here.
    check_output_size(scan.within(settings.max_file_size), settings.max_output_size)
    return mixer.mix(inputs, outputs, files=[f.path for f in scan.files])


def run(settings: Settings) -> list[MixReport]:
    """Run filefusion for ``settings``, printing progress to stdout.

    Raises:
        FileFusionError: on the first failure
    """
    for path in settings.input_paths:
        if not path.exists():
            raise ConfigurationError(f"input path does not exist: {path}")

    mixer = Mixer(settings)
    reports: list[MixReport] = []
    if settings.outputs:
        label = ", ".join(str(p) for p in settings.input_paths)
        reports.extend(run_batch(mixer, label, settings.input_paths, settings.outputs))
    else:
        for path in settings.input_paths:
            outputs = mixer.manager.derive_output_paths([path])
            reports.extend(run_batch(mixer, str(path), [path], outputs))
    print_reports(reports, clean=settings.clean)
    return reports


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except (FileFusionError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if settings.log_file or settings.verbose:
        setup_logging(
            settings.log_file or None,
            level=logging.DEBUG if settings.verbose else logging.INFO,
        )

    try:
        run(settings)
    except FileFusionError as e:
        logger.error("Run failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

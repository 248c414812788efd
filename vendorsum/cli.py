"""Command line entry point for vendorsum."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
import shtab

from . import __version__
from .configuration import ConfigurationBundle, Diagnostic, load_runtime_configuration
from .errors import ChecksumError
from .logging_utils import setup_logging
from .sync import ChecksumSynchronizer, SyncReport

logger = logging.getLogger("vendorsum.cli")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
DIAGNOSTIC_STYLES = {"info": "dim", "warning": "yellow", "error": "bold red"}


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: '{raw}'") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vendorsum",
        description="Update .cargo-checksum.json manifests of vendored packages.",
    )
    parser.add_argument("--version", action="version", version=f"vendorsum {__version__}")

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "-f",
        "--files-in-vendor-dir",
        "--files",
        dest="files",
        nargs="+",
        type=Path,
        metavar="FILES",
        help="Update checksum for specified vendored files (e.g. serde/src/lib.rs)",
    ).complete = shtab.FILE
    target.add_argument(
        "-p",
        "--packages",
        nargs="+",
        metavar="PKG",
        help="Run batch process for specified vendored packages",
    ).complete = shtab.DIRECTORY
    target.add_argument(
        "-a",
        "--all",
        action="store_true",
        help="Run batch process for all vendor packages",
    )
    target.add_argument(
        "--completion",
        choices=shtab.SUPPORTED_SHELLS,
        metavar="SHELL",
        help=f"Print a shell completion script ({', '.join(shtab.SUPPORTED_SHELLS)}) and exit; "
        "fish, elvish and PowerShell are not supported",
    )

    parser.add_argument(
        "--vendor",
        type=Path,
        metavar="DIR",
        help="Path of the vendor folder when not running from the repository directory "
        "(default: vendor)",
    ).complete = shtab.DIRECTORY
    parser.add_argument(
        "--ignore-missing",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Remove checksums of missing files instead of failing; "
        "--no-ignore-missing overrides sync.ignore_missing from the configuration",
    )
    parser.add_argument(
        "--num-threads",
        type=_positive_int,
        metavar="NUM",
        help="Limit the number of hashing threads (default: number of CPUs)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        action="append",
        default=[],
        metavar="FILE",
        help="Extra YAML configuration file; may be repeated",
    ).complete = shtab.FILE
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Override the configured log level")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not print the summary table")
    return parser


def render_report(console: Console, report: SyncReport) -> None:
    """Print a per-package summary of a finished run."""

    table = Table(title="Checksum Update", show_header=True, header_style="bold cyan")
    table.add_column("Package", style="green", no_wrap=True)
    table.add_column("Added", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Removed", justify="right")
    table.add_column("Unchanged", justify="right", style="dim")
    for name in sorted(report.packages):
        entry = report.packages[name]
        table.add_row(
            escape(name),
            str(entry.added),
            str(entry.updated),
            str(entry.removed),
            str(entry.unchanged),
        )
    console.print(table)
    console.print(report.summary())


def _print_diagnostics(console: Console, diagnostics: List[Diagnostic]) -> None:
    for diag in diagnostics:
        style = DIAGNOSTIC_STYLES.get(diag.level, "bold")
        console.print(f"[{style}]\\[config] {diag.level}:[/{style}] {escape(diag.message)}")


def _configure_logging(bundle: ConfigurationBundle, cli_level: Optional[str]) -> None:
    log_settings = bundle.section("logging")
    level = cli_level or log_settings.get("level") or "WARNING"
    log_file = log_settings.get("file")
    log_path = Path(log_file) if log_file else None
    if log_path is not None and not log_path.is_absolute():
        log_path = bundle.workspace_dir / log_path
    bundle.log_path = setup_logging(level, log_path, structured=bool(log_settings.get("structured")))
    if log_path is not None and bundle.log_path is None:
        bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"Log file '{log_path}' is not writable; logging to stderr only.",
                source=log_path,
            )
        )

    for diag in bundle.diagnostics:
        if diag.level == "warning":
            logger.warning("%s", diag.message)
        else:
            logger.debug("%s", diag.message)


def run(args: argparse.Namespace, console: Console, err_console: Console) -> int:
    bundle = load_runtime_configuration(config_files=args.config)
    if bundle.status == "invalid":
        _print_diagnostics(err_console, bundle.diagnostics)
        return 2
    _configure_logging(bundle, args.log_level)

    sync_settings = bundle.section("sync")
    vendor_dir = args.vendor or Path(bundle.section("vendor").get("dir") or "vendor")
    ignore_missing = (
        args.ignore_missing if args.ignore_missing is not None else bool(sync_settings.get("ignore_missing"))
    )
    num_threads = args.num_threads or sync_settings.get("num_threads")

    synchronizer = ChecksumSynchronizer(
        vendor_dir,
        ignore_missing=ignore_missing,
        num_threads=num_threads,
    )
    logger.info(
        "Using vendor directory %s with %d thread(s)", vendor_dir, synchronizer.num_threads
    )

    try:
        if args.files:
            report = synchronizer.update_files(args.files)
        elif args.all:
            report = synchronizer.update_all()
        else:
            report = synchronizer.update_packages(args.packages)
    except ChecksumError as exc:
        logger.debug("Checksum update failed during %s", exc.operation, exc_info=True)
        err_console.print(f"[bold red]error:[/bold red] {escape(str(exc))}")
        return 1

    logger.info("Done: %s", report.summary())
    if not args.quiet:
        render_report(console, report)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the ``vendorsum`` console script."""

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.completion:
        print(shtab.complete(parser, shell=args.completion), end="")
        return 0

    return run(args, Console(), Console(stderr=True))


__all__ = ["build_parser", "main", "render_report", "run"]

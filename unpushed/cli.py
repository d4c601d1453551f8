"""CLI entry point for unpushed."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional

from unpushed import __version__
from unpushed.log import LEVEL_CHOICES, resolve_level, setup_logging
from unpushed.pool import ConfigError, ScanRequest, run_scan
from unpushed.report import RepoVerdict, ScanResult

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def _reason_names(entry: RepoVerdict) -> str:
    return ",".join(r.value for r in entry.verdict.sorted_reasons())


def print_dirty(result: ScanResult, *, reasons: bool = False, missing_head: bool = False) -> None:
    """One repository path per line on stdout, nothing else."""
    entries = result.missing_head() if missing_head else result.dirty()
    for entry in entries:
        if reasons and entry.verdict.is_dirty:
            print(f"{entry.path}\t{_reason_names(entry)}")
        else:
            print(entry.path)


def print_summary(result: ScanResult, *, missing_head: bool = False) -> None:
    """Print a one-shot Rich summary to stdout."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.table import Table
    from rich.text import Text

    from unpushed.theme import (
        CYAN,
        GREEN,
        MUTED,
        RED,
        SURFACE,
        YELLOW,
        reasons_text,
        render_banner,
        verdict_text,
    )

    console = Console()
    console.print(render_banner())

    s = result.summary()
    overview = Text()
    overview.append(f"  {s.total}", style=f"bold {CYAN}")
    overview.append(" repos", style=MUTED)
    overview.append(f"    {s.clean}", style=f"bold {GREEN}")
    overview.append(" clean", style=MUTED)
    overview.append(f"    {s.dirty}", style=f"bold {YELLOW}")
    overview.append(" dirty", style=MUTED)
    overview.append(f"    {s.errored}", style=f"bold {RED}")
    overview.append(" errors", style=MUTED)
    if s.missing_head:
        overview.append(f"\n  {s.missing_head}", style=f"bold {MUTED}")
        overview.append(" without HEAD", style=MUTED)
    if s.skipped_dirs:
        overview.append(f"\n  {s.skipped_dirs}", style=f"bold {MUTED}")
        overview.append(" unreadable directories skipped", style=MUTED)
    if result.cancelled:
        overview.append(f"\n  interrupted, {s.discarded} repos not checked", style=f"bold {RED}")

    console.print(Panel(
        overview,
        title=f"[bold {GREEN}]{result.root}[/bold {GREEN}]",
        border_style=GREEN,
        padding=(1, 1),
    ))

    if missing_head:
        shown = result.missing_head()
    else:
        shown = [e for e in result.entries if not e.verdict.is_clean]
    if not shown:
        console.print(f"  [{GREEN}]Nothing to report.[/{GREEN}]")
        return

    table = Table(border_style=SURFACE, show_edge=True, pad_edge=True)
    table.add_column("Repo", style=f"bold {CYAN}", overflow="fold")
    table.add_column("Status", no_wrap=True)
    table.add_column("Reasons")
    for entry in shown:
        table.add_row(result.relpath(entry.path), verdict_text(entry.verdict), reasons_text(entry.verdict))
    console.print(table)


def print_json(result: ScanResult) -> None:
    """Dump the scan result as JSON to stdout."""
    print(json.dumps(result.to_dict(), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unpushed",
        description="Find git repositories with uncommitted, untracked, stashed or unpushed work.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory to search for git repos (default: current directory)",
    )
    parser.add_argument(
        "-t", "--threads",
        type=int,
        metavar="N",
        help="Number of worker threads (default: number of available CPUs)",
    )
    parser.add_argument(
        "-l", "--log-level",
        choices=LEVEL_CHOICES,
        type=str.lower,
        help="Log level for diagnostics on stderr (default: warn)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Same as --log-level info",
    )
    parser.add_argument(
        "--missing-head",
        action="store_true",
        help="List repos whose HEAD is unborn instead of dirty repos (default log level becomes error)",
    )
    parser.add_argument(
        "--reasons",
        action="store_true",
        help="Append the tab-separated dirty reasons to each listed path",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--summary",
        action="store_true",
        help="Print a table of every dirty or failing repo with counts",
    )
    mode.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the full scan result as JSON",
    )
    mode.add_argument(
        "--tui",
        action="store_true",
        help="Browse the results interactively",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Give up on a repository whose git calls take longer than this",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        metavar="N",
        help="Do not descend more than N directories below PATH",
    )
    parser.add_argument(
        "--hidden",
        action="store_true",
        help="Also search hidden directories",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"unpushed {__version__}",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the unpushed CLI."""
    args = build_parser().parse_args(argv)

    level = resolve_level(args.log_level, verbose=args.verbose, missing_head=args.missing_head)
    log = setup_logging(level)

    try:
        request = ScanRequest.create(
            args.path,
            args.threads,
            max_depth=args.max_depth,
            include_hidden=args.hidden,
            timeout=args.timeout,
        )
    except ConfigError as exc:
        log.error("%s", exc)
        return EXIT_CONFIG

    if args.tui:
        from unpushed.tui import run_tui

        setup_logging(level, tui=True)
        result = run_tui(request, missing_head=args.missing_head)
        return EXIT_INTERRUPTED if result is not None and result.cancelled else EXIT_OK

    result = run_scan(request, logger=log)

    if args.json_output:
        print_json(result)
    elif args.summary:
        print_summary(result, missing_head=args.missing_head)
    else:
        print_dirty(result, reasons=args.reasons, missing_head=args.missing_head)

    return EXIT_INTERRUPTED if result.cancelled else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

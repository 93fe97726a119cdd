"""CLI entry point for ``testsmith generate | batch | cache | coverage``."""

from __future__ import annotations

# Phase 1: Singleton logging, before any transitive litellm imports
from testsmith.logging_config import setup_logging

setup_logging()

import argparse  # noqa: E402
import asyncio  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402

from testsmith import __version__  # noqa: E402
from testsmith.config import Settings  # noqa: E402
from testsmith.constants import GenerationStatus  # noqa: E402
from testsmith.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
    set_level,
)
from testsmith.optimization.schemas import GenerationOutcome  # noqa: E402

# Phase 2: Clear litellm's duplicate handlers after all imports
cleanup_third_party_handlers()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_EXHAUSTED = 3


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"testsmith {__version__}")
        return

    if getattr(args, "verbose", False):
        set_level("DEBUG")

    match args.command:
        case "generate":
            sys.exit(_run_generate(args))
        case "batch":
            sys.exit(_run_batch(args))
        case "cache":
            sys.exit(_run_cache(args))
        case "coverage":
            sys.exit(_run_coverage(args))
        case _:
            parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="testsmith",
        description=(
            "Coverage-driven test generation: "
            "synthesizes tests until a coverage target is met."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--root",
        "-r",
        default=None,
        help="Project root (default: TESTSMITH_PROJECT_ROOT or .)",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    loop_opts = argparse.ArgumentParser(add_help=False)
    loop_opts.add_argument(
        "--target",
        "-t",
        type=float,
        default=None,
        help="Coverage target in (0, 1] (default: from settings)",
    )
    loop_opts.add_argument(
        "--max-iterations",
        "-n",
        type=int,
        default=None,
        help="Iteration limit (default: from settings)",
    )
    loop_opts.add_argument(
        "--force",
        action="store_true",
        help="Regenerate even when every operation already has a test",
    )

    sub = parser.add_subparsers(dest="command")

    generate = sub.add_parser(
        "generate",
        parents=[common, loop_opts],
        help="Generate tests for one source file",
    )
    generate.add_argument("path", type=str, help="Source file")

    batch = sub.add_parser(
        "batch",
        parents=[common, loop_opts],
        help="Generate tests for every source file under a directory",
    )
    batch.add_argument("directory", type=str, help="Directory to scan")
    batch.add_argument(
        "--concurrency",
        "-c",
        type=int,
        default=None,
        help="Units processed at once (default: from settings)",
    )

    cache = sub.add_parser(
        "cache",
        parents=[common],
        help="Inspect or reset the parse cache",
    )
    cache.add_argument(
        "action",
        choices=["stats", "clear", "invalidate"],
        help="Cache operation",
    )
    cache.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Source file (required for invalidate)",
    )

    coverage = sub.add_parser(
        "coverage",
        parents=[common],
        help="Summarize a coverage report",
    )
    coverage.add_argument(
        "report",
        type=str,
        help="coverage.py JSON, JaCoCo XML or Cobertura XML report",
    )
    coverage.add_argument(
        "--target",
        "-t",
        type=float,
        default=None,
        help="Show whether this target is met",
    )
    coverage.add_argument(
        "--unit",
        "-u",
        default=None,
        help="Restrict the summary to one unit (dotted name)",
    )

    return parser


def _settings(args: argparse.Namespace, **overrides: Any) -> Settings:
    if args.root is not None:
        overrides["project_root"] = Path(args.root).resolve()
    return Settings(**overrides)


def _run_generate(args: argparse.Namespace) -> int:
    """Execute the generate command."""
    from testsmith.observability import create_collector
    from testsmith.optimization.service import build_service
    from testsmith.resilience.errors import ParseFailure

    settings = _settings(args)
    path = Path(args.path)
    if not path.is_absolute():
        path = Path.cwd() / path
    if not path.is_file():
        print(f"Error: {path} does not exist", file=sys.stderr)
        return EXIT_USAGE

    service = build_service(settings)
    try:
        outcome = asyncio.run(
            service.generate(
                path,
                args.target,
                args.max_iterations,
                force=args.force,
                collector=create_collector(console=args.verbose),
            )
        )
    except ParseFailure as exc:
        print(f"Error: cannot parse {path}: {exc}", file=sys.stderr)
        return EXIT_FAILED

    print(format_outcome(outcome))
    return exit_code_for(outcome.status)


def _run_batch(args: argparse.Namespace) -> int:
    """Execute the batch command."""
    from testsmith.discovery import discover_units
    from testsmith.observability import create_collector
    from testsmith.optimization.service import build_service

    overrides: dict[str, Any] = {}
    if args.concurrency is not None:
        overrides["max_concurrency"] = args.concurrency
    settings = _settings(args, **overrides)

    directory = Path(args.directory).resolve()
    if not directory.is_dir():
        print(f"Error: {directory} is not a directory", file=sys.stderr)
        return EXIT_USAGE

    units = discover_units(directory, settings)
    if not units:
        print(f"No source files found under {directory}")
        return EXIT_OK
    print(f"Generating tests for {len(units)} unit(s)")

    service = build_service(settings)
    outcomes = asyncio.run(
        service.generate_many(
            units,
            args.target,
            args.max_iterations,
            force=args.force,
            collector=create_collector(console=args.verbose),
        )
    )
    for outcome in outcomes:
        print(format_outcome(outcome))
    return max((exit_code_for(o.status) for o in outcomes), default=EXIT_OK)


def _run_cache(args: argparse.Namespace) -> int:
    """Execute the cache command."""
    from testsmith.cache.parse_cache import build_parse_cache

    settings = _settings(args)
    cache = build_parse_cache(settings)
    match args.action:
        case "stats":
            stats = cache.statistics()
            print(f"Location: {stats.location}")
            print(f"Entries:  {stats.entry_count}")
            print(f"Size:     {stats.total_size_mb:.2f} MB")
        case "clear":
            cache.clear()
            print("Cache cleared")
        case "invalidate":
            if args.path is None:
                print("Error: invalidate needs a source path", file=sys.stderr)
                return EXIT_USAGE
            cache.invalidate(Path(args.path).resolve())
            print(f"Invalidated {args.path}")
    return EXIT_OK


def _run_coverage(args: argparse.Namespace) -> int:
    """Execute the coverage command."""
    from testsmith.coverage.loader import CoverageReportLoader
    from testsmith.coverage.model import format_report, restrict_to_unit

    settings = _settings(args)
    report = Path(args.report)
    if not report.exists():
        print(f"Error: {report} does not exist", file=sys.stderr)
        return EXIT_USAGE

    snapshot = CoverageReportLoader(settings.source_roots).load(report)
    if args.unit:
        snapshot = restrict_to_unit(snapshot, args.unit)
    print(format_report(snapshot, args.target))
    return EXIT_OK


def exit_code_for(status: GenerationStatus) -> int:
    match status:
        case GenerationStatus.SUCCESS:
            return EXIT_OK
        case GenerationStatus.EXHAUSTED:
            return EXIT_EXHAUSTED
        case GenerationStatus.FAILED:
            return EXIT_FAILED


def format_outcome(outcome: GenerationOutcome) -> str:
    """One status line plus details, by terminal status."""
    head = f"[{outcome.status.upper()}] {outcome.unit_name}"
    snap = outcome.snapshot
    match outcome.status:
        case GenerationStatus.SUCCESS:
            if outcome.iterations == 0:
                detail = "all operations already tested"
            else:
                detail = (
                    f"line {snap.line_rate:.1%}, branch {snap.branch_rate:.1%} "
                    f"after {outcome.iterations} iteration(s)"
                )
        case GenerationStatus.EXHAUSTED:
            detail = (
                f"best {outcome.best_overall_rate:.1%}, final line "
                f"{snap.line_rate:.1%}, branch {snap.branch_rate:.1%} "
                f"after {outcome.iterations} iteration(s)"
            )
        case GenerationStatus.FAILED:
            kind = outcome.error_kind.value if outcome.error_kind else "error"
            detail = f"{kind}: {outcome.error}"
    lines = [f"{head}: {detail}"]
    if outcome.artifact_path is not None and outcome.artifact is not None:
        lines.append(f"  -> {outcome.artifact_path}")
    return "\n".join(lines)


if __name__ == "__main__":
    main()

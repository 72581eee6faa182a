#!/usr/bin/env python3
"""
checker/cli.py — Command-line entry point for a one-shot fleet health run.

Loads the check document, applies --on selectors, runs every selected check
concurrently and prints status transitions as they happen, then a summary.

Usage:
    python -m checker.cli checks.json
    python -m checker.cli checks.yml --on role:web --on rack:/^r2/ --verbose
    generate-checks | python -m checker.cli -

Exit codes:
    0  every selected check succeeded (including when none were selected)
    1  at least one check failed or was cancelled
    2  the check document, selectors or settings are invalid
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import TYPE_CHECKING

from pydantic import ValidationError

from checker.definitions import CheckDefinition, ConfigError, load_checks
from checker.orchestrator import RunResult, run_checks
from checker.report import write_report
from checker.runner import StatusEvent
from checker.select import Selector, parse_selectors
from config.settings import Settings, load_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

EXIT_CONFIG_ERROR = 2


def _indent(text: str, prefix: str = "    ") -> str:
    return "\n".join(f"{prefix}{line}" for line in text.splitlines())


def format_event(event: StatusEvent, verbose: bool = False) -> str:
    """One status line, plus indented reason/detail lines the way operators read them."""
    line = str(event)
    if verbose and event.detail:
        line += "\n" + _indent(event.detail)
    return line


def make_printer(verbose: bool = False):
    def on_event(event: StatusEvent) -> None:
        print(format_event(event, verbose), flush=True)

    return on_event


def _print_summary(result: RunResult, selector: Selector) -> None:
    print()
    print("╔══════════════════════════════════════════════════════════╗")
    print(f"  Health checks complete: {result.succeeded_count}/{result.total} passed")
    if selector:
        print(f"  Selector: {selector}")
    if result.total == 0:
        print("  No checks selected — nothing to do")
    elif result.passed:
        print("  All checks passed ✓")
    else:
        print(f"  FAILED: {result.failed_count} failed, {result.cancelled_count} cancelled")
        for name, reason in result.failures:
            print(f"    - {name}: {reason}")
    print(f"  Elapsed: {result.duration_seconds:.1f}s")
    print("╚══════════════════════════════════════════════════════════╝")


async def _run_with_signals(
    definitions: list[CheckDefinition],
    selector: Selector,
    cfg: Settings,
    verbose: bool,
) -> RunResult:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers.
            pass
    try:
        return await run_checks(
            definitions,
            selector,
            cfg,
            on_event=make_printer(verbose),
            cancel=cancel,
        )
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run deployment health checks (http, dns, ssh) concurrently with retries."
    )
    parser.add_argument("config_file", help="Check document (JSON or YAML); '-' reads stdin.")
    parser.add_argument(
        "--on",
        dest="targets",
        action="append",
        metavar="LABEL:VALUE",
        help="Only run checks whose labels match (repeatable; all terms must match). "
        "Values may be comma lists or /regex/.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show probe output (HTTP status, resolved addresses, ssh stdout/stderr).",
    )
    parser.add_argument("--report", metavar="PATH", help="Write a JSON run report to PATH.")
    parser.add_argument("--env-file", default=".env", help="Settings env file (default: .env).")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_settings(args.env_file)
    except ValidationError as exc:
        print("ERROR: invalid settings", file=sys.stderr)
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else cfg.log_level_number,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        selector = parse_selectors(args.targets)
        definitions = load_checks(args.config_file, cfg)
    except FileNotFoundError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except ConfigError as exc:
        print("ERROR: invalid check configuration", file=sys.stderr)
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        result = asyncio.run(_run_with_signals(definitions, selector, cfg, args.verbose))
    except ConfigError as exc:
        print("ERROR: invalid check configuration", file=sys.stderr)
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    _print_summary(result, selector)

    report_path = args.report or cfg.REPORT_PATH
    if report_path:
        written = write_report(result, report_path)
        print(f"  report: {written}")

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())

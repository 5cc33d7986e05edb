#!/usr/bin/env python3
"""
litverify CLI -- Stable entry point for the literate-example verifier.

Usage:
  litverify verify <path> [--workers N] [--timeout-ms M] [--fail-fast]
                          [--report FILE] [--config FILE] [--include GLOB]
  litverify list <path> [--config FILE] [--include GLOB]

Exit codes:
  0  every example passed
  1  at least one example failed (or the run was cancelled)
  2  structural error in a document, bad configuration, or missing toolchain
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from kernel.console import configure, console
from modules.reporter.core import EXIT_FAILURES, EXIT_OK, EXIT_STRUCTURAL

if TYPE_CHECKING:
    from domain.models import Block, ComparisonVerdict, Document, Report, Settings

logger = logging.getLogger("litverify")

# Bad configuration and missing toolchains exit like structural errors
EXIT_ERROR = EXIT_STRUCTURAL

# ---------------------------------------------------------------------------
# CLI commands
# ---------------------------------------------------------------------------


def cmd_verify(args: argparse.Namespace) -> int:
    """Extract, run, and check every example under the given path."""
    import wiring
    from kernel.loop import run_verification
    from modules.reporter.core import exit_code
    from modules.runner.core import ToolchainMissingError

    settings = _load_settings(args)
    if settings is None:
        return EXIT_ERROR

    console.step(1, 3, "Extracting blocks...")
    try:
        documents = wiring.load_documents(Path(args.path), settings)
    except FileNotFoundError as exc:
        console.error(str(exc))
        return EXIT_ERROR
    except KeyboardInterrupt:
        console.warning("Interrupted.")
        return EXIT_FAILURES
    _describe_documents(documents)

    console.step(2, 3, f"Running examples ({settings.workers} worker(s))...")
    ctx = wiring.build_context(settings)

    def on_verdict(block: Block, verdict: ComparisonVerdict) -> None:
        if args.quiet:
            return
        if args.verbose or verdict.failed:
            console.block_result(
                block.id, block.label or "", verdict.status.value, verdict.message
            )

    try:
        report = run_verification(documents, ctx, on_verdict=on_verdict)
    except ToolchainMissingError as exc:
        console.error(str(exc))
        console.info("Install the toolchain or override it in litverify.yaml.")
        return EXIT_ERROR

    console.step(3, 3, "Report")
    render_report(report)

    if args.report:
        saved = wiring.save_report(report, Path(args.report))
        console.info(f"JSON report: {saved}")

    return exit_code(report)


def cmd_list(args: argparse.Namespace) -> int:
    """Show every extracted block without running anything."""
    import wiring

    settings = _load_settings(args)
    if settings is None:
        return EXIT_ERROR
    try:
        documents = wiring.load_documents(Path(args.path), settings)
    except FileNotFoundError as exc:
        console.error(str(exc))
        return EXIT_ERROR

    rows: list[list[str]] = []
    for doc in documents:
        for block in doc.blocks:
            rows.append(
                [
                    block.id,
                    str(block.line),
                    block.language or "--",
                    block.label or "--",
                    block.package or "--",
                    block.expected.mode.value if block.expected else "--",
                    "run" if block.executable else f"skip: {block.skip_reason}",
                ]
            )
    console.table(
        ["Block", "Line", "Lang", "Label", "Package", "Output", "Action"],
        rows,
        title="Blocks",
    )
    _describe_documents(documents)
    return EXIT_ERROR if any(doc.errors for doc in documents) else EXIT_OK


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_report(report: Report) -> None:
    """Print the human-readable summary of a run."""
    rows = [
        [
            doc.path,
            str(doc.passed),
            str(doc.failed),
            str(doc.skipped),
            str(len(doc.errors)),
        ]
        for doc in report.documents
    ]
    console.table(
        ["Document", "Passed", "Failed", "Skipped", "Errors"], rows, title="Documents"
    )

    for err in report.structural_errors:
        console.error(f"{err.document}:{err.line}: {err.message}")

    for item in report.failures:
        block, verdict = item.block, item.verdict
        kind = verdict.kind.value if verdict.kind else "fail"
        console.error(f"{block.document}:{block.line} [{kind}] {block.label or block.id}")
        console.step_detail(verdict.message)
        if verdict.diff:
            console.diff(verdict.diff)

    console.kv(
        {
            "Blocks": str(report.total),
            "Passed": str(report.passed),
            "Failed": str(report.failed),
            "Skipped": str(report.skipped),
            "Structural errors": str(len(report.structural_errors)),
            "Elapsed": f"{report.elapsed_seconds:.1f}s",
        },
        title="Summary",
    )

    if report.cancelled:
        console.warning(f"Run cancelled; {len(report.not_run)} block(s) not run.")
    elif report.failed or report.structural_errors:
        console.error("Verification failed.")
    else:
        console.success("All examples verified.")


def _describe_documents(documents: list[Document]) -> None:
    blocks = sum(len(d.blocks) for d in documents)
    runnable = sum(1 for d in documents for b in d.blocks if b.executable)
    errors = sum(len(d.errors) for d in documents)
    console.step_detail(
        f"{len(documents)} document(s), {blocks} block(s), {runnable} runnable, "
        f"{errors} structural error(s)"
    )


def _load_settings(args: argparse.Namespace) -> Settings | None:
    from kernel.config import ConfigError, load_settings

    overrides = {
        "workers": getattr(args, "workers", None),
        "timeout_ms": getattr(args, "timeout_ms", None),
        "fail_fast": True if getattr(args, "fail_fast", False) else None,
        "include": args.include or None,
    }
    try:
        return load_settings(
            Path(args.config) if args.config else None,
            overrides=overrides,
        )
    except ConfigError as exc:
        console.error(f"Configuration error: {exc}")
        return None


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="litverify",
        description="litverify -- check that a book's code examples run as documented",
    )
    sub = parser.add_subparsers(dest="command")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("path", help="Markdown file or directory searched recursively")
    common.add_argument(
        "--config", default=None, help="YAML config file (default: ./litverify.yaml)"
    )
    common.add_argument(
        "--include",
        action="append",
        default=[],
        metavar="GLOB",
        help="Only documents matching this pattern (repeatable)",
    )
    common.add_argument("--plain", action="store_true", help="Plain-text output, no colours")
    common.add_argument("--log-file", default=None, help="Write the debug log to this file")
    common.add_argument("--verbose", action="store_true", help="Show every verdict; debug logging")
    common.add_argument("--quiet", action="store_true", help="Only show the final summary")

    # litverify verify
    verify_p = sub.add_parser("verify", parents=[common], help="Run and check every example")
    verify_p.add_argument(
        "--workers", type=int, default=None, help="Worker pool size (default: CPU count)"
    )
    verify_p.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Per-block time limit in milliseconds (default: 10000)",
    )
    verify_p.add_argument("--fail-fast", action="store_true", help="Stop at the first failure")
    verify_p.add_argument("--report", default=None, help="Write a JSON report to this file")

    # litverify list
    sub.add_parser("list", parents=[common], help="List extracted blocks without running them")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_ERROR

    # -- Console configuration ----------------------------------------------
    configure(backend="plain" if args.plain else "auto")

    # -- Logging configuration ----------------------------------------------
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    elif args.log_file:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        filename=args.log_file,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        level=level,
    )

    if args.command == "verify":
        return cmd_verify(args)
    return cmd_list(args)


if __name__ == "__main__":
    sys.exit(main())

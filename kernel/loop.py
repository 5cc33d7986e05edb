"""
kernel/loop.py -- Verification run loop.

Judges non-executable blocks directly, plans run units, and executes the
units on a bounded thread pool. Each unit runs its blocks sequentially, so
blocks sharing a package keep declaration order whatever the pool size;
the report is ordered afterwards and never depends on completion order.

Cancellation (fail-fast, Ctrl-C, or a fatal toolchain error) sets the
context's cancel token: queued units return immediately, running
processes are killed, and verdicts already recorded stay in the report.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

from domain.models import ExecutionStatus
from modules.comparator.core import compare
from modules.reporter.core import aggregate
from modules.runner.core import check_toolchains, plan_units, run_unit

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from domain.models import (
        Block,
        ComparisonVerdict,
        Document,
        ExecutionResult,
        Report,
        RunUnit,
    )
    from kernel.context import RunContext

    VerdictCallback = Callable[[Block, ComparisonVerdict], None]

logger = logging.getLogger("litverify.loop")


def run_verification(
    documents: Iterable[Document],
    ctx: RunContext,
    *,
    on_verdict: VerdictCallback | None = None,
) -> Report:
    """Verify every block of the given documents and return the report.

    Args:
        documents: Extracted documents.
        ctx: Per-run context (settings, process port, cancel token).
        on_verdict: Called from worker threads as each verdict is made.

    Raises:
        ToolchainMissingError: if a needed compiler/interpreter is missing.
    """
    start = time.monotonic()
    docs = list(documents)

    for doc in docs:
        for block in doc.blocks:
            if not block.executable:
                _record(ctx, block, None, on_verdict)

    units = plan_units(docs)
    check_toolchains(units, ctx.settings, ctx.process)
    logger.info(
        "Running %d unit(s) on %d worker(s), timeout %dms",
        len(units),
        ctx.settings.workers,
        ctx.settings.timeout_ms,
    )

    fatal: BaseException | None = None
    pool = ThreadPoolExecutor(max_workers=ctx.settings.workers, thread_name_prefix="litverify")
    try:
        futures = [pool.submit(_run_one, unit, ctx, on_verdict) for unit in units]
        for future in as_completed(futures):
            exc = future.exception()
            if exc is not None and fatal is None:
                logger.error("Aborting run: %s", exc)
                fatal = exc
                ctx.cancel.set()
    except KeyboardInterrupt:
        logger.warning("Interrupted; cancelling in-flight blocks")
        ctx.cancel.set()
    finally:
        pool.shutdown(wait=True, cancel_futures=ctx.cancelled)

    if fatal is not None:
        raise fatal

    report = aggregate(
        docs,
        ctx.verdicts(),
        cancelled=ctx.cancelled,
        elapsed_seconds=time.monotonic() - start,
    )
    logger.info(
        "Run finished: %d passed, %d failed, %d skipped%s",
        report.passed,
        report.failed,
        report.skipped,
        " (cancelled)" if report.cancelled else "",
    )
    return report


def _run_one(unit: RunUnit, ctx: RunContext, on_verdict: VerdictCallback | None) -> None:
    """Worker body: run one unit and judge each of its blocks."""
    results = run_unit(unit, ctx.settings, ctx.process, ctx.cancel)
    for block, result in zip(unit.blocks, results, strict=True):
        if result.status is ExecutionStatus.CANCELLED:
            continue
        verdict = _record(ctx, block, result, on_verdict)
        if verdict.failed and ctx.settings.fail_fast and not ctx.cancelled:
            logger.info("Fail-fast: %s failed, cancelling run", block.id)
            ctx.cancel.set()


def _record(
    ctx: RunContext,
    block: Block,
    result: ExecutionResult | None,
    on_verdict: VerdictCallback | None,
) -> ComparisonVerdict:
    verdict = compare(block, result, ctx.settings.assertion_marker)
    ctx.record(result, verdict)
    if on_verdict is not None:
        on_verdict(block, verdict)
    return verdict

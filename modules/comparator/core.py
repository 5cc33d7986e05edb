"""Comparator module -- judge a block's execution against its documented output.

Pure function: no I/O, no logging side effects beyond debug traces.
"""

from __future__ import annotations

import difflib
import logging
from typing import TYPE_CHECKING

from domain.models import (
    ComparisonVerdict,
    ErrorKind,
    ExecutionStatus,
    OutputMode,
    VerdictStatus,
)

if TYPE_CHECKING:
    from domain.models import Block, ExecutionResult

logger = logging.getLogger("litverify.comparator")

_FAILURE_KINDS = {
    ExecutionStatus.COMPILE_FAILURE: ErrorKind.COMPILE,
    ExecutionStatus.RUNTIME_FAILURE: ErrorKind.RUNTIME,
    ExecutionStatus.TIMEOUT: ErrorKind.TIMEOUT,
}


def compare(
    block: Block,
    result: ExecutionResult | None,
    assertion_marker: str = "[Error]:",
) -> ComparisonVerdict:
    """Produce the verdict for one block.

    Args:
        block: The extracted block, with its expected output if any.
        result: Its execution result; None for blocks that were never run.
        assertion_marker: Text the book's assertion helpers print on failure.

    Returns:
        A ComparisonVerdict. Mismatches carry a unified line diff.
    """
    if not block.executable or result is None or result.status is ExecutionStatus.SKIPPED:
        return ComparisonVerdict(
            block_id=block.id,
            status=VerdictStatus.SKIPPED,
            message=block.skip_reason or "not executed",
        )

    if result.status is ExecutionStatus.CANCELLED:
        msg = f"{block.id} was cancelled and has no verdict"
        raise ValueError(msg)

    kind = _FAILURE_KINDS.get(result.status)

    if block.expects_failure:
        if kind is not None:
            return ComparisonVerdict(
                block_id=block.id,
                status=VerdictStatus.EXPECTED_FAILURE,
                kind=kind,
                message=_failure_message(kind, result),
            )
        return ComparisonVerdict(
            block_id=block.id,
            status=VerdictStatus.FAIL,
            kind=ErrorKind.UNEXPECTED_PASS,
            message="expected to fail, but ran successfully",
        )

    if kind is not None:
        return ComparisonVerdict(
            block_id=block.id,
            status=VerdictStatus.FAIL,
            kind=kind,
            message=_failure_message(kind, result),
        )

    return _compare_output(block, result, assertion_marker)


def normalize(text: str) -> str:
    """Normalize line endings and drop trailing newlines."""
    return text.replace("\r\n", "\n").replace("\r", "\n").rstrip("\n")


def line_diff(expected: str, actual: str) -> str:
    """Return a unified line diff of expected vs. actual output."""
    return "\n".join(
        difflib.unified_diff(
            expected.splitlines(),
            actual.splitlines(),
            fromfile="expected",
            tofile="actual",
            lineterm="",
        )
    )


def _compare_output(
    block: Block,
    result: ExecutionResult,
    assertion_marker: str,
) -> ComparisonVerdict:
    actual = normalize(result.stdout)
    expected = block.expected

    # Marker lines the book documents as output are part of the example.
    documented = set(normalize(expected.text).splitlines()) if expected is not None else set()
    failed_lines = [
        line
        for line in actual.splitlines()
        if assertion_marker and assertion_marker in line and line not in documented
    ]
    if failed_lines:
        return ComparisonVerdict(
            block_id=block.id,
            status=VerdictStatus.FAIL,
            kind=ErrorKind.MISMATCH,
            message=f"assertion failed: {failed_lines[0].strip()}",
        )

    if expected is None:
        return ComparisonVerdict(block_id=block.id, status=VerdictStatus.PASS)

    if expected.mode is OutputMode.SAMPLE:
        # Sample output is nondeterministic; only its shape is checked.
        if actual or not normalize(expected.text):
            return ComparisonVerdict(block_id=block.id, status=VerdictStatus.PASS)
        return ComparisonVerdict(
            block_id=block.id,
            status=VerdictStatus.FAIL,
            kind=ErrorKind.MISMATCH,
            message="sample output documented but nothing was printed",
        )

    wanted = normalize(expected.text)
    if actual == wanted:
        return ComparisonVerdict(block_id=block.id, status=VerdictStatus.PASS)

    logger.debug("%s: output mismatch", block.id)
    return ComparisonVerdict(
        block_id=block.id,
        status=VerdictStatus.FAIL,
        kind=ErrorKind.MISMATCH,
        message="output does not match",
        diff=line_diff(wanted, actual),
    )


def _failure_message(kind: ErrorKind, result: ExecutionResult) -> str:
    if kind is ErrorKind.TIMEOUT:
        return "timed out; process was killed"
    if kind is ErrorKind.COMPILE:
        first = next((ln for ln in result.diagnostics.splitlines() if ln.strip()), "")
        if not first and result.error is not None:
            first = str(result.error)
        return f"compilation failed: {first}" if first else "compilation failed"
    if result.error is not None:
        return f"threw {result.error}"
    return f"exited with status {result.exit_code}"

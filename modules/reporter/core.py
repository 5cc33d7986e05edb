"""Reporter module -- aggregate verdicts into a deterministic run report.

Groups verdicts by document, orders everything by document path and block
position (never by execution order), computes the process exit status, and
serializes the report as JSON for CI.

This module depends only on domain/ types and has zero external imports beyond stdlib.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from domain.models import (
    BlockVerdict,
    DocumentReport,
    ErrorKind,
    Report,
    VerdictStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from domain.models import ComparisonVerdict, Document
    from domain.ports import FileSystemPort

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_STRUCTURAL = 2

REPORT_VERSION = 1


class _EnumEncoder(json.JSONEncoder):
    """JSON encoder that serializes Enum values as their .value strings."""

    def default(self, o: object) -> str:
        """Serialize enum members to their value string."""
        if isinstance(o, (ErrorKind, VerdictStatus)):
            return str(o.value)
        result: str = super().default(o)
        return result


def aggregate(
    documents: Iterable[Document],
    verdicts: Mapping[str, ComparisonVerdict],
    *,
    cancelled: bool = False,
    elapsed_seconds: float = 0.0,
) -> Report:
    """Build the run report.

    Blocks without a verdict are only legal in a cancelled run; they are
    listed in ``not_run``.

    Raises:
        ValueError: if a block lacks a verdict in a run that was not cancelled.
    """
    doc_reports: list[DocumentReport] = []
    not_run: list[str] = []

    for doc in sorted(documents, key=lambda d: d.path):
        judged: list[BlockVerdict] = []
        for block in sorted(doc.blocks, key=lambda b: b.index):
            verdict = verdicts.get(block.id)
            if verdict is None:
                if not cancelled:
                    msg = f"no verdict for {block.id}"
                    raise ValueError(msg)
                not_run.append(block.id)
                continue
            judged.append(BlockVerdict(block=block, verdict=verdict))
        errors = tuple(sorted(doc.errors, key=lambda e: e.line))
        doc_reports.append(DocumentReport(path=doc.path, verdicts=tuple(judged), errors=errors))

    return Report(
        documents=tuple(doc_reports),
        cancelled=cancelled,
        not_run=tuple(not_run),
        elapsed_seconds=elapsed_seconds,
    )


def exit_code(report: Report) -> int:
    """Return the process exit status for a report.

    2 for structural errors, 1 for any failed verdict or a cancelled run,
    0 when everything passed.
    """
    if report.structural_errors:
        return EXIT_STRUCTURAL
    if report.failed or report.cancelled:
        return EXIT_FAILURES
    return EXIT_OK


def report_to_dict(report: Report) -> dict[str, Any]:
    """Convert a Report to a JSON-serializable dict.

    Timing is left out so an unchanged corpus yields an identical report.
    """
    return {
        "version": REPORT_VERSION,
        "summary": {
            "total": report.total,
            "passed": report.passed,
            "failed": report.failed,
            "skipped": report.skipped,
            "structural_errors": len(report.structural_errors),
            "cancelled": report.cancelled,
            "not_run": list(report.not_run),
            "exit_code": exit_code(report),
        },
        "documents": [
            {
                "path": doc.path,
                "passed": doc.passed,
                "failed": doc.failed,
                "skipped": doc.skipped,
                "structural_errors": [
                    {"line": err.line, "message": err.message} for err in doc.errors
                ],
            }
            for doc in report.documents
        ],
        "failures": [_failure_to_dict(item) for item in report.failures],
    }


def _failure_to_dict(item: BlockVerdict) -> dict[str, Any]:
    return {
        "document": item.block.document,
        "block": item.block.index,
        "line": item.block.line,
        "label": item.block.label,
        "kind": item.verdict.kind,
        "message": item.verdict.message,
        "diff": item.verdict.diff,
    }


def render_json(report: Report) -> str:
    """Serialize a report as stable, indented JSON."""
    data = report_to_dict(report)
    return json.dumps(data, indent=2, ensure_ascii=False, cls=_EnumEncoder) + "\n"


class Reporter:
    """Persists machine-readable reports.

    Constructor-injected FileSystemPort handles all file I/O.
    """

    def __init__(self, fs: FileSystemPort) -> None:
        self._fs = fs

    def save_report(self, report: Report, path: str) -> str:
        """Write the JSON report to `path` and return the path."""
        self._fs.write_file(path, render_json(report))
        return path

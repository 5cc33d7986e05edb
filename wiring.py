"""
wiring.py -- Composition root.

Connects the concrete adapters (local filesystem, subprocess runner) to the
pipeline modules (extractor, runner, comparator, reporter) and the kernel
run loop. The CLI only talks to this file.

Pipeline:
  discover_documents -> load_document -> run_verification -> save_report
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from adapters.local_fs import LocalFileSystem
from adapters.subprocess_runner import SubprocessRunner
from kernel.context import RunContext
from kernel.loop import run_verification
from modules.extractor.core import discover_documents, load_document
from modules.reporter.core import Reporter

if TYPE_CHECKING:
    from domain.models import Document, Report, Settings
    from domain.ports import ProcessPort
    from kernel.loop import VerdictCallback

logger = logging.getLogger("litverify.wiring")


def filesystem_for(target: Path) -> tuple[LocalFileSystem, str]:
    """Return a filesystem rooted at the scan directory and the root to search.

    For a directory the filesystem is rooted at the directory itself; for a
    single file it is rooted at the file's parent, so document paths stay
    short and stable either way.

    Raises:
        FileNotFoundError: if the target does not exist.
    """
    parent = LocalFileSystem(str(target.parent))
    if parent.is_directory(target.name):
        return LocalFileSystem(str(target)), "."
    if parent.file_exists(target.name):
        return parent, target.name
    msg = f"no such file or directory: {target}"
    raise FileNotFoundError(msg)


def load_documents(target: Path, settings: Settings) -> list[Document]:
    """Discover and extract every markdown document under target."""
    fs, root = filesystem_for(target)
    paths = discover_documents(fs, root, settings.include)
    return [load_document(fs, path, settings) for path in paths]


def build_context(settings: Settings, process: ProcessPort | None = None) -> RunContext:
    """Create the per-run context with the real subprocess runner by default."""
    return RunContext(settings=settings, process=process or SubprocessRunner())


def verify(
    target: Path,
    settings: Settings,
    *,
    ctx: RunContext | None = None,
    on_verdict: VerdictCallback | None = None,
) -> Report:
    """Extract, run, compare, and aggregate everything under target."""
    documents = load_documents(target, settings)
    context = ctx or build_context(settings)
    return run_verification(documents, context, on_verdict=on_verdict)


def save_report(report: Report, path: Path) -> str:
    """Write the machine-readable report to path."""
    fs = LocalFileSystem(str(path.parent))
    saved = Reporter(fs).save_report(report, path.name)
    logger.info("Report written to %s", path)
    return str(path.parent / saved)

"""Runner module -- compile and run code blocks in ephemeral workspaces.

Blocks are grouped into run units: the blocks of one document that declare
the same package are compiled together and run in declaration order; every
other block is a unit on its own. Each unit gets a fresh temporary
workspace that is deleted afterwards.

Per-block failures (compile errors, exceptions, timeouts) are returned as
ExecutionResult data. Only a missing toolchain raises, since then no block
can be verified at all.
"""

from __future__ import annotations

import logging
import os
import re
import sys
import tempfile
from dataclasses import replace
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from domain.models import (
    FLAG_COMPILE_ONLY,
    ExecutionResult,
    ExecutionStatus,
    RunUnit,
    ThrownError,
)

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterable, Sequence

    from domain.models import Block, Document, ProcessOutcome, Settings, Toolchain
    from domain.ports import ProcessPort

logger = logging.getLogger("litverify.runner")

# JVM: Exception in thread "main" java.lang.IllegalStateException: boom
_JVM_ERROR_RE = re.compile(
    r'^Exception in thread "[^"]*" (?P<kind>[\w.$]+)(?::\s*(?P<message>.*))?$',
    re.MULTILINE,
)
# Python traceback tail: ValueError: boom
_PY_ERROR_RE = re.compile(
    r"^(?P<kind>[A-Za-z_][\w.]*(?:Error|Exception|Exit|Interrupt))(?::\s*(?P<message>.*))?$",
    re.MULTILINE,
)

_DIAGNOSTIC_LIMIT = 4000


class ToolchainMissingError(Exception):
    """A compiler or interpreter needed by the corpus is not installed."""

    def __init__(self, program: str, language: str) -> None:
        super().__init__(f"'{program}' not found on PATH (needed for {language} blocks)")
        self.program = program
        self.language = language


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def plan_units(documents: Iterable[Document]) -> list[RunUnit]:
    """Group executable blocks into run units.

    Blocks of one document sharing a declared package (and not expected to
    fail) form a single unit in declaration order. Units are ordered by
    document path, then first block index.
    """
    units: list[RunUnit] = []
    for doc in sorted(documents, key=lambda d: d.path):
        # (language, package) -> position of that group's unit in `units`
        groups: dict[tuple[str, str], int] = {}
        for block in doc.blocks:
            if not block.executable:
                continue
            if block.package is None or block.expects_failure:
                units.append(RunUnit(document=doc.path, language=block.language, blocks=(block,)))
                continue
            key = (block.language, block.package)
            if key in groups:
                pos = groups[key]
                units[pos] = replace(units[pos], blocks=(*units[pos].blocks, block))
            else:
                groups[key] = len(units)
                units.append(
                    RunUnit(
                        document=doc.path,
                        language=block.language,
                        blocks=(block,),
                        package=block.package,
                    )
                )
    logger.debug("Planned %d run unit(s)", len(units))
    return units


def check_toolchains(units: Iterable[RunUnit], settings: Settings, process: ProcessPort) -> None:
    """Fail fast when a toolchain needed by some unit is not installed.

    Raises:
        ToolchainMissingError: naming the first missing program.
    """
    checked: set[str] = set()
    for unit in units:
        toolchain = settings.toolchain_for(unit.language)
        if toolchain is None:
            continue
        for program in toolchain.executables:
            program = _substitute(program, {"python": sys.executable})
            if program in checked:
                continue
            if process.which(program) is None:
                raise ToolchainMissingError(program, toolchain.language)
            checked.add(program)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def run_unit(
    unit: RunUnit,
    settings: Settings,
    process: ProcessPort,
    cancel: threading.Event | None = None,
) -> list[ExecutionResult]:
    """Compile (if needed) and run every block of a unit, in order.

    Returns one ExecutionResult per block, in the unit's block order.

    Raises:
        ToolchainMissingError: if the OS cannot find the toolchain program.
    """
    toolchain = settings.toolchain_for(unit.language)
    if toolchain is None:
        msg = f"no toolchain for '{unit.language}'"
        raise ValueError(msg)

    if cancel is not None and cancel.is_set():
        return [_cancelled(b) for b in unit.blocks]

    timeout = settings.timeout_ms / 1000.0
    with tempfile.TemporaryDirectory(prefix="litverify-") as tmp:
        workdir = Path(tmp)
        out_dir = workdir / "out"
        out_dir.mkdir()
        sources = _write_sources(workdir, unit.blocks)
        base = {"python": sys.executable, "workdir": str(workdir), "out": str(out_dir)}

        compile_diagnostics = ""
        if toolchain.compile:
            argv = _expand(toolchain.compile, base, [str(s) for s in sources])
            logger.debug("Compiling %s: %s", _unit_name(unit), argv)
            outcome = _invoke(process, argv, workdir, timeout, cancel, toolchain)
            failed = _compile_failure(unit, outcome)
            if failed is not None:
                return failed
            compile_diagnostics = _diagnostics(outcome)

        results: list[ExecutionResult] = []
        for block, source in zip(unit.blocks, sources, strict=True):
            if cancel is not None and cancel.is_set():
                results.append(_cancelled(block))
                continue
            if not _should_run(block, toolchain):
                results.append(
                    ExecutionResult(
                        block_id=block.id,
                        status=ExecutionStatus.SUCCESS,
                        diagnostics=compile_diagnostics,
                    )
                )
                continue
            mapping = {**base, "source": str(source), "main": main_class(block, toolchain)}
            argv = _expand(toolchain.run, mapping, [str(s) for s in sources])
            logger.debug("Running %s: %s", block.id, argv)
            outcome = _invoke(process, argv, workdir, timeout, cancel, toolchain)
            results.append(classify(block, outcome, toolchain))
    return results


def classify(block: Block, outcome: ProcessOutcome, toolchain: Toolchain) -> ExecutionResult:
    """Turn a raw process outcome into an ExecutionResult for one block."""
    if outcome.cancelled:
        status = ExecutionStatus.CANCELLED
        error = None
    elif outcome.timed_out:
        status = ExecutionStatus.TIMEOUT
        error = None
    elif outcome.exit_code == 0:
        status = ExecutionStatus.SUCCESS
        error = None
    else:
        error = parse_thrown_error(outcome.stderr, outcome.exit_code, toolchain.error_pattern)
        if error.kind in toolchain.compile_errors:
            status = ExecutionStatus.COMPILE_FAILURE
        else:
            status = ExecutionStatus.RUNTIME_FAILURE

    if status is not ExecutionStatus.SUCCESS:
        logger.info("%s: %s", block.id, status.value)
    return ExecutionResult(
        block_id=block.id,
        status=status,
        stdout=outcome.stdout,
        stderr=outcome.stderr,
        exit_code=outcome.exit_code,
        error=error,
        diagnostics=_diagnostics(outcome) if status is ExecutionStatus.COMPILE_FAILURE else "",
        elapsed_seconds=outcome.elapsed_seconds,
    )


def parse_thrown_error(stderr: str, exit_code: int | None, pattern: str = "") -> ThrownError:
    """Extract the exception kind and message from a failing run's stderr.

    The last match wins: for Python that is the exception actually raised,
    and the JVM prints its uncaught-exception line only once.
    """
    regexes = [re.compile(pattern, re.MULTILINE)] if pattern else []
    regexes += [_JVM_ERROR_RE, _PY_ERROR_RE]
    for regex in regexes:
        matches = list(regex.finditer(stderr))
        if matches:
            last = matches[-1]
            groups = last.groupdict()
            kind = groups.get("kind") or last.group(0).strip()
            message = (groups.get("message") or "").strip()
            return ThrownError(kind=kind, message=message)

    tail = [line.strip() for line in stderr.splitlines() if line.strip()]
    return ThrownError(kind=f"exit {exit_code}", message=tail[-1] if tail else "")


def main_class(block: Block, toolchain: Toolchain) -> str:
    """Return the entry-point name for a block, from the toolchain template.

    Kotlin compiles top-level functions of ``Foo.kt`` in package ``p`` into
    class ``p.FooKt``; the default Kotlin template reproduces that.
    """
    if not toolchain.main_class or block.label is None:
        return ""
    stem = PurePosixPath(block.label).stem
    mapping = {
        "package": block.package or "",
        "package_prefix": f"{block.package}." if block.package else "",
        "stem": stem,
        "Stem": stem[:1].upper() + stem[1:],
    }
    return _substitute(toolchain.main_class, mapping)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_sources(workdir: Path, blocks: Sequence[Block]) -> list[Path]:
    """Write each block's source to its label path inside the workspace."""
    paths: list[Path] = []
    for block in blocks:
        label = PurePosixPath(block.label or f"block{block.index}")
        parts = [p for p in label.parts if p not in ("..", "/", ".")] or [label.name]
        target = workdir.joinpath(*parts)
        if target in paths:
            logger.warning("%s: label %s used twice in one unit", block.id, block.label)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(block.source, encoding="utf-8")
        paths.append(target)
    return paths


def _should_run(block: Block, toolchain: Toolchain) -> bool:
    if FLAG_COMPILE_ONLY in block.flags:
        return False
    if toolchain.entry_pattern and not re.search(toolchain.entry_pattern, block.source):
        return False
    return True


def _invoke(
    process: ProcessPort,
    argv: list[str],
    workdir: Path,
    timeout: float,
    cancel: threading.Event | None,
    toolchain: Toolchain,
) -> ProcessOutcome:
    try:
        outcome = process.run(argv, cwd=str(workdir), timeout_seconds=timeout, cancel=cancel)
    except FileNotFoundError as exc:
        raise ToolchainMissingError(argv[0], toolchain.language) from exc
    return _relativize(outcome, workdir)


def _relativize(outcome: ProcessOutcome, workdir: Path) -> ProcessOutcome:
    """Strip the random workspace path from captured output.

    Diagnostics then name sources by their label path, so reports stay
    identical across runs.
    """
    prefixes = sorted({str(workdir), str(workdir.resolve())}, key=len, reverse=True)

    def scrub(text: str) -> str:
        for prefix in prefixes:
            text = text.replace(prefix + os.sep, "").replace(prefix, ".")
        return text

    return replace(outcome, stdout=scrub(outcome.stdout), stderr=scrub(outcome.stderr))


def _compile_failure(unit: RunUnit, outcome: ProcessOutcome) -> list[ExecutionResult] | None:
    """Return per-block results when the unit's compile step did not succeed."""
    if outcome.cancelled:
        return [_cancelled(b) for b in unit.blocks]
    if outcome.timed_out:
        status = ExecutionStatus.TIMEOUT
    elif outcome.exit_code != 0:
        status = ExecutionStatus.COMPILE_FAILURE
    else:
        return None

    logger.info("%s: compile step %s", _unit_name(unit), status.value)
    diagnostics = _diagnostics(outcome)
    return [
        ExecutionResult(
            block_id=b.id,
            status=status,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            exit_code=outcome.exit_code,
            diagnostics=diagnostics,
            elapsed_seconds=outcome.elapsed_seconds,
        )
        for b in unit.blocks
    ]


def _cancelled(block: Block) -> ExecutionResult:
    return ExecutionResult(block_id=block.id, status=ExecutionStatus.CANCELLED)


def _diagnostics(outcome: ProcessOutcome) -> str:
    text = "\n".join(part for part in (outcome.stderr.strip(), outcome.stdout.strip()) if part)
    return text[-_DIAGNOSTIC_LIMIT:]


def _unit_name(unit: RunUnit) -> str:
    if unit.package:
        return f"{unit.document} [package {unit.package}]"
    return unit.blocks[0].id if unit.blocks else unit.document


def _substitute(template: str, mapping: dict[str, str]) -> str:
    for key, value in mapping.items():
        template = template.replace("{" + key + "}", value)
    return template


def _expand(template: Sequence[str], mapping: dict[str, str], sources: list[str]) -> list[str]:
    """Expand a command template; a bare ``{sources}`` argument becomes all files."""
    argv: list[str] = []
    for arg in template:
        if arg == "{sources}":
            argv.extend(sources)
        else:
            argv.append(_substitute(arg, mapping))
    return argv

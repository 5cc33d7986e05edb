"""Core data types for litverify.

All types are frozen dataclasses with complete type annotations.
This module has ZERO imports from outside the Python standard library.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath


class OutputMode(Enum):
    """How a block's declared output is compared."""

    EXACT = "exact"
    SAMPLE = "sample"


class ExecutionStatus(Enum):
    """Outcome of running one block."""

    SUCCESS = "success"
    COMPILE_FAILURE = "compile_failure"
    RUNTIME_FAILURE = "runtime_failure"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class ErrorKind(Enum):
    """Tagged failure taxonomy. Compared by value, never by exception class."""

    STRUCTURAL = "structural"
    COMPILE = "compile"
    RUNTIME = "runtime"
    TIMEOUT = "timeout"
    MISMATCH = "mismatch"
    UNEXPECTED_PASS = "unexpected_pass"


class VerdictStatus(Enum):
    """Final judgement for one block."""

    PASS = "pass"
    FAIL = "fail"
    SKIPPED = "skipped"
    EXPECTED_FAILURE = "expected_failure"


# Fence flags understood by the extractor and the runner.
FLAG_SKIP = "skip"
FLAG_NO_RUN = "no-run"
FLAG_EXPECT_FAIL = "expect-fail"
FLAG_COMPILE_ONLY = "compile-only"


def block_id(document: str, index: int) -> str:
    """Return the stable identifier of a block: ``<document>#<index>``."""
    return f"{document}#{index}"


# ---------------------------------------------------------------------------
# Supporting types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileInfo:
    """Metadata about a single file."""

    path: str
    size_bytes: int
    last_modified: str


# ---------------------------------------------------------------------------
# Extraction types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpectedOutput:
    """Console output a block documents for itself."""

    text: str
    mode: OutputMode = OutputMode.EXACT


@dataclass(frozen=True)
class StructuralError:
    """Malformed markdown found while extracting a document."""

    document: str
    line: int
    message: str


@dataclass(frozen=True)
class Block:
    """One fenced code region of a document. Immutable once extracted."""

    document: str
    index: int
    line: int
    language: str
    source: str
    label: str | None = None
    package: str | None = None
    expected: ExpectedOutput | None = None
    flags: frozenset[str] = frozenset()
    executable: bool = False
    skip_reason: str = ""

    @property
    def id(self) -> str:
        return block_id(self.document, self.index)

    @property
    def expects_failure(self) -> bool:
        return FLAG_EXPECT_FAIL in self.flags


@dataclass(frozen=True)
class Document:
    """A markdown source file and everything extracted from it."""

    path: str
    blocks: tuple[Block, ...] = ()
    errors: tuple[StructuralError, ...] = ()


# ---------------------------------------------------------------------------
# Execution types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThrownError:
    """Exception reported by a failing example: its kind and message."""

    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}" if self.message else self.kind


@dataclass(frozen=True)
class ProcessOutcome:
    """Raw result of one external command."""

    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    cancelled: bool = False
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of running one block."""

    block_id: str
    status: ExecutionStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    error: ThrownError | None = None
    diagnostics: str = ""
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class Toolchain:
    """Command templates used to compile and run one language."""

    language: str
    run: tuple[str, ...]
    compile: tuple[str, ...] = ()
    extensions: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()
    entry_pattern: str = ""
    error_pattern: str = ""
    main_class: str = ""
    # Thrown kinds that mean the source never compiled (interpreted languages).
    compile_errors: tuple[str, ...] = ()

    @property
    def executables(self) -> tuple[str, ...]:
        """Programs that must be on PATH for this toolchain to work."""
        names = [self.run[0]] if self.run else []
        if self.compile:
            names.append(self.compile[0])
        return tuple(dict.fromkeys(names))


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one verification run."""

    toolchains: tuple[Toolchain, ...] = ()
    workers: int = 1
    timeout_ms: int = 10_000
    fail_fast: bool = False
    assertion_marker: str = "[Error]:"
    include: tuple[str, ...] = ()

    def toolchain_for(self, language: str) -> Toolchain | None:
        """Return the toolchain registered for a fence language or alias."""
        wanted = language.lower()
        for tc in self.toolchains:
            if wanted == tc.language or wanted in tc.aliases:
                return tc
        return None

    def toolchain_for_file(self, path: str) -> Toolchain | None:
        """Return the toolchain whose extensions match a file path, if any."""
        suffix = PurePosixPath(path).suffix.lower()
        if not suffix:
            return None
        for tc in self.toolchains:
            if suffix in tc.extensions:
                return tc
        return None


@dataclass(frozen=True)
class RunUnit:
    """Blocks compiled together in one workspace, run in declaration order."""

    document: str
    language: str
    blocks: tuple[Block, ...]
    package: str | None = None


# ---------------------------------------------------------------------------
# Verdict and report types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComparisonVerdict:
    """Pass/fail judgement for one block plus a diff for human triage."""

    block_id: str
    status: VerdictStatus
    kind: ErrorKind | None = None
    message: str = ""
    diff: str = ""

    @property
    def failed(self) -> bool:
        return self.status is VerdictStatus.FAIL


@dataclass(frozen=True)
class BlockVerdict:
    """A verdict together with the block it judges."""

    block: Block
    verdict: ComparisonVerdict


@dataclass(frozen=True)
class DocumentReport:
    """Verdicts and structural errors of one document, ordered by block index."""

    path: str
    verdicts: tuple[BlockVerdict, ...] = ()
    errors: tuple[StructuralError, ...] = ()

    @property
    def passed(self) -> int:
        return sum(
            1
            for v in self.verdicts
            if v.verdict.status in (VerdictStatus.PASS, VerdictStatus.EXPECTED_FAILURE)
        )

    @property
    def failed(self) -> int:
        return sum(1 for v in self.verdicts if v.verdict.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for v in self.verdicts if v.verdict.status is VerdictStatus.SKIPPED)


@dataclass(frozen=True)
class Report:
    """Aggregated result of a whole run."""

    documents: tuple[DocumentReport, ...] = ()
    cancelled: bool = False
    not_run: tuple[str, ...] = ()
    elapsed_seconds: float = field(default=0.0, compare=False)

    @property
    def total(self) -> int:
        return sum(len(d.verdicts) for d in self.documents)

    @property
    def passed(self) -> int:
        return sum(d.passed for d in self.documents)

    @property
    def failed(self) -> int:
        return sum(d.failed for d in self.documents)

    @property
    def skipped(self) -> int:
        return sum(d.skipped for d in self.documents)

    @property
    def structural_errors(self) -> tuple[StructuralError, ...]:
        return tuple(e for d in self.documents for e in d.errors)

    @property
    def failures(self) -> tuple[BlockVerdict, ...]:
        return tuple(v for d in self.documents for v in d.verdicts if v.verdict.failed)
